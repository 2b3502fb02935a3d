# redisvec_sdk/__init__.py
# SPDX-License-Identifier: Apache-2.0

"""Client-side adaptation layer for Redis vector search."""

__version__ = "0.1.0"
