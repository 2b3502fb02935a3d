# redisvec_sdk/core/__init__.py
# SPDX-License-Identifier: Apache-2.0

from redisvec_sdk.core.error_context import attach_context, get_context, has_context

__all__ = [
    "attach_context",
    "get_context",
    "has_context",
]
