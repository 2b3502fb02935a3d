# SPDX-License-Identifier: Apache-2.0
"""
redisvec SDK tests

Unit tests for the codecs, key-space and reply decoders, plus behavioral
tests of both collection clients against an in-memory fake server.
"""
