# redisvec_sdk/core/error_context.py
# SPDX-License-Identifier: Apache-2.0

"""
Error context utilities for the vector clients.

Transport errors raised by Redis (``ResponseError``, connection errors) are
propagated to callers unchanged so server-specific detail stays inspectable.
Before they propagate, the clients attach the operation that produced them
as exception attributes:

    try:
        index.search(vector, count=10)
    except redis.exceptions.ResponseError as exc:
        ctx = get_context(exc)
        logger.error(
            "search failed",
            extra={"operation": ctx.get("operation"), "command": ctx.get("command")},
        )

Two attributes are set:

1. ``__redisvec_context__`` (canonical)
2. ``__<component>_context__`` (component-specific, e.g.
   ``__vector_redis_index_context__``)

Repeated calls merge into the existing context instead of overwriting it, so
several layers can contribute. Attachment is best-effort: it never masks the
original exception.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, MutableMapping, Optional

logger = logging.getLogger(__name__)

_CANONICAL_ATTR = "__redisvec_context__"


def attach_context(
    exc: BaseException,
    component: str,
    **context: Any,
) -> None:
    """
    Attach debugging context to an exception.

    Parameters
    ----------
    exc:
        The exception to enrich. Its message, type and traceback are untouched.

    component:
        Origin of the context (e.g. "vector_redis_index"). Stored under the
        ``component`` key (never overwritten once set) and used to derive the
        component-specific attribute name.

    **context:
        Arbitrary keys, typically ``operation``, ``command`` and
        ``resource_type``. Never include vectors or metadata values.
    """
    try:
        merged_context: MutableMapping[str, Any] = {}

        existing = getattr(exc, _CANONICAL_ATTR, None)
        if isinstance(existing, Mapping):
            merged_context.update(existing)

        merged_context.setdefault("component", component)
        merged_context.update(context)

        setattr(exc, _CANONICAL_ATTR, merged_context)
        setattr(exc, f"__{component}_context__", merged_context)

    except Exception as attachment_error:  # noqa: BLE001
        logger.debug(
            "Failed to attach error context to %s: %s",
            type(exc).__name__,
            attachment_error,
            extra={"component": component},
        )


def get_context(
    exc: BaseException,
    *,
    component: Optional[str] = None,
) -> Mapping[str, Any]:
    """
    Retrieve attached context from an exception.

    When ``component`` is given the component-specific attribute is tried
    first, falling back to the canonical one. Returns an empty dict when no
    context is present.
    """
    try:
        if component:
            ctx = getattr(exc, f"__{component}_context__", None)
            if isinstance(ctx, Mapping):
                return ctx

        ctx = getattr(exc, _CANONICAL_ATTR, None)
        if isinstance(ctx, Mapping):
            return ctx

    except Exception as retrieval_error:  # noqa: BLE001
        logger.debug(
            "Failed to retrieve error context from %s: %s",
            type(exc).__name__,
            retrieval_error,
        )

    return {}


def has_context(
    exc: BaseException,
    *,
    component: Optional[str] = None,
) -> bool:
    """Check if an exception carries non-empty attached context."""
    return len(get_context(exc, component=component)) > 0


__all__ = [
    "attach_context",
    "get_context",
    "has_context",
]
