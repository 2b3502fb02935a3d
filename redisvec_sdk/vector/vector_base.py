# redisvec_sdk/vector/vector_base.py
# SPDX-License-Identifier: Apache-2.0
"""
redisvec SDK: shared vector types, errors and client plumbing

Purpose
-------
Common ground for the two Redis vector backends supported by this package:

- the inverted-index engine (``FT.*`` commands over HASH or JSON records)
- the native vector-set engine (``VADD`` / ``VSIM`` / ``V*`` commands)

This module provides:

- Typed result contracts (``SearchResult``) and the item id domain
- A structured error taxonomy with machine-readable codes
- A SIEM-safe metrics sink interface (``MetricsSink`` / ``NoopMetrics``)
- The minimal transport protocol the clients need (satisfied by ``redis.Redis``)
- ``BaseRedisVectorClient``: argument checking, per-command instrumentation,
  pipelined batches and normalization of "unknown command" replies

Deliberate Non-Goals
--------------------
- No connection management, retries or timeouts (owned by the transport)
- No client-side caching or locking; the server is the single source of truth
- No ANN, graph or quantization algorithms
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    Union,
    runtime_checkable,
)

from redis.exceptions import WatchError

from redisvec_sdk.core.error_context import attach_context

if TYPE_CHECKING:
    from redisvec_sdk.vector.config import RedisVectorConfig

LOG = logging.getLogger(__name__)

# =============================================================================
# Wire constants
# =============================================================================

VECTOR_FIELD = "v"
SCORE_FIELD = "__v_score"
KEY_SEPARATOR = ":"

ItemID = Union[str, int]
"""Item identifiers are strings or non-negative integers, fixed per collection."""

ID_TYPES: Tuple[str, ...] = ("string", "integer")

# =============================================================================
# Core Type Definitions
# =============================================================================


@dataclass(frozen=True)
class SearchResult:
    """
    A single nearest-neighbor hit.

    Attributes:
        id: Item identifier, coerced to the collection's id domain
        distance: Metric-specific distance (lower = closer)
        metadata: Item attributes, populated only when requested
    """
    id: ItemID
    distance: float
    metadata: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class VectorCapabilities:
    """
    Describes what a configured collection client can do against its server.

    Attributes:
        server: Backend server identifier (always "redis")
        version: Server version reported by ``INFO server``
        backend: "index" (FT.* engine) or "vector_set" (V* engine)
        algorithm: Index algorithm token (FLAT, HNSW, SVS-VAMANA) or None
        storage: Record representation ("hash" / "json") or None for vector-sets
        id_type: Item id domain ("string" / "integer")
        supported_metrics: Distance metrics accepted at configuration time
        supported_types: Vector element types accepted at configuration time
        supports_metadata_filtering: Whether search accepts a filter expression
        supports_aliases: Whether alias promotion is available
        supports_quantization: Whether per-item quantization is configurable
        supports_exact_search: Whether brute-force truth search can be forced
    """
    server: str
    version: str
    backend: str
    algorithm: Optional[str] = None
    storage: Optional[str] = None
    id_type: str = "string"
    supported_metrics: Tuple[str, ...] = ("l2", "cosine", "inner_product")
    supported_types: Tuple[str, ...] = ("float32",)
    supports_metadata_filtering: bool = True
    supports_batch_operations: bool = True
    supports_aliases: bool = False
    supports_quantization: bool = False
    supports_exact_search: bool = False


# =============================================================================
# Normalized Errors
# =============================================================================

class VectorAdapterError(Exception):
    """
    Base exception for all errors raised by this package.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (UPPER_SNAKE_CASE)
        details: Additional JSON-serializable context (never contains vectors)
    """
    def __init__(
        self,
        message: str = "",
        *,
        code: Optional[str] = None,
        details: Optional[Mapping[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = dict(details or {})

    def asdict(self) -> Dict[str, Any]:
        """Convert error to dictionary for serialization and logging."""
        return {
            "message": self.message,
            "code": self.code,
            "details": {k: self.details[k] for k in sorted(self.details)},
        }

# Subclasses set default `code` in UPPER_SNAKE_CASE where not explicitly provided.

class InvalidArgumentError(VectorAdapterError):
    """Bad configuration or input, always detected before any remote call."""
    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("code", "INVALID_ARGUMENT")
        super().__init__(message, **kwargs)

class DimensionError(InvalidArgumentError):
    """Vector length does not match the declared dimensionality."""
    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("code", "DIMENSION_MISMATCH")
        super().__init__(message, **kwargs)

class InvalidNameError(InvalidArgumentError):
    """Collection or alias name is empty or contains the key separator."""
    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("code", "INVALID_NAME")
        super().__init__(message, **kwargs)

class InvalidMetadataError(InvalidArgumentError):
    """Metadata is not a mapping, shadows the vector field, or cannot be stored."""
    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("code", "INVALID_METADATA")
        super().__init__(message, **kwargs)

class ItemNotFoundError(VectorAdapterError):
    """A by-id query found no stored vector for the id."""
    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("code", "ITEM_NOT_FOUND")
        super().__init__(message, **kwargs)

class BackendUnavailableError(VectorAdapterError):
    """The server does not recognize the command family at all."""
    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("code", "BACKEND_UNAVAILABLE")
        super().__init__(message, **kwargs)

class MalformedResponseError(VectorAdapterError):
    """A reply did not have any of the shapes this package understands."""
    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("code", "MALFORMED_RESPONSE")
        super().__init__(message, **kwargs)


# =============================================================================
# Metrics Interface (SIEM-safe, low-cardinality)
# =============================================================================

class MetricsSink(Protocol):
    """
    Protocol for metrics collection implementations.

    All metrics must be low-cardinality: collection names are fine, item ids
    and vectors are never reported.
    """
    def observe(
        self,
        *,
        component: str,
        op: str,
        ms: float,
        ok: bool,
        code: str = "OK",
        extra: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """Record operation timing and status."""
        ...

    def counter(
        self,
        *,
        component: str,
        name: str,
        value: int = 1,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """Increment a counter metric."""
        ...

class NoopMetrics:
    """No-operation metrics sink for testing or when metrics are disabled."""
    def observe(self, **_: Any) -> None: ...
    def counter(self, **_: Any) -> None: ...


# =============================================================================
# Transport protocol (redis-py compatible)
# =============================================================================

@runtime_checkable
class Pipeline(Protocol):
    """Buffered batch of commands; replies come back in submission order."""
    def execute_command(self, *args: Any, **options: Any) -> Any: ...
    def execute(self, raise_on_error: bool = True) -> List[Any]: ...
    def watch(self, *names: Any) -> Any: ...
    def multi(self) -> None: ...
    def reset(self) -> None: ...

@runtime_checkable
class Transport(Protocol):
    """Single-command request primitive plus a pipelining primitive."""
    def execute_command(self, *args: Any, **options: Any) -> Any: ...
    def pipeline(self, transaction: bool = True, shard_hint: Any = None) -> Pipeline: ...


# =============================================================================
# Reply helpers
# =============================================================================

def as_text(value: Any) -> Any:
    """Decode a byte string reply to text; other values pass through."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8")
    return value


def decode_nested(value: Any) -> Any:
    """Recursively decode byte strings inside lists and mappings."""
    if isinstance(value, (bytes, bytearray)):
        return as_text(value)
    if isinstance(value, Mapping):
        return {as_text(k): decode_nested(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [decode_nested(v) for v in value]
    return value


def pairs_to_dict(value: Any) -> Dict[Any, Any]:
    """
    Pair a flat ``[k1, v1, k2, v2, ...]`` reply into a mapping.

    Mappings (RESP3 replies) are returned as a plain dict.
    """
    if value is None:
        return {}
    if isinstance(value, Mapping):
        return dict(value)
    if not isinstance(value, (list, tuple)):
        raise MalformedResponseError(
            f"expected a flat key/value list, got {type(value).__name__}"
        )
    if len(value) % 2:
        raise MalformedResponseError("key/value list has an odd number of entries")
    return {value[i]: value[i + 1] for i in range(0, len(value), 2)}


def bool_result(value: Any) -> bool:
    """Integer/boolean replies (1, True, b"1") -> bool."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value == 1
    if isinstance(value, (bytes, bytearray, str)):
        return as_text(value) in ("1", "OK")
    return False


# =============================================================================
# Base client (validation and instrumentation)
# =============================================================================

_UNKNOWN_COMMAND = re.compile(r"unknown command", re.IGNORECASE)
_WATCH_ATTEMPTS = 5
_ARG_TYPES = (str, bytes, int, float)


class BaseRedisVectorClient:
    """
    Base class for the collection clients.

    Provides argument validation, metrics instrumentation for every remote
    command, pipelined batches with per-item failure isolation, and
    translation of "unknown command" replies into ``BackendUnavailableError``.
    Every other transport error propagates unchanged, enriched with context
    via ``attach_context``.
    """

    _component = "vector_redis"
    _backend_name = "redis"

    def __init__(
        self,
        transport: Optional[Transport],
        *,
        config: Optional["RedisVectorConfig"] = None,
        metrics: Optional[MetricsSink] = None,
    ) -> None:
        from redisvec_sdk.vector.config import RedisVectorConfig, connect

        self._config: RedisVectorConfig = config or RedisVectorConfig()
        if transport is None:
            transport = connect(self._config)
        self._transport: Transport = transport
        self._metrics: MetricsSink = metrics or NoopMetrics()

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def config(self) -> "RedisVectorConfig":
        return self._config

    # --- internal helpers (validation and instrumentation) ---

    @staticmethod
    def _check_args(args: Sequence[Any]) -> None:
        for arg in args:
            # bool is an int subclass but has no wire representation
            if isinstance(arg, bool) or not isinstance(arg, _ARG_TYPES):
                raise InvalidArgumentError(
                    f"unexpected argument type: {type(arg).__name__}",
                    details={"command": str(args[0]) if args else None},
                )

    def _record(
        self,
        op: str,
        t0: float,
        ok: bool,
        *,
        code: str = "OK",
        **extra: Any,
    ) -> None:
        """Record operation metrics; never lets metrics break the operation."""
        try:
            ms = (time.monotonic() - t0) * 1000.0
            self._metrics.observe(
                component=self._component,
                op=op,
                ms=ms,
                ok=ok,
                code=code,
                extra=dict(extra) or None,
            )
        except Exception:
            pass

    def _count(self, name: str, value: int = 1) -> None:
        try:
            self._metrics.counter(component=self._component, name=name, value=value)
        except Exception:
            pass

    def _translate_error(self, err: Exception, *, op: str, command: str) -> Exception:
        """
        Map a transport failure to the error surfaced to callers.

        Only "unknown command" is normalized (the server lacks the command
        family entirely); anything else is returned unchanged so callers can
        inspect server-specific detail.
        """
        attach_context(
            err,
            self._component,
            resource_type="vector",
            operation=op,
            command=command,
        )
        if _UNKNOWN_COMMAND.search(str(err)):
            return BackendUnavailableError(
                f"{self._backend_name} not available: server does not recognize {command}",
                details={"op": op, "command": command},
            )
        return err

    def _run(self, op: str, *args: Any) -> Any:
        """Issue a single command through the transport."""
        self._check_args(args)
        command = str(args[0])
        t0 = time.monotonic()
        try:
            reply = self._transport.execute_command(*args)
        except Exception as exc:  # noqa: BLE001
            translated = self._translate_error(exc, op=op, command=command)
            self._record(op, t0, False, code=getattr(translated, "code", None) or type(translated).__name__)
            if translated is exc:
                raise
            raise translated from exc
        self._record(op, t0, True)
        return reply

    def _pipelined(
        self,
        op: str,
        commands: Sequence[Sequence[Any]],
        *,
        transaction: bool = False,
    ) -> List[Any]:
        """
        Issue ``commands`` as one pipelined batch.

        Replies are returned in submission order. A failing command yields its
        exception object in place of a reply instead of aborting siblings;
        an "unknown command" reply for the whole family still raises
        ``BackendUnavailableError``.
        """
        if not commands:
            return []
        for args in commands:
            self._check_args(args)

        t0 = time.monotonic()
        pipe = self._transport.pipeline(transaction=transaction)
        for args in commands:
            pipe.execute_command(*args)
        try:
            replies = list(pipe.execute(raise_on_error=False))
        except Exception as exc:  # noqa: BLE001
            translated = self._translate_error(exc, op=op, command=str(commands[0][0]))
            self._record(op, t0, False, code=getattr(translated, "code", None) or type(translated).__name__)
            if translated is exc:
                raise
            raise translated from exc

        failed = 0
        for args, reply in zip(commands, replies):
            if isinstance(reply, Exception):
                translated = self._translate_error(reply, op=op, command=str(args[0]))
                if isinstance(translated, BackendUnavailableError):
                    self._record(op, t0, False, code=translated.code or "BACKEND_UNAVAILABLE")
                    raise translated from reply
                failed += 1
                LOG.warning("%s: %s failed in batch: %s", op, args[0], reply)

        self._record(op, t0, failed == 0, code="OK" if failed == 0 else "PARTIAL", batch_size=len(commands))
        return replies

    def _watched(
        self,
        op: str,
        key: str,
        read: Sequence[Any],
        plan: Callable[[Any], Optional[List[List[Any]]]],
    ) -> bool:
        """
        Optimistic read-then-write on ``key``.

        ``read`` runs while ``key`` is WATCHed and ``plan`` turns its reply into
        the commands applied in MULTI/EXEC, or None to apply nothing. When the
        key changes before EXEC the read is repeated, so a plan never acts on
        a stale view. Returns False when ``plan`` declined, True once applied.
        """
        self._check_args(read)
        t0 = time.monotonic()
        for attempt in range(1, _WATCH_ATTEMPTS + 1):
            pipe = self._transport.pipeline(transaction=True)
            command = str(read[0])
            try:
                pipe.watch(key)
                commands = plan(pipe.execute_command(*read))
                if not commands:
                    self._record(op, t0, True, attempts=attempt)
                    return commands is not None
                for args in commands:
                    self._check_args(args)
                pipe.multi()
                for args in commands:
                    pipe.execute_command(*args)
                command = "EXEC"
                replies = list(pipe.execute(raise_on_error=False))
            except WatchError:
                LOG.debug("%s: %s changed before EXEC (attempt %d)", op, key, attempt)
                continue
            except Exception as exc:  # noqa: BLE001
                translated = self._translate_error(exc, op=op, command=command)
                self._record(op, t0, False, code=getattr(translated, "code", None) or type(translated).__name__)
                if translated is exc:
                    raise
                raise translated from exc
            finally:
                pipe.reset()

            for args, reply in zip(commands, replies):
                if isinstance(reply, Exception):
                    translated = self._translate_error(reply, op=op, command=str(args[0]))
                    self._record(op, t0, False, code=getattr(translated, "code", None) or type(translated).__name__)
                    if translated is reply:
                        raise reply
                    raise translated from reply
            self._record(op, t0, True, attempts=attempt)
            return True

        err = WatchError(f"{key} kept changing during {op}")
        attach_context(err, self._component, resource_type="vector", operation=op, command="EXEC")
        self._record(op, t0, False, code="WatchError")
        raise err

    def _server_version(self) -> str:
        reply = self._run("capabilities", "INFO", "server")
        if isinstance(reply, Mapping):
            info = decode_nested(reply)
            return str(info.get("redis_version", "unknown"))
        match = re.search(r"redis_version:(\S+)", as_text(reply) or "")
        return match.group(1) if match else "unknown"


__all__ = [
    "VECTOR_FIELD",
    "SCORE_FIELD",
    "KEY_SEPARATOR",
    "ID_TYPES",
    "ItemID",
    "SearchResult",
    "VectorCapabilities",
    "VectorAdapterError",
    "InvalidArgumentError",
    "DimensionError",
    "InvalidNameError",
    "InvalidMetadataError",
    "ItemNotFoundError",
    "BackendUnavailableError",
    "MalformedResponseError",
    "MetricsSink",
    "NoopMetrics",
    "Pipeline",
    "Transport",
    "BaseRedisVectorClient",
    "as_text",
    "decode_nested",
    "pairs_to_dict",
    "bool_result",
]
