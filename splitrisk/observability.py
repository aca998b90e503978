"""
SplitRisk Observability Framework

Structured logging for protocol operations with correlation IDs and
per-operation timing.

Architecture:
    ┌─────────────────────────────────────────────────────────┐
    │                  Protocol operations                     │
    │  logger.info("msg", amount=x)   @timed_operation(...)   │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │                     ProtocolLogger                       │
    │  layer tagging, correlation IDs, structured context     │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │                        Handlers                          │
    │        StructuredHandler (json) │ text formatter        │
    └─────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
import time
import traceback
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from functools import wraps
from typing import Any, Callable, Dict, Optional, TypeVar

# Context variable for request-scoped correlation
correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)


class LogLevel(Enum):
    """Log severity levels."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ProtocolLayer(Enum):
    """SplitRisk components for log categorisation."""
    CLOCK = "clock"
    LEDGER = "ledger"
    VENUE = "venue"
    SPLITTER = "splitter"
    INVESTMENT = "investment"
    DIVESTMENT = "divestment"
    CLAIMS = "claims"
    PROTOCOL = "protocol"
    CONFIG = "config"
    SIMULATION = "simulation"
    CLI = "cli"


@dataclass
class LogEvent:
    """Structured log event."""
    timestamp: str
    level: str
    logger: str
    message: str
    correlation_id: str = ""
    layer: str = ""
    operation: str = ""
    duration_ms: Optional[float] = None
    error_code: str = ""
    context: Dict[str, Any] = field(default_factory=dict)
    exception: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, excluding empty values."""
        d = asdict(self)
        return {k: v for k, v in d.items() if v is not None and v != "" and v != {}}

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), default=str)


class StructuredHandler(logging.Handler):
    """Logging handler that outputs structured JSON.

    With a formatter set it writes the formatted line instead. Without an
    explicit stream it writes to whatever ``sys.stderr`` is at emit time.
    """

    def __init__(self, stream: Any = None):
        super().__init__()
        self._stream = stream

    @property
    def stream(self) -> Any:
        return self._stream if self._stream is not None else sys.stderr

    def emit(self, record: logging.LogRecord) -> None:
        try:
            if self.formatter is not None:
                self.stream.write(self.format(record) + "\n")
                self.stream.flush()
                return

            event = LogEvent(
                timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
                level=record.levelname.lower(),
                logger=record.name,
                message=record.getMessage(),
                correlation_id=correlation_id_var.get(),
                layer=getattr(record, "layer", ""),
                operation=getattr(record, "operation", ""),
                duration_ms=getattr(record, "duration_ms", None),
                error_code=getattr(record, "error_code", ""),
                context=getattr(record, "context", {}),
            )

            if record.exc_info:
                event.exception = "".join(traceback.format_exception(*record.exc_info))

            self.stream.write(event.to_json() + "\n")
            self.stream.flush()
        except Exception:
            self.handleError(record)


class TextFormatter(logging.Formatter):
    """Single-line human readable format carrying the structured context."""

    def format(self, record: logging.LogRecord) -> str:
        base = f"{record.levelname.lower():<8} {record.name}: {record.getMessage()}"
        context = getattr(record, "context", {}) or {}
        if context:
            base += " " + " ".join(f"{k}={v}" for k, v in sorted(context.items()))
        error_code = getattr(record, "error_code", "")
        if error_code:
            base += f" error_code={error_code}"
        return base


def _make_handler(log_format: str) -> logging.Handler:
    handler = StructuredHandler()
    if log_format == "text":
        handler.setFormatter(TextFormatter())
    return handler


class ProtocolLogger:
    """
    Structured logger for SplitRisk components.

    Automatically includes correlation IDs and layer information in all
    log events.
    """

    def __init__(
        self,
        name: str,
        layer: ProtocolLayer,
        level: Optional[LogLevel] = None,
        log_format: Optional[str] = None,
    ):
        self.name = name
        self.layer = layer
        self._logger = logging.getLogger(f"splitrisk.{layer.value}.{name}")

        if level is None or log_format is None:
            from splitrisk.config import get_config
            obs = get_config().observability
            level = level or LogLevel(obs.log_level.get())
            log_format = log_format or obs.log_format.get()

        self._logger.setLevel(getattr(logging, level.value.upper()))

        # Attach one handler per logger, whichever format was asked for first
        if not any(getattr(h, "_splitrisk", False) for h in self._logger.handlers):
            handler = _make_handler(log_format)
            handler._splitrisk = True  # type: ignore[attr-defined]
            self._logger.addHandler(handler)

    def _log(
        self,
        level: int,
        message: str,
        operation: str = "",
        error_code: str = "",
        duration_ms: Optional[float] = None,
        exc_info: bool = False,
        **context: Any,
    ) -> None:
        """Internal log method."""
        extra = {
            "layer": self.layer.value,
            "operation": operation,
            "error_code": error_code,
            "duration_ms": duration_ms,
            "context": context,
        }
        self._logger.log(level, message, extra=extra, exc_info=exc_info)

    def debug(self, message: str, **context: Any) -> None:
        """Log debug message."""
        self._log(logging.DEBUG, message, **context)

    def info(self, message: str, **context: Any) -> None:
        """Log info message."""
        self._log(logging.INFO, message, **context)

    def warning(self, message: str, **context: Any) -> None:
        """Log warning message."""
        self._log(logging.WARNING, message, **context)

    def error(
        self,
        message: str,
        error_code: str = "",
        exc_info: bool = False,
        **context: Any,
    ) -> None:
        """Log error message."""
        self._log(logging.ERROR, message, error_code=error_code, exc_info=exc_info, **context)

    def critical(
        self,
        message: str,
        error_code: str = "",
        exc_info: bool = False,
        **context: Any,
    ) -> None:
        """Log critical message."""
        self._log(logging.CRITICAL, message, error_code=error_code, exc_info=exc_info, **context)

    def operation(
        self,
        name: str,
        duration_ms: float,
        success: bool = True,
        error_code: str = "",
        **context: Any,
    ) -> None:
        """Log an operation completion."""
        level = logging.INFO if success else logging.WARNING
        status = "completed" if success else "failed"
        self._log(
            level,
            f"Operation {name} {status}",
            operation=name,
            error_code=error_code,
            duration_ms=duration_ms,
            **context,
        )


def generate_correlation_id() -> str:
    """Generate a new correlation ID."""
    return f"corr-{uuid.uuid4().hex[:12]}"


def set_correlation_id(correlation_id: str) -> contextvars.Token:
    """Set the correlation ID for the current context."""
    return correlation_id_var.set(correlation_id)


def get_correlation_id() -> str:
    """Get the current correlation ID."""
    cid = correlation_id_var.get()
    if not cid:
        cid = generate_correlation_id()
        correlation_id_var.set(cid)
    return cid


def get_logger(name: str, layer: ProtocolLayer) -> ProtocolLogger:
    """Get a logger for a SplitRisk component."""
    return ProtocolLogger(name, layer)


T = TypeVar("T")


def timed_operation(operation_name: str) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator for timing and logging protocol operations.

    The decorated callable must be a method whose instance exposes a
    ``logger`` attribute (a ``ProtocolLogger``). Failures are logged with the
    exception class name as ``error_code`` and re-raised unchanged.
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(self: Any, *args: Any, **kwargs: Any) -> T:
            start = time.monotonic()
            success = True
            error_code = ""
            try:
                return func(self, *args, **kwargs)
            except Exception as exc:
                success = False
                error_code = getattr(exc, "error_code", type(exc).__name__)
                raise
            finally:
                duration_ms = (time.monotonic() - start) * 1000
                self.logger.operation(operation_name, duration_ms, success, error_code=error_code)
        return wrapper
    return decorator


def correlated(func: Callable[..., T]) -> Callable[..., T]:
    """Run ``func`` under a fresh correlation ID, restoring the previous one after.

    Everything logged or emitted while ``func`` runs shares the new ID.
    """
    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> T:
        token = set_correlation_id(generate_correlation_id())
        try:
            return func(*args, **kwargs)
        finally:
            correlation_id_var.reset(token)
    return wrapper
