"""
Structured Logging.

Every geoagent logger writes one JSON object per line to stdout and tags
each record with the component that emitted it, so queue and pipeline
logs can be filtered by job, execution or stage in a log collector.

Levels:
    GEOAGENT_LOG_LEVEL_<COMPONENT>   e.g. GEOAGENT_LOG_LEVEL_WORKER=DEBUG
    GEOAGENT_LOG_LEVEL               default for every component
    DEBUG_LOGGING=true               shorthand for DEBUG everywhere

Exports:
    ComponentType: Pipeline layer emitting a record
    LogLevel: Level names with conversion to logging constants
    LogContext: Correlation fields passed per call through ``extra``
    JSONFormatter: One JSON object per log line
    LoggerFactory: Creates component loggers
    log_exceptions: Log-and-reraise decorator (sync and async)
"""

from enum import Enum
from typing import Optional, Dict, Any
from datetime import datetime, timezone
from dataclasses import dataclass, asdict
import inspect
import logging
import sys
import os
import json
import traceback
from functools import wraps


# ============================================================================
# COMPONENT TYPES
# ============================================================================

class ComponentType(Enum):
    """Pipeline layer a logger belongs to; part of the logger name."""
    STORE = "store"            # Reactive state store
    SERVICE = "service"        # Catalog, fetcher, treatments, orchestrator
    REPOSITORY = "repository"  # Host table access
    ADAPTER = "adapter"        # External HTTP integrations
    WORKER = "worker"          # Queue consumer and poller
    CONFIG = "config"          # Configuration loading


class LogLevel(Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    def to_python_level(self) -> int:
        return getattr(logging, self.value)

    @classmethod
    def from_string(cls, level: str) -> 'LogLevel':
        """Case-insensitive lookup; raises ValueError for unknown names."""
        try:
            return cls[level.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown log level: {level!r}") from None


def resolve_level(component_type: ComponentType) -> LogLevel:
    """Level for a component from the environment (INFO when unset)."""
    for var in (f"GEOAGENT_LOG_LEVEL_{component_type.name}", "GEOAGENT_LOG_LEVEL"):
        value = os.getenv(var)
        if value:
            return LogLevel.from_string(value)
    if os.getenv('DEBUG_LOGGING', '').lower() == 'true':
        return LogLevel.DEBUG
    return LogLevel.INFO


# ============================================================================
# LOG CONTEXT
# ============================================================================

@dataclass
class LogContext:
    """
    Correlation fields for one job and the query it runs.

    Usage:
        context = LogContext(job_id=str(job.id), table="AgentQueries")
        logger.info("Executing query", extra=context.as_extra())
    """
    job_id: Optional[str] = None        # Queue row id
    job_key: Optional[str] = None       # id + version/created_at
    execution_id: Optional[str] = None  # ExecutionResult.executionId
    stage: Optional[str] = None         # zone, reference, treatment, ...
    table: Optional[str] = None
    doc_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    def as_extra(self) -> Dict[str, Any]:
        return {'custom_dimensions': self.to_dict()}


# ============================================================================
# FORMATTING
# ============================================================================

class JSONFormatter(logging.Formatter):
    """Render a record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'location': f"{record.module}.{record.funcName}:{record.lineno}",
        }

        dimensions = getattr(record, 'custom_dimensions', None)
        if dimensions:
            payload['customDimensions'] = dimensions

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, _ = record.exc_info
            payload['exception'] = {
                'type': exc_type.__name__,
                'message': str(exc_value),
                'traceback': self.formatException(record.exc_info),
            }

        return json.dumps(payload, default=str, ensure_ascii=False)


class _DimensionsFilter(logging.Filter):
    """Merges the logger's component fields under per-call custom_dimensions."""

    def __init__(self, dimensions: Dict[str, Any]):
        super().__init__()
        self.dimensions = dimensions

    def filter(self, record: logging.LogRecord) -> bool:
        per_call = getattr(record, 'custom_dimensions', None) or {}
        record.custom_dimensions = {**self.dimensions, **per_call}
        return True


# ============================================================================
# LOGGER FACTORY
# ============================================================================

class LoggerFactory:
    """
    Creates ``geoagent.<component>.<name>`` loggers.

    Calling ``create_logger`` again for the same name reuses the logger
    and its handler; only the level and fixed context are refreshed.

    Example:
        logger = LoggerFactory.create_logger(ComponentType.SERVICE, "QueryOrchestrator")
        logger.info("Executing query")
    """

    @classmethod
    def create_logger(
        cls,
        component_type: ComponentType,
        name: str,
        context: Optional[LogContext] = None,
        level: Optional[LogLevel] = None
    ) -> logging.Logger:
        """
        Args:
            component_type: Pipeline layer
            name: Component name (e.g., "JobQueueConsumer")
            context: Fields attached to every record of this logger
            level: Overrides the level resolved from the environment

        Returns:
            Configured Python logger
        """
        python_level = (level or resolve_level(component_type)).to_python_level()
        logger = logging.getLogger(f"geoagent.{component_type.value}.{name}")
        logger.setLevel(python_level)

        if not any(isinstance(h.formatter, JSONFormatter) for h in logger.handlers):
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(JSONFormatter())
            logger.addHandler(handler)
        for handler in logger.handlers:
            if isinstance(handler.formatter, JSONFormatter):
                handler.setLevel(python_level)

        dimensions = {
            **(context.to_dict() if context else {}),
            'component_type': component_type.value,
            'component_name': name,
        }
        existing = next((f for f in logger.filters if isinstance(f, _DimensionsFilter)), None)
        if existing is None:
            logger.addFilter(_DimensionsFilter(dimensions))
        else:
            existing.dimensions = dimensions

        return logger


# ============================================================================
# EXCEPTION DECORATOR
# ============================================================================

def log_exceptions(component_type: Optional[ComponentType] = None,
                   component_name: Optional[str] = None,
                   logger: Optional[logging.Logger] = None):
    """
    Log any exception escaping the wrapped function, then re-raise it.

    Works on plain functions and coroutine functions.

    Example:
        @log_exceptions(ComponentType.SERVICE, "FeatureFetcher")
        async def fetch(...):
            ...
    """
    def decorator(func):
        target = logger
        if target is None:
            target = LoggerFactory.create_logger(
                component_type or ComponentType.SERVICE,
                component_name or func.__module__ or "unknown",
            )

        def report(exc: Exception, args, kwargs) -> None:
            target.error(
                f"Exception in {func.__name__}: {type(exc).__name__}",
                exc_info=True,
                extra={'custom_dimensions': {
                    'function_name': func.__name__,
                    'function_module': func.__module__,
                    'exception_type': type(exc).__name__,
                    'exception_message': str(exc),
                    'function_args': repr(args)[:500],
                    'function_kwargs': repr(kwargs)[:500],
                    'traceback': traceback.format_exc(),
                }},
            )

        if inspect.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    report(e, args, kwargs)
                    raise
            return async_wrapper

        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                report(e, args, kwargs)
                raise
        return wrapper
    return decorator
