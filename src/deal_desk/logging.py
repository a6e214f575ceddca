"""
Structured logging configuration for the Deal Desk engine.

Every event carries whichever of trace, organization, actor and quote IDs
are bound by the enclosing `logging_context`. Output is pretty console
lines during development and JSON when LOG_JSON is set.
"""

import logging
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Generator, Mapping

import structlog
from structlog.types import Processor

from .config import config

CONTEXT_FIELDS = ('trace_id', 'org_id', 'actor_id', 'quote_id')

_log_context: ContextVar[Mapping[str, str]] = ContextVar('deal_desk_log_context', default={})


def get_trace_id() -> str | None:
    return _log_context.get().get('trace_id')


def get_org_id() -> str | None:
    return _log_context.get().get('org_id')


def get_actor_id() -> str | None:
    return _log_context.get().get('actor_id')


def get_quote_id() -> str | None:
    return _log_context.get().get('quote_id')


def add_context_info(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Processor that copies the bound context into the event, never overriding explicit keys."""
    for key, value in _log_context.get().items():
        event_dict.setdefault(key, value)
    return event_dict


def configure_logging(
    json_output: bool | None = None,
    log_level: str | None = None,
) -> None:
    """
    Configure structlog for the application.

    Args:
        json_output: JSON lines if True, console if False
                     (defaults to config.LOG_JSON)
        log_level: Override log level (defaults to config.LOG_LEVEL)
    """
    if json_output is None:
        json_output = config.LOG_JSON
    level = log_level or config.LOG_LEVEL
    level_num = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        format='%(message)s',
        stream=sys.stdout,
        level=level_num,
    )

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_context_info,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt='iso'),
    ]

    if json_output:
        processors: list[Processor] = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Logger for a module, typically get_logger(__name__)."""
    return structlog.get_logger(name)


@contextmanager
def logging_context(
    trace_id: str | None = None,
    org_id: str | None = None,
    actor_id: str | None = None,
    quote_id: str | None = None,
) -> Generator[None, None, None]:
    """
    Bind IDs for every log event emitted inside the block.

    None leaves an outer binding in place; the previous context is
    restored on exit.

    Usage:
        with logging_context(org_id=quote.org_id, quote_id=str(quote.id)):
            logger.info('workflow.step_decided')
    """
    given = {
        'trace_id': trace_id,
        'org_id': org_id,
        'actor_id': actor_id,
        'quote_id': quote_id,
    }
    merged = {**_log_context.get(), **{k: v for k, v in given.items() if v is not None}}
    token = _log_context.set(merged)
    try:
        yield
    finally:
        _log_context.reset(token)


class OperationTimer:
    """
    Stage timings for one engine operation.

    A stage whose body raises is still timed and is remembered as
    `failed_stage`, so rejected operations log where they stopped.

    Usage:
        timer = OperationTimer()
        with timer.stage('resolve'):
            ...
        logger.info('quote_service.quote_created', **timer.summary())
    """

    def __init__(self):
        self.stages: dict[str, float] = {}
        self.failed_stage: str | None = None
        self.start_time: float = time.perf_counter()

    @contextmanager
    def stage(self, name: str) -> Generator[None, None, None]:
        started = time.perf_counter()
        try:
            yield
        except BaseException:
            self.failed_stage = name
            raise
        finally:
            self.stages[name] = (time.perf_counter() - started) * 1000

    def record(self, name: str, duration_ms: float) -> None:
        self.stages[name] = duration_ms

    @property
    def total_ms(self) -> float:
        return (time.perf_counter() - self.start_time) * 1000

    def summary(self) -> dict[str, Any]:
        summary: dict[str, Any] = {
            'total_ms': round(self.total_ms, 2),
            'stages': {k: round(v, 2) for k, v in self.stages.items()},
        }
        if self.failed_stage is not None:
            summary['failed_stage'] = self.failed_stage
        return summary


configure_logging()
