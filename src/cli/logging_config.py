"""structlog setup for the card CLI."""

import logging
import sys

import structlog

MAX_VALUE_CHARS = 200


def _truncate_long_values(_, __, event_dict: dict) -> dict:
    """Shorten long string fields such as rationales so one event stays one line."""
    for key, value in event_dict.items():
        if key != "event" and isinstance(value, str) and len(value) > MAX_VALUE_CHARS:
            event_dict[key] = value[:MAX_VALUE_CHARS] + "...[truncated]"
    return event_dict


def _processors() -> list:
    callsite = structlog.processors.CallsiteParameter
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.CallsiteParameterAdder([callsite.MODULE, callsite.FUNC_NAME, callsite.LINENO]),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        _truncate_long_values,
    ]


def setup_logging(json_mode: bool = False, level: str = "WARNING") -> None:
    """Route structlog through stdlib logging to stderr.

    stdout carries command output (including ``recall --context`` blocks that
    agents paste into prompts), so nothing is logged there.
    """
    structlog.configure(
        processors=[*_processors(), structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer = structlog.processors.JSONRenderer() if json_mode else structlog.dev.ConsoleRenderer()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.WARNING))
