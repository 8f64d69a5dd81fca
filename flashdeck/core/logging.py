import logging
import os
from typing import Any, MutableMapping, Optional


DEFAULT_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
DEFAULT_FORMAT = (
    "%(asctime)s | %(levelname)s | %(name)s | "
    "session=%(session_id)s generation=%(generation_id)s | %(message)s"
)

CONTEXT_FIELDS = ("session_id", "generation_id")


class ContextFilter(logging.Filter):
    """Fills engine context fields with "-" so the formatter never misses them."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        for name in CONTEXT_FIELDS:
            if not hasattr(record, name):
                setattr(record, name, "-")
        return True


class EngineLogger(logging.LoggerAdapter):
    """Logger adapter that stamps every record with an engine's identifiers.

    Context can be updated in place (``bind``) because an engine learns its
    generation id only after the create call returns.
    """

    def __init__(self, logger: logging.Logger, **context: Any) -> None:
        super().__init__(logger, dict(context))

    def bind(self, **context: Any) -> None:
        self.extra.update(context)  # type: ignore[union-attr]

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        extra = dict(self.extra or {})
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = {k: v for k, v in extra.items() if v is not None}
        return msg, kwargs


def setup_logging(level: Optional[str] = None, fmt: Optional[str] = None) -> None:
    """Initialize root logger with the flashdeck formatter and context filter."""
    resolved_level = getattr(logging, (level or DEFAULT_LEVEL), logging.INFO)
    formatter = logging.Formatter(fmt or DEFAULT_FORMAT)

    root = logging.getLogger()
    root.setLevel(resolved_level)

    # CLI entrypoints may call this more than once
    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    handler.addFilter(ContextFilter())
    root.addHandler(handler)


def get_logger(name: str, **context: Any) -> EngineLogger:
    """Get a module logger bound to ``context``; ensure root is initialized."""
    if not logging.getLogger().handlers:
        setup_logging()
    return EngineLogger(logging.getLogger(name), **context)
