import structlog

from kaspa_aio.models.config import AppConfig

# Map string level to integer
LEVELS = {
    "INFO": 20,
    "DEBUG": 10,
    "TRACE": 5,
}

_configured_for: tuple[int, str] | None = None


def configure_logging(config: AppConfig) -> None:
    """Configure structlog from the application config.

    Reconfigures only when the level or renderer changed, so repeated calls
    from module-level ``get_logger`` are cheap.

    Args:
        config: Application configuration
    """
    global _configured_for

    log_level = LEVELS.get(config.advanced.log_level, 20)
    key = (log_level, config.advanced.log_format)
    if _configured_for == key:
        return

    renderer: structlog.types.Processor
    if config.advanced.log_format == "console":
        renderer = structlog.dev.ConsoleRenderer(colors=False)
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,  # Disable cache to allow level updates
    )
    _configured_for = key


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger bound to a component name.

    Args:
        name: Logger name (usually ``__name__``)

    Returns:
        Configured logger instance
    """
    from kaspa_aio.config import get_config

    configure_logging(get_config())
    return structlog.get_logger(name).bind(component=name.rsplit(".", 1)[-1])
