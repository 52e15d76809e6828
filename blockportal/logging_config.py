import logging.config


def configure_logging(level: str = "INFO") -> None:
    """Single stdout handler for the whole app; werkzeug's access log stays at WARNING."""
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "plain": {
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "stdout": {
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
                "formatter": "plain",
            },
        },
        "loggers": {
            "blockportal": {"level": level, "handlers": ["stdout"], "propagate": False},
            "werkzeug": {"level": "WARNING"},
        },
        "root": {"level": "WARNING", "handlers": ["stdout"]},
    })
