"""Logging setup: JSON for deployed builds, text for local development."""

import logging

from pythonjsonlogger.json import JsonFormatter

from pipeline_crm.core.config import Settings

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(settings: Settings) -> None:
    """Set up root logging from LOG_FORMAT and LOG_LEVEL.

    json: Structured JSON via python-json-logger.
    text: Human-readable format.

    Args:
        settings: Settings carrying LOG_FORMAT and LOG_LEVEL.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    # Remove existing handlers to avoid duplicate output
    root_logger.handlers.clear()

    handler = logging.StreamHandler()

    if settings.LOG_FORMAT == "json":
        formatter: logging.Formatter = JsonFormatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={
                "asctime": "timestamp",
                "levelname": "level",
                "name": "service",
            },
            static_fields={"app": "pipeline-crm"},
        )
    else:
        formatter = logging.Formatter(TEXT_FORMAT)

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
