"""
Shared helpers.
"""
import logging
import os


_configured = False


def configure_logging(level: str | None = None) -> None:
    """Configure the root logger once with a console handler."""
    global _configured
    if _configured:
        return
    desired = str(level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, desired, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Return a module logger, configuring logging on first use."""
    configure_logging()
    return logging.getLogger(name)
