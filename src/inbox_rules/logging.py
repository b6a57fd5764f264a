"""Logging setup for inbox-rules.

Each account's rule set activity goes to its own rotating log file, and
every ERROR record under the ``inbox_rules`` logger tree is also collected
in one shared file:
- inbox-rules-error.log: Errors from all accounts and modules
- inbox-rules-{account}.log: Per-account filter activity

Usage:
    from inbox_rules.logging import setup_logging, get_account_logger

    setup_logging(settings)

    logger = get_account_logger("work")
    manager = RuleSetManager(store=store, logger=logger)
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

from inbox_rules.config import Settings, safe_account_name

ROOT_LOGGER = "inbox_rules"
ERROR_LOG_FILE = "inbox-rules-error.log"
ERROR_LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(account)s] %(name)s: %(message)s"

# Module-level state
_settings: Settings | None = None
_error_handler: RotatingFileHandler | None = None
_account_loggers: dict[str, logging.Logger] = {}


class AccountFilter(logging.Filter):
    """Stamps records with the account they were logged for ("-" if none)."""

    def __init__(self, account: str = "-") -> None:
        super().__init__()
        self.account = account

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "account"):
            record.account = self.account
        return True


def _rotating_handler(settings: Settings, filename: str, fmt: str) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        settings.log_dir / filename,
        maxBytes=settings.log_rotation_size_mb * 1024 * 1024,
        backupCount=settings.log_backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(fmt))
    return handler


def setup_logging(settings: Settings | None = None) -> None:
    """Configure the ``inbox_rules`` logger tree from settings.

    Sets the configured level on the package logger and attaches the shared
    error log. Calling it again replaces the previous configuration.

    Args:
        settings: Log directory, level, format and rotation (default: Settings()).
    """
    global _settings, _error_handler

    reset_logging()
    _settings = settings or Settings()
    _settings.log_dir.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger(ROOT_LOGGER)
    root_logger.setLevel(getattr(logging, _settings.log_level.upper(), logging.INFO))

    _error_handler = _rotating_handler(_settings, ERROR_LOG_FILE, ERROR_LOG_FORMAT)
    _error_handler.setLevel(logging.ERROR)
    _error_handler.addFilter(AccountFilter())
    root_logger.addHandler(_error_handler)


def get_account_logger(account: str) -> logging.Logger:
    """Get or create the logger for one account's rule set.

    The logger inherits the configured level and propagates to the package
    logger, so its errors also reach the shared error log.

    Args:
        account: Account name (e.g., "work", "personal")

    Returns:
        Logger that writes to inbox-rules-{account}.log
    """
    if account in _account_loggers:
        return _account_loggers[account]

    if _settings is None:
        setup_logging()
    settings = _settings

    safe_name = safe_account_name(account)
    logger = logging.getLogger(f"{ROOT_LOGGER}.account.{safe_name}")
    logger.addFilter(AccountFilter(account))
    logger.addHandler(
        _rotating_handler(settings, f"inbox-rules-{safe_name}.log", settings.log_format)
    )

    _account_loggers[account] = logger
    return logger


def reset_logging() -> None:
    """Detach every handler this module installed (primarily for testing)."""
    global _settings, _error_handler

    for logger in _account_loggers.values():
        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)
        for log_filter in logger.filters[:]:
            logger.removeFilter(log_filter)
    _account_loggers.clear()

    if _error_handler is not None:
        logging.getLogger(ROOT_LOGGER).removeHandler(_error_handler)
        _error_handler.close()
        _error_handler = None

    _settings = None
