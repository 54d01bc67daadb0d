import logging
import os
from pathlib import Path

LOG_DIR = Path(os.environ.get("LLM_TRANSLATOR_LOG_DIR", Path.cwd() / "logs"))
LOG_FILE = LOG_DIR / "app.log"

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_MODES = ("off", "info", "debug")

# Cache for log mode to avoid repeated environment reads
_log_mode_cache = None


def _get_log_mode() -> str:
    """Get log mode from the environment (set_log_mode overrides it)."""
    global _log_mode_cache
    if _log_mode_cache is not None:
        return _log_mode_cache

    log_mode = os.environ.get("LLM_TRANSLATOR_LOG_MODE", "info").lower()
    if log_mode not in LOG_MODES:
        log_mode = "info"
    _log_mode_cache = log_mode
    return log_mode


def _levels_for(log_mode: str):
    if log_mode == 'debug':
        return logging.DEBUG, logging.DEBUG
    if log_mode == 'off':
        # Higher than CRITICAL disables everything
        return logging.CRITICAL + 1, logging.CRITICAL + 1
    return logging.INFO, logging.INFO


def _apply_mode(logger: logging.Logger, log_mode: str) -> None:
    """Bring an already configured logger in line with log_mode."""
    logger_level, console_level = _levels_for(log_mode)
    logger.setLevel(logger_level)

    has_file_handler = any(isinstance(h, logging.FileHandler) for h in logger.handlers)

    if log_mode != 'off' and not has_file_handler:
        _add_file_handler(logger)
    elif log_mode == 'off' and has_file_handler:
        handlers_to_remove = [h for h in logger.handlers if isinstance(h, logging.FileHandler)]
        for handler in handlers_to_remove:
            handler.close()
            logger.removeHandler(handler)

    for handler in logger.handlers:
        if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler):
            handler.setLevel(console_level)


def _add_file_handler(logger: logging.Logger) -> None:
    try:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        f_handler = logging.FileHandler(LOG_FILE, encoding='utf-8')
    except OSError as e:
        # Read-only working directory: keep console logging only
        logger.debug(f"File logging disabled: {e}")
        return
    f_handler.setLevel(logging.DEBUG)
    f_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(f_handler)


def set_log_mode(log_mode: str) -> None:
    """
    Switch the log mode and update every logger created by get_logger.

    Args:
        log_mode: One of "off", "info", "debug".
    """
    global _log_mode_cache
    if log_mode not in LOG_MODES:
        raise ValueError(f"Unknown log mode: {log_mode}")
    _log_mode_cache = log_mode

    # Only loggers with handlers were created by get_logger
    for logger_name in list(logging.Logger.manager.loggerDict.keys()):
        if not logger_name.startswith("llm_translator"):
            continue
        logger = logging.getLogger(logger_name)
        if logger.handlers:
            _apply_mode(logger, log_mode)


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    log_mode = _get_log_mode()

    # Prevent duplicate handlers if logger already configured
    if logger.handlers:
        _apply_mode(logger, log_mode)
        return logger

    logger_level, console_level = _levels_for(log_mode)
    logger.setLevel(logger_level)
    logger.propagate = False

    c_handler = logging.StreamHandler()
    c_handler.setLevel(console_level)
    c_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(c_handler)

    if log_mode != 'off':
        _add_file_handler(logger)

    return logger
