# chatcore/config/logging_config.py
# =============================================================================
# File: chatcore/config/logging_config.py
# Description: Logging configuration using the Rich framework
# =============================================================================

import json
import logging
import logging.handlers
import os
import sys
from datetime import datetime
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme


def get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean value from environment variable."""
    value = os.getenv(key, '').lower()
    return value in ('true', '1', 'yes', 'on') if value else default


def get_env_int(key: str, default: int) -> int:
    """Get integer value from environment variable."""
    try:
        return int(os.getenv(key, str(default)))
    except ValueError:
        return default


CHATCORE_THEME = Theme({
    "debug": "magenta dim",
    "info": "green",
    "warning": "dark_goldenrod",
    "error": "red",
    "critical": "bold red",
    "timestamp": "grey70",
    "logger_name": "grey35",
    "message": "grey85",
})

PLAIN_FORMAT = "[%(asctime)s] [%(levelname)-8s] [%(name)-40s] %(message)s"
PLAIN_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are too chatty at INFO
DEFAULT_NOISE_CONFIG = {
    "aiokafka": logging.WARNING,
    "kafka": logging.WARNING,
    "asyncpg": logging.WARNING,
    "asyncio": logging.WARNING,
    "granian.access": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,

    # chatcore components
    "chatcore.infra.pg_client": logging.INFO,
    "chatcore.infra.redpanda_adapter": logging.INFO,
}


class ProductionFormatter(logging.Formatter):
    """JSON formatter for production environments"""

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if get_env_bool('LOG_JSON_INCLUDE_EXTRAS', True):
            for extra in ('user_id', 'chat_id', 'request_id', 'correlation_id'):
                if hasattr(record, extra):
                    log_obj[extra] = str(getattr(record, extra))

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj)


def get_logger_level_from_env(logger_name: str, default_level: int) -> int:
    """Get logger level from environment variable.

    e.g. "aiokafka" -> LOGLEVEL_AIOKAFKA,
         "chatcore.infra.pg_client" -> LOGLEVEL_CHATCORE_INFRA_PG_CLIENT
    """
    env_name = f"LOGLEVEL_{logger_name.replace('.', '_').upper()}"

    level_str = os.getenv(env_name, '').upper()
    if level_str:
        level_map = {
            'DEBUG': logging.DEBUG,
            'INFO': logging.INFO,
            'WARNING': logging.WARNING,
            'WARN': logging.WARNING,
            'ERROR': logging.ERROR,
            'CRITICAL': logging.CRITICAL,
        }
        return level_map.get(level_str, default_level)

    return default_level


def setup_logging(
        service_name: str = "chatcore",
        log_level: Optional[str] = None,
        log_file: Optional[str] = None,
        enable_json: Optional[bool] = None,
        rich_tracebacks: bool = True,
) -> None:
    """
    Configure logging for a chatcore process.

    Args:
        service_name: Name of the service (e.g., "api")
        log_level: Override log level (defaults to LOG_LEVEL env, then INFO)
        log_file: Optional log file path (defaults to LOG_FILE env)
        enable_json: Enable JSON formatting for production
        rich_tracebacks: Enable rich tracebacks on the console handler
    """
    level = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_file = log_file or os.getenv("LOG_FILE")

    if enable_json is None:
        enable_json = get_env_bool('LOG_JSON_FORMAT', False)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicate logs on reload
    root_logger.handlers.clear()

    use_rich = not enable_json and (sys.stdout.isatty() or get_env_bool("FORCE_COLOR", False))

    if use_rich:
        console = Console(
            theme=CHATCORE_THEME,
            force_terminal=get_env_bool("FORCE_COLOR", False),
            width=get_env_int('LOG_CONSOLE_WIDTH', 0) or None,
        )
        rich_handler = RichHandler(
            console=console,
            show_path=False,
            markup=False,
            rich_tracebacks=rich_tracebacks,
            tracebacks_show_locals=False,
        )
        root_logger.addHandler(rich_handler)

    elif enable_json:
        json_handler = logging.StreamHandler(sys.stdout)
        json_handler.setFormatter(ProductionFormatter())
        root_logger.addHandler(json_handler)

    else:
        plain_handler = logging.StreamHandler(sys.stdout)
        plain_handler.setFormatter(logging.Formatter(PLAIN_FORMAT, datefmt=PLAIN_DATEFMT))
        root_logger.addHandler(plain_handler)

    if log_file:
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=get_env_int('LOG_MAX_SIZE_MB', 100) * 1024 * 1024,
            backupCount=get_env_int('LOG_BACKUP_COUNT', 5),
            encoding=os.getenv('LOG_FILE_ENCODING', 'utf-8'),
        )
        # Always plain for files
        file_handler.setFormatter(logging.Formatter(PLAIN_FORMAT, datefmt=PLAIN_DATEFMT))
        root_logger.addHandler(file_handler)

    for logger_name, default_level in DEFAULT_NOISE_CONFIG.items():
        logging.getLogger(logger_name).setLevel(get_logger_level_from_env(logger_name, default_level))

    logger = logging.getLogger(f"{service_name}.startup")
    logger.info(f"Logging configured for {service_name} service")


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Args:
        name: Logger name

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)
