import logging
import logging.config
from pathlib import Path
from typing import Dict, Any


def setup_logging(log_level: str = "INFO", log_dir: str = "var/log", log_to_file: bool = False) -> None:
    """
    Настройка системы логирования для приложения.

    Args:
        log_level: Уровень логирования (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Директория для сохранения файлов логов
        log_to_file: Писать ли логи в ротируемые файлы помимо консоли
    """
    handlers: Dict[str, Any] = {
        "console": {
            "class": "logging.StreamHandler",
            "level": "DEBUG",
            "formatter": "default",
            "stream": "ext://sys.stdout"
        },
    }
    root_handlers = ["console"]
    error_handlers = ["console"]

    log_path = Path(log_dir)
    if log_to_file:
        log_path.mkdir(parents=True, exist_ok=True)
        handlers["file_info"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": "INFO",
            "formatter": "detailed",
            "filename": str(log_path / "app.log"),
            "maxBytes": 10485760,  # 10MB
            "backupCount": 5,
            "encoding": "utf8"
        }
        handlers["file_error"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": "ERROR",
            "formatter": "detailed",
            "filename": str(log_path / "error.log"),
            "maxBytes": 10485760,  # 10MB
            "backupCount": 5,
            "encoding": "utf8"
        }
        root_handlers = ["console", "file_info", "file_error"]
        error_handlers = ["console", "file_error"]

    logging_config: Dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S"
            },
            "detailed": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(module)s - %(funcName)s:%(lineno)d - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S"
            }
        },
        "handlers": handlers,
        "loggers": {
            "": {  # root logger
                "level": log_level,
                "handlers": root_handlers
            },
            # aio-pika и aiormq слишком многословны на INFO
            "aio_pika": {
                "level": "WARNING",
                "handlers": error_handlers,
                "propagate": False
            },
            "aiormq": {
                "level": "WARNING",
                "handlers": error_handlers,
                "propagate": False
            },
        }
    }

    logging.config.dictConfig(logging_config)

    logger = logging.getLogger(__name__)
    if log_to_file:
        logger.info(f"Logging system initialized. Log files will be saved to: {log_path.absolute()}")
    logger.info(f"Log level set to: {log_level}")


def get_logger(name: str) -> logging.Logger:
    """
    Получить логгер с указанным именем.

    Args:
        name: Имя логгера

    Returns:
        logging.Logger: Настроенный логгер
    """
    return logging.getLogger(name)
