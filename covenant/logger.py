import logging
import logging.config
from typing import Any, Optional

from pythonjsonlogger.json import JsonFormatter

from covenant.config import Config


class CustomJsonFormatter(JsonFormatter):
    """Кастомный JSON форматтер с поддержкой request_id"""

    def __init__(self, *args, service_name: str = "unknown", **kwargs):
        super().__init__(*args, **kwargs)
        self.service_name = service_name

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        log_record["service"] = self.service_name

        # Переименовываем поля для удобства
        if "levelname" in log_record:
            log_record["level"] = log_record.pop("levelname")
        if "name" in log_record:
            log_record["logger"] = log_record.pop("name")

        # Добавляем request_id, если есть
        if hasattr(record, "request_id"):
            log_record["request_id"] = record.request_id


def _get_log_level(level_str: str) -> int:
    """Преобразует строку уровня логирования в константу logging"""
    return getattr(logging, level_str.upper(), logging.INFO)


def setup_logging(config: Config, service_name: Optional[str] = None) -> None:
    """
    Настройка логирования для сервиса.

    Args:
        config: Объект конфигурации Pydantic
        service_name: Имя сервиса. Если не указано, берется из config.SERVICE_NAME
    """
    if config.LOG_LEVEL:
        logging_level = _get_log_level(config.LOG_LEVEL)
    else:
        logging_level = logging.DEBUG if config.DEBUG else logging.INFO

    if service_name is None:
        service_name = config.SERVICE_NAME

    noisy_libs_level = _get_log_level(config.LOG_LEVEL_NOISY_LIBS)
    info_libs_level = _get_log_level(config.LOG_LEVEL_INFO_LIBS)
    debug_libs_level = _get_log_level(config.LOG_LEVEL_DEBUG_LIBS)

    access_log_level = logging.INFO if not config.DEBUG else logging.DEBUG

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {
                    "()": CustomJsonFormatter,
                    "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
                    "service_name": service_name,
                },
                "console": {
                    "format": "%(asctime)s [%(levelname)s] [%(name)s] %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "json" if not config.DEBUG else "console",
                    "stream": "ext://sys.stdout",
                }
            },
            "root": {"handlers": ["console"], "level": logging_level},
            "loggers": {
                # ============================================================
                # ASGI Server (INFO_LIBS / NOISY_LIBS)
                # ============================================================
                "uvicorn": {"level": info_libs_level},
                "uvicorn.access": {"level": access_log_level},
                "uvicorn.error": {"level": info_libs_level},
                "starlette": {"level": noisy_libs_level},
                "httpx": {"level": info_libs_level},
                "httpcore": {"level": noisy_libs_level},
                # ============================================================
                # DI & stdlib (DEBUG_LIBS)
                # ============================================================
                "dishka": {"level": debug_libs_level},
                "asyncio": {"level": debug_libs_level},
                # ============================================================
                # Framework loggers (используют основной уровень)
                # ============================================================
                "covenant": {"level": logging_level},
            },
        }
    )

    logger = logging.getLogger(__name__)
    logger.info(
        "Logging configured",
        extra={
            "service": service_name,
            "debug_mode": config.DEBUG,
            "log_level": logging.getLevelName(logging_level),
            "noisy_libs_level": logging.getLevelName(noisy_libs_level),
            "info_libs_level": logging.getLevelName(info_libs_level),
            "debug_libs_level": logging.getLevelName(debug_libs_level),
        },
    )


class Logger:
    """Service-facing logger handed out by the container.

    Every method returns the logger itself so calls can be chained.
    Keyword arguments (``exc_info``, ``extra``) go straight to :mod:`logging`.
    """

    def __init__(self, name: str = "covenant"):
        self._logger = logging.getLogger(name)

    @property
    def name(self) -> str:
        return self._logger.name

    def info(self, msg: str, *args: Any, **kwargs: Any) -> "Logger":
        self._logger.info(msg, *args, **kwargs)
        return self

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> "Logger":
        self._logger.debug(msg, *args, **kwargs)
        return self

    def warn(self, msg: str, *args: Any, **kwargs: Any) -> "Logger":
        self._logger.warning(msg, *args, **kwargs)
        return self

    def error(self, msg: str, *args: Any, **kwargs: Any) -> "Logger":
        self._logger.error(msg, *args, **kwargs)
        return self

    def dispose(self) -> None:
        logger: Optional[logging.Logger] = self._logger
        while logger is not None:
            for handler in logger.handlers:
                handler.flush()
            logger = logger.parent if logger.propagate else None
