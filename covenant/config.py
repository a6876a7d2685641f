from functools import lru_cache
from typing import final

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_FILE_NAME = ".env"


@final
class Config(BaseSettings):
    model_config = SettingsConfigDict(env_file=ENV_FILE_NAME, extra="ignore")

    DEBUG: bool = False

    # ============================================================
    # Server
    # ============================================================
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    VALIDATE_REQUEST: bool = True  # Проверка query/params/headers/body до хендлера
    VALIDATE_RESPONSE: bool = True  # Проверка ответа по схемам контракта

    # ============================================================
    # Logging Configuration
    # ============================================================
    SERVICE_NAME: str = "covenant"
    LOG_LEVEL: str | None = (
        None  # Опционально: переопределение уровня логирования (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    )

    # Уровни логирования для внешних библиотек (можно переопределить через ENV)
    LOG_LEVEL_NOISY_LIBS: str = "WARNING"  # Шумные библиотеки (starlette, httpcore)
    LOG_LEVEL_INFO_LIBS: str = "INFO"  # Информативные библиотеки (uvicorn, httpx)
    LOG_LEVEL_DEBUG_LIBS: str = "WARNING"  # Отладочные библиотеки (dishka, asyncio)


@lru_cache
def get_config() -> Config:
    return Config()
