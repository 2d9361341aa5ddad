"""
Настройки процесса воркера: имя сервиса и логирование.
Параметры брокера живут отдельно, в ``rabbitmq_config``.
"""

from dotenv import load_dotenv
from pydantic_settings import BaseSettings

load_dotenv()


class WorkerSettings(BaseSettings):
    """
    Worker process settings read from the environment (or .env).
    """

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = 'ignore'  # RABBITMQ_* are read by RabbitMQSettings

    # Имя сервиса в событиях и префикс имени RPC сервера
    SERVICE_NAME: str = "rabbit-rpc-worker"

    # Логирование
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "var/log"
    LOG_TO_FILE: bool = False  # ротируемые app.log/error.log в LOG_DIR


settings = WorkerSettings()
