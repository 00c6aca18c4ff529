from typing import Optional
from tablestore.store.base import TableClient
from .base import BaseDatabaseDriver
from .redis_driver import RedisDriver
from .sql_driver import SQLDriver

class DatabaseManager:
    _instance = None

    def __init__(self, settings):
        self.backend = settings.STORE_BACKEND.lower()
        self.sql: Optional[SQLDriver] = None
        self.redis: Optional[RedisDriver] = None
        if self.backend == "sql":
            self.sql = SQLDriver(settings.DATABASE_URL)
        elif self.backend == "redis":
            self.redis = RedisDriver(settings.REDIS_URL)
        else:
            raise ValueError(f"Unsupported STORE_BACKEND: {settings.STORE_BACKEND} (expected sql or redis)")

    @property
    def driver(self) -> BaseDatabaseDriver:
        return self.sql if self.backend == "sql" else self.redis

    async def connect(self):
        await self.driver.connect()

    async def disconnect(self):
        await self.driver.disconnect()

    def get_table_client(self) -> TableClient:
        return self.driver.get_table_client()

    @classmethod
    def get_instance(cls, settings=None):
        if cls._instance is None:
            if settings is None:
                from tablestore.config import settings as app_settings
                settings = app_settings
            cls._instance = cls(settings)
        return cls._instance
