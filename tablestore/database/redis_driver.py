import redis.asyncio as redis
from tablestore.store.redis_client import RedisTableClient
from .base import BaseDatabaseDriver

class RedisDriver(BaseDatabaseDriver):
    def __init__(self, url: str):
        self.url = url
        self.client = None

    async def connect(self):
        self.client = redis.from_url(self.url, decode_responses=True)
        await self.client.ping()

    async def disconnect(self):
        if self.client:
            await self.client.aclose()
            self.client = None

    def get_table_client(self) -> RedisTableClient:
        if self.client is None:
            raise RuntimeError("Redis driver is not connected; call connect() first")
        return RedisTableClient(self.client)
