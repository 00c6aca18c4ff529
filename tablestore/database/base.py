from abc import ABC, abstractmethod

class BaseDatabaseDriver(ABC):
    @abstractmethod
    async def connect(self):
        pass

    @abstractmethod
    async def disconnect(self):
        pass

    @abstractmethod
    def get_table_client(self):
        pass
