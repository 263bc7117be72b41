from abc import ABC, abstractmethod


class ModelProxy(ABC):
    name: str

    @abstractmethod
    async def generate(self, payload: dict) -> dict:
        """Send one generate request and return the decoded proxy response body."""
