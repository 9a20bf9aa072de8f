from __future__ import annotations

import abc
from typing import Optional


class KeyValueStore(abc.ABC):
    """
    Text key-value store holding chat policies, violation histories and
    processed-message markers. No transactions: last writer wins.

    Implementations raise ``StoreError`` when the backend fails.
    """

    @abc.abstractmethod
    async def connect(self) -> None:
        ...

    @abc.abstractmethod
    async def disconnect(self) -> None:
        ...

    @abc.abstractmethod
    async def get(self, key: str) -> Optional[str]:
        ...

    @abc.abstractmethod
    async def put(self, key: str, value: str, *, ttl_seconds: Optional[float] = None) -> None:
        ...

    @abc.abstractmethod
    async def delete(self, key: str) -> None:
        ...

    @abc.abstractmethod
    async def purge_expired(self) -> int:
        """Drop entries whose TTL has passed; returns how many were removed."""
