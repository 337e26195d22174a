from collections.abc import AsyncIterator
from typing import Protocol


class ClientChannelPort(Protocol):
    @property
    def open(self) -> bool: ...

    async def send(self, message: dict) -> None: ...


class ChannelConnection(Protocol):
    async def send(self, text: str) -> None: ...
    def messages(self) -> AsyncIterator[str]: ...
    async def close(self) -> None: ...


class ChannelConnectorPort(Protocol):
    async def connect(self, url: str) -> ChannelConnection: ...
