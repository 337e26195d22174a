from collections.abc import AsyncIterator
from typing import Protocol


class MediaSourcePort(Protocol):
    @property
    def chunks_received(self) -> int: ...

    async def start(self, url: str, live: bool = True) -> None: ...
    def chunks(self) -> AsyncIterator[bytes]: ...
    async def stop(self) -> None: ...
