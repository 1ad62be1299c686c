import asyncio

from labreport.remote.models import StatusUpdate


class StatusChannel:
    """Depth-1 status channel for one report: a lagging consumer sees only the latest update.

    The producer publishes and eventually closes the channel, optionally
    with an error that is raised to the consumer after any pending update.
    """

    def __init__(self, report_id: str) -> None:
        self.report_id = report_id
        self._latest: StatusUpdate | None = None
        self._closed = False
        self._error: BaseException | None = None
        self._event = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, update: StatusUpdate) -> None:
        if self._closed:
            return
        self._latest = update
        self._event.set()

    def close(self, error: BaseException | None = None) -> None:
        if self._closed:
            return
        self._closed = True
        self._error = error
        self._event.set()

    def __aiter__(self) -> "StatusChannel":
        return self

    async def __anext__(self) -> StatusUpdate:
        while self._latest is None and not self._closed:
            self._event.clear()
            await self._event.wait()
        if self._latest is not None:
            update, self._latest = self._latest, None
            return update
        if self._error is not None:
            error, self._error = self._error, None
            raise error
        raise StopAsyncIteration
