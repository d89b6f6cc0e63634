from typing import AsyncIterator, Callable, Optional

from pydantic import BaseModel
from sse_starlette.sse import EventSourceResponse, ServerSentEvent


SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    # Stop nginx-style proxies from buffering the stream
    "X-Accel-Buffering": "no",
}


def encode_event(event: BaseModel) -> ServerSentEvent:
    """One event as a bare `data: <json>` message."""
    return ServerSentEvent(data=event.model_dump_json(by_alias=True), sep="\n")


async def _messages(events: AsyncIterator[BaseModel]) -> AsyncIterator[ServerSentEvent]:
    async for event in events:
        yield encode_event(event)


class ForecastEventResponse(EventSourceResponse):
    """
    Event-stream response for forecast events.

    `on_close` runs after the response is done with the connection, however
    it ended: stream finished, client disconnected, or the body was never
    started at all.
    """

    def __init__(
        self,
        events: AsyncIterator[BaseModel],
        on_close: Optional[Callable[[], None]] = None,
    ):
        super().__init__(_messages(events), headers=SSE_HEADERS, sep="\n")
        self.forecast_events = events
        self.on_close = on_close

    async def __call__(self, scope, receive, send):
        try:
            await super().__call__(scope, receive, send)
        finally:
            # Close the producer even if it is parked between events
            await self.forecast_events.aclose()
            if self.on_close is not None:
                self.on_close()
