"""Persistent-socket connector."""

import asyncio
import uuid
from typing import Optional

from ..codec import Codec
from ..config import DEFAULT_PUSH_TIMEOUT
from ..exceptions import PushTimeoutError
from ..realtime.multiplexer import SubscriptionMultiplexer
from ..realtime.protocol import Operation
from ..session import RequestContext
from .http import HTTPConnector


class WSConnector(HTTPConnector):
    """Connector that pushes documents over the shared socket.

    Reads and writes with request/response semantics go over HTTP exactly as
    in HTTPConnector. ``push`` is sent as a one-shot subscription under a
    random event name; the server answers with a push event carrying the id
    it assigned.
    """

    def __init__(
        self,
        multiplexer: SubscriptionMultiplexer,
        base_url: str = "",
        codec: Optional[Codec] = None,
        request_timeout: float = 30.0,
        push_timeout: float = DEFAULT_PUSH_TIMEOUT,
    ):
        super().__init__(base_url, codec=codec, request_timeout=request_timeout)
        self.multiplexer = multiplexer
        self.push_timeout = push_timeout

    async def push(self, request: dict, context: RequestContext) -> str:
        """Insert a document and wait for the id the server assigns.

        Raises:
            PushTimeoutError: If no reply arrives within ``push_timeout`` seconds
        """
        reply = asyncio.get_running_loop().create_future()

        def on_reply(value):
            if not reply.done():
                reply.set_result(value)

        unsubscribe = self.multiplexer.subscribe(
            uuid.uuid4().hex, request, Operation.PUSH, on_reply, context
        )
        try:
            return await asyncio.wait_for(reply, self.push_timeout)
        except asyncio.TimeoutError:
            raise PushTimeoutError(self.push_timeout) from None
        finally:
            unsubscribe()
