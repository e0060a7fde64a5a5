# src/chatstore/providers/base.py
"""
Abstract Base Class for completion services.

This module defines the interface the session core uses to reach a remote
completion endpoint, together with :class:`CompletionStream`, the
cancellable stream of cumulative text deltas returned by streaming
requests.
"""

import abc
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, List, Optional

from ..config.models import ModelConfig
from ..exceptions import RequestCancelledError
from ..models import Message

logger = logging.getLogger(__name__)

# Define a type alias for the context payload passed to providers.
ContextPayload = List[Message]


@dataclass(frozen=True)
class StreamDelta:
    """
    One streamed update.

    Attributes:
        content: The full response text received so far (cumulative).
        done: True for the final delta of the stream.
    """
    content: str
    done: bool = False


class _Failure:
    __slots__ = ("error",)

    def __init__(self, error: BaseException):
        self.error = error


_END = object()


class CompletionStream:
    """
    A cancellable, ordered stream of :class:`StreamDelta` events.

    Wraps an async iterator produced by a provider. The iterator is pumped by
    a background task into a queue, so :meth:`cancel` can abort the
    underlying request at any time, even while a consumer is waiting for
    the next delta. Once cancelled, iteration raises
    :class:`RequestCancelledError` and any delta still queued is dropped.

    If the source ends without a ``done`` delta, a final one repeating the
    last content is emitted.
    """

    def __init__(self, source: AsyncIterator[StreamDelta], name: str = "stream"):
        self._source = source
        self._name = name
        self._queue: "asyncio.Queue[Any]" = asyncio.Queue()
        self._pump: Optional[asyncio.Task] = None
        self._cancelled = False
        self._finished = False
        self._last_content = ""

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Abort the request. Safe to call more than once and after completion."""
        if self._cancelled or self._finished:
            return
        self._cancelled = True
        if self._pump is not None and not self._pump.done():
            self._pump.cancel()
        # Wake a consumer blocked on the queue.
        self._queue.put_nowait(_END)
        logger.debug(f"Completion stream '{self._name}' cancelled.")

    async def _run(self) -> None:
        try:
            async for delta in self._source:
                await self._queue.put(delta)
                if delta.done:
                    break
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await self._queue.put(_Failure(e))
        else:
            await self._queue.put(_END)

    def __aiter__(self) -> "CompletionStream":
        return self

    async def __anext__(self) -> StreamDelta:
        if self._finished:
            raise StopAsyncIteration
        if self._cancelled:
            raise RequestCancelledError()
        if self._pump is None:
            self._pump = asyncio.create_task(self._run(), name=f"completion-{self._name}")

        item = await self._queue.get()
        if self._cancelled:
            raise RequestCancelledError()
        if isinstance(item, _Failure):
            self._finished = True
            raise item.error
        if item is _END:
            # Source ended without an explicit done delta.
            self._finished = True
            return StreamDelta(self._last_content, done=True)
        self._last_content = item.content
        if item.done:
            self._finished = True
        return item

    async def aclose(self) -> None:
        """Cancel the stream and wait for the pump task to unwind."""
        self.cancel()
        if self._pump is not None:
            try:
                await self._pump
            except asyncio.CancelledError:
                pass


class BaseProvider(abc.ABC):
    """
    Abstract Base Class for completion service integrations.

    A provider accepts an ordered message list plus model parameters and
    returns either a single string (`chat_completion`) or a
    :class:`CompletionStream` of cumulative deltas
    (`stream_chat_completion`). Failures surface as
    :class:`chatstore.exceptions.ProviderError` carrying the HTTP status code;
    401 responses raise :class:`chatstore.exceptions.AuthenticationError`.
    """

    @abc.abstractmethod
    def get_name(self) -> str:
        """Return the unique identifier name for this provider."""
        pass

    @abc.abstractmethod
    async def chat_completion(self, context: ContextPayload, model_config: ModelConfig) -> str:
        """
        Perform a non-streaming completion and return the full text.

        Raises:
            ProviderError: For any transport or API failure.
        """
        pass

    @abc.abstractmethod
    def stream_chat_completion(self, context: ContextPayload, model_config: ModelConfig) -> CompletionStream:
        """
        Start a streaming completion.

        The request is issued lazily when the returned stream is first
        iterated. Errors are raised from the iteration.
        """
        pass

    async def close(self) -> None:
        """Release network resources held by the provider."""
        pass
