"""
Live chat between two users about one product.

A session owns one realtime channel and one consumer task. The realtime
callback only enqueues the inserted row; the consumer applies it to the
session on the event loop, so every mutation of ``messages`` happens in one
place.
"""
import asyncio
import contextlib
import enum
import logging
from typing import Callable, List, Optional

from pydantic import ValidationError

from zabibu_fresh import config
from zabibu_fresh.errors import RemoteFetchFailed, SendFailed, Unauthenticated, ValidationFailed
from zabibu_fresh.services.messages.messages import MessageStore
from zabibu_fresh.services.messages.schemas import MessageResponse
from zabibu_fresh.utils.response_helpers import extract_realtime_record

logger = logging.getLogger(__name__)


class SessionState(str, enum.Enum):
    CLOSED = "closed"
    LOADING = "loading"
    READY = "ready"
    SENDING = "sending"


class ChatSession:

    def __init__(self, store: MessageStore, viewer_id: str, counterparty_id: str, product_id: str,
                 max_length: int = None):
        if not viewer_id:
            raise Unauthenticated(action="open chat")
        if not counterparty_id or not product_id:
            raise ValidationFailed("A chat needs a counterparty and a product", action="open chat")
        if viewer_id == counterparty_id:
            raise ValidationFailed("You cannot message yourself", action="open chat")

        self.store = store
        self.viewer_id = viewer_id
        self.counterparty_id = counterparty_id
        self.product_id = product_id
        self.max_length = max_length or config.MESSAGE_MAX_LENGTH

        self.state = SessionState.CLOSED
        self.messages: List[MessageResponse] = []
        self._ids = set()
        self._queue: asyncio.Queue = asyncio.Queue()
        self._channel = None
        self._consumer: Optional[asyncio.Task] = None
        self._listeners: List[Callable[["ChatSession"], None]] = []

    def __repr__(self):
        return (f"ChatSession(viewer={self.viewer_id!r}, counterparty={self.counterparty_id!r}, "
                f"product={self.product_id!r}, state={self.state.value})")

    @property
    def is_open(self) -> bool:
        return self.state is not SessionState.CLOSED

    def add_listener(self, listener: Callable[["ChatSession"], None]):
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    async def __aenter__(self):
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
        return False

    async def open(self) -> "ChatSession":
        """Subscribe first, then load, so no insert falls between the two"""
        if self.is_open:
            return self

        self.state = SessionState.LOADING
        try:
            self._channel = await self.store.subscribe(
                self.product_id,
                self._enqueue,
                channel_name=f"chat_{self.product_id}_{self.viewer_id}",
            )
            await self._reload()
        except BaseException:
            await self.close()
            raise

        self._consumer = asyncio.create_task(self._consume())
        logger.info(f"Opened {self!r}")
        return self

    async def load(self) -> List[MessageResponse]:
        """
        Refresh the local history from the stored thread. Rows appended while the
        fetch was in flight are kept; a closed session only fetches.
        """
        if self.state is SessionState.CLOSED:
            return await self.store.fetch_thread(self.viewer_id, self.counterparty_id, self.product_id)
        if self.state is not SessionState.READY:
            raise RemoteFetchFailed("Please wait for the chat to finish updating", action="load messages")
        return await self._reload()

    async def _reload(self) -> List[MessageResponse]:
        previous = self.state
        self.state = SessionState.LOADING
        try:
            history = await self.store.fetch_thread(self.viewer_id, self.counterparty_id, self.product_id)
        except BaseException:
            if self.state is SessionState.LOADING:
                self.state = previous
            raise

        if self.state is SessionState.CLOSED:
            return history

        fetched_ids = {message.id for message in history}
        arrived = [message for message in self.messages if message.id not in fetched_ids]
        self.messages = list(history) + arrived
        self._ids = fetched_ids | {message.id for message in arrived}
        self.state = SessionState.READY
        self._changed()
        return self.messages

    async def send(self, content: str) -> MessageResponse:
        text = (content or "").strip()
        if not text:
            raise ValidationFailed("Message cannot be empty", action="send message")
        if len(text) > self.max_length:
            raise ValidationFailed(
                f"Message cannot be longer than {self.max_length} characters", action="send message"
            )
        if self.state is SessionState.CLOSED:
            raise SendFailed("This chat is closed", action="send message")
        if self.state is not SessionState.READY:
            raise SendFailed("Please wait for the chat to finish updating", action="send message")

        self.state = SessionState.SENDING
        try:
            message = await self.store.insert_message(
                self.viewer_id, self.counterparty_id, self.product_id, text
            )
        finally:
            if self.state is SessionState.SENDING:
                self.state = SessionState.READY

        if self.state is SessionState.READY:
            self._append(message)
        return message

    def on_remote_message(self, record) -> bool:
        """Apply one realtime row; returns whether it was appended"""
        if isinstance(record, MessageResponse):
            message = record
        else:
            try:
                message = MessageResponse.model_validate(record)
            except ValidationError as e:
                logger.warning(f"Ignoring malformed realtime message: {str(e)}")
                return False

        if message.product_id != self.product_id:
            return False
        if not message.involves(self.viewer_id, self.counterparty_id):
            return False
        if message.id in self._ids:
            return False
        # Own messages were appended when the send returned
        if message.sender_id == self.viewer_id:
            return False

        return self._append(message)

    def drain(self) -> int:
        """Apply every queued realtime row now"""
        appended = 0
        while not self._queue.empty():
            if self.on_remote_message(self._queue.get_nowait()):
                appended += 1
        return appended

    async def close(self):
        consumer, self._consumer = self._consumer, None
        channel, self._channel = self._channel, None
        try:
            if consumer is not None:
                consumer.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await consumer
        finally:
            try:
                if channel is not None:
                    await self.store.unsubscribe(channel)
            finally:
                was_open = self.is_open
                self.state = SessionState.CLOSED
                if was_open:
                    logger.info(f"Closed chat on product {self.product_id}")

    def _enqueue(self, payload):
        record = extract_realtime_record(payload)
        if record is None:
            logger.debug(f"Realtime payload without a record: {payload!r}")
            return
        self._queue.put_nowait(record)

    async def _consume(self):
        while True:
            record = await self._queue.get()
            try:
                self.on_remote_message(record)
            except Exception as e:
                logger.error(f"Error applying realtime message on product {self.product_id}: {str(e)}")

    def _append(self, message: MessageResponse) -> bool:
        if message.id in self._ids:
            return False
        self.messages.append(message)
        self._ids.add(message.id)
        self._changed()
        return True

    def _changed(self):
        for listener in list(self._listeners):
            listener(self)
