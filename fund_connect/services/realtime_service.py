"""
Realtime Service

Live delivery of new conversation messages.

- ``RealtimeService`` registers Supabase Realtime listeners for INSERTs on
  ``public.messages`` filtered by conversation.
- ``MessageThread`` is one viewer's in-memory, ordered copy of a conversation,
  including optimistic (not yet persisted) messages.
- ``ConversationFeed`` ties a thread to a subscription and keeps the viewer's
  read marker current.
"""
import asyncio
import inspect
import itertools
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set, Tuple, Union

from supabase import AsyncClient

from fund_connect.models.messaging import Message
from fund_connect.models.user import SessionContext
from fund_connect.services.errors import FundConnectError
from fund_connect.services.message_service import MessageService, sort_messages, validate_content
from fund_connect.services.supabase_client import create_realtime_client
from fund_connect.utils import utc_now

logger = logging.getLogger(__name__)

InsertHandler = Callable[[Dict[str, Any]], Union[None, Awaitable[None]]]


def extract_record(payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    New row of a postgres_changes payload.

    Supports the nested ``data.record`` shape as well as flat ``record``/``new``.
    """
    if not isinstance(payload, dict):
        return None
    data = payload.get("data")
    if isinstance(data, dict) and isinstance(data.get("record"), dict):
        return data["record"]
    for key in ("record", "new"):
        if isinstance(payload.get(key), dict):
            return payload[key]
    return None


class Subscription:
    """Handle returned by ``RealtimeService.subscribe``"""

    def __init__(self, service: "RealtimeService", conversation_id: str, channel: Any):
        self.service = service
        self.conversation_id = conversation_id
        self.channel = channel
        self.active = True

    async def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        await self.service.remove_channel(self.channel)
        logger.info(f"Unsubscribed from conversation {self.conversation_id}")


class RealtimeService:
    """Registers message INSERT listeners on Supabase Realtime"""

    def __init__(self, client_factory: Callable[[], Awaitable[AsyncClient]] = create_realtime_client):
        self._client_factory = client_factory
        self._client: Optional[AsyncClient] = None
        self._lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()

    async def _get_client(self) -> AsyncClient:
        async with self._lock:
            if self._client is None:
                self._client = await self._client_factory()
            return self._client

    async def subscribe(self, conversation_id: str, on_insert: InsertHandler) -> Subscription:
        """
        Listen for new messages in a conversation.

        Args:
            conversation_id: Conversation UUID
            on_insert: Called with each inserted message row; coroutine
                handlers are scheduled on the running loop

        Returns:
            Subscription whose ``unsubscribe()`` removes the listener
        """
        client = await self._get_client()
        loop = asyncio.get_running_loop()

        def handle(payload: Dict[str, Any]) -> None:
            record = extract_record(payload)
            if record is None:
                logger.warning(f"Ignoring realtime payload without a record: {payload}")
                return
            result = on_insert(record)
            if inspect.isawaitable(result):
                loop.call_soon_threadsafe(self._track, loop, result)

        channel = client.channel(f"conversation:{conversation_id}")
        channel.on_postgres_changes(
            "INSERT",
            schema="public",
            table="messages",
            filter=f"conversation_id=eq.{conversation_id}",
            callback=handle,
        )
        await channel.subscribe()

        logger.info(f"Subscribed to new messages in conversation {conversation_id}")
        return Subscription(self, conversation_id, channel)

    def _track(self, loop: asyncio.AbstractEventLoop, awaitable: Awaitable[None]) -> None:
        task = loop.create_task(awaitable)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Realtime insert handler failed: {task.exception()}")

    async def remove_channel(self, channel: Any) -> None:
        if self._client is not None:
            await self._client.remove_channel(channel)


class MessageThread:
    """Ordered in-memory messages of one conversation, as seen by one viewer"""

    def __init__(self, conversation_id: str, messages: Optional[Iterable[Message]] = None):
        self.conversation_id = conversation_id
        self._messages: List[Message] = sort_messages(list(messages or []))
        self._temp_ids = itertools.count(1)

    @property
    def messages(self) -> List[Message]:
        return list(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def _index(self, message_id: str) -> Optional[int]:
        for index, message in enumerate(self._messages):
            if message.id == message_id:
                return index
        return None

    def add_optimistic(self, sender_id: str, content: str) -> Message:
        """
        Append a local-only copy of a message being sent.

        Raises:
            InvalidInputError: Empty content
        """
        message = Message(
            id=f"temp-{next(self._temp_ids)}",
            conversation_id=self.conversation_id,
            sender_id=sender_id,
            content=validate_content(content),
            timestamp=utc_now(),
            pending=True,
        )
        self._messages.append(message)
        return message

    def reconcile(self, temp_id: str, persisted: Message) -> Message:
        """Replace an optimistic message with its stored row"""
        temp_index = self._index(temp_id)
        if self._index(persisted.id) is not None:
            # The stored row was already delivered by the live channel
            if temp_index is not None:
                del self._messages[temp_index]
            return persisted

        if temp_index is None:
            self._messages.append(persisted)
        else:
            self._messages[temp_index] = persisted
        self._messages = sort_messages(self._messages)
        return persisted

    def discard(self, temp_id: str) -> Optional[str]:
        """Remove a failed optimistic message; returns its content for re-entry"""
        index = self._index(temp_id)
        if index is None:
            return None
        return self._messages.pop(index).content

    def apply_insert(self, row: Union[Message, Dict[str, Any]]) -> Optional[Message]:
        """
        Merge a message delivered by the live channel.

        Messages already present (same id) are ignored. A row matching a
        pending optimistic message from the same sender with the same content
        replaces it.

        Returns:
            The message when it is newly visible, None otherwise
        """
        message = row if isinstance(row, Message) else Message(**row)
        if message.conversation_id != self.conversation_id:
            return None
        if self._index(message.id) is not None:
            return None

        for index, existing in enumerate(self._messages):
            if existing.pending and existing.sender_id == message.sender_id and existing.content == message.content:
                self._messages[index] = message
                self._messages = sort_messages(self._messages)
                return None

        self._messages.append(message)
        self._messages = sort_messages(self._messages)
        return message


class ConversationFeed:
    """
    Live view of a conversation for one participant.

    New messages pass through the thread (deduplicated); messages from the
    other participant mark the conversation read for the viewer's role.
    """

    def __init__(
        self,
        session: SessionContext,
        thread: MessageThread,
        message_service: MessageService,
        on_message: Callable[[Message], Awaitable[None]],
        realtime_service: Optional[RealtimeService] = None
    ):
        self.session = session
        self.thread = thread
        self.messages = message_service
        self.on_message = on_message
        self.realtime = realtime_service
        self._subscription: Optional[Subscription] = None

    @property
    def conversation_id(self) -> str:
        return self.thread.conversation_id

    async def start(self) -> None:
        if self.realtime is not None:
            self._subscription = await self.realtime.subscribe(self.conversation_id, self.handle_insert)

    async def close(self) -> None:
        if self._subscription is not None:
            await self._subscription.unsubscribe()
            self._subscription = None

    async def handle_insert(self, row: Union[Message, Dict[str, Any]]) -> Optional[Message]:
        message = self.thread.apply_insert(row)
        if message is None:
            return None
        await self.on_message(message)
        if message.sender_id != self.session.user_id:
            try:
                await self.messages.mark_read(self.conversation_id, self.session.role)
            except FundConnectError as e:
                logger.warning(f"Could not mark conversation {self.conversation_id} read: {e.message}")
        return message

    async def send(
        self,
        content: str,
        on_pending: Optional[Callable[[Message], Awaitable[None]]] = None
    ) -> Tuple[Message, Message]:
        """
        Send with an optimistic local copy.

        Returns:
            The optimistic message and the stored message that replaced it

        Raises:
            InvalidInputError: Empty content (nothing is added or sent)
            FundConnectError: The insert failed; the optimistic copy is removed
                and ``extra`` carries ``temp_id`` and ``restored_content``
        """
        temp = self.thread.add_optimistic(self.session.user_id, content)
        if on_pending is not None:
            await on_pending(temp)

        try:
            persisted = await self.messages.append_message(self.conversation_id, self.session.user_id, temp.content)
        except FundConnectError as e:
            e.extra["temp_id"] = temp.id
            self.thread.discard(temp.id)
            e.extra["restored_content"] = content
            raise

        return temp, self.thread.reconcile(temp.id, persisted)


# Global realtime service instance
_realtime_service: Optional[RealtimeService] = None


def get_realtime_service() -> RealtimeService:
    """Get or create global realtime service instance"""
    global _realtime_service
    if _realtime_service is None:
        _realtime_service = RealtimeService()
    return _realtime_service
