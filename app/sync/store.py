"""Local chat state for the signed-in user.

``ChatStore`` owns the in-memory chat list that the UI renders. Mutations are
synchronous: they change memory, write device storage and notify subscribers
before returning. Remote work runs in background tasks the store keeps track of,
so shutdown and tests can wait for it with ``drain``.
"""

import asyncio
import logging
import uuid
from collections.abc import Callable, Coroutine
from datetime import datetime
from enum import Enum
from typing import Any

from app.schemas.chat import Chat, Contact, Message, MessageUpdate
from app.schemas.base import utcnow

from .coordinator import SyncCoordinator
from .storage import LocalStorage

logger = logging.getLogger(__name__)

PROVISIONAL_PREFIX = "chat-"
LOCAL_MESSAGE_PREFIX = "msg-"
# Same window the server uses to recognise a pushed message it already stored
MESSAGE_MATCH_SECONDS = 1.0

Listener = Callable[["ChatStore"], None]


def provisional_chat_id() -> str:
    return f"{PROVISIONAL_PREFIX}{uuid.uuid4().hex}"


def is_provisional(chat_id: str) -> bool:
    return chat_id.startswith(PROVISIONAL_PREFIX)


def new_message_id() -> str:
    return f"{LOCAL_MESSAGE_PREFIX}{uuid.uuid4().hex}"


def is_local_message(message_id: str) -> bool:
    return message_id.startswith(LOCAL_MESSAGE_PREFIX)


class ReconcilePolicy(str, Enum):
    """How a load combines the remote chat list with device storage.

    This is not conflict resolution. ``REMOTE_REPLACES_LOCAL_ELSE_PROMOTE_LOCAL``
    adopts a non-empty remote list as is; an empty remote list is read as "never
    synced", so device storage is kept and pushed once as a catch-up.
    """

    REMOTE_REPLACES_LOCAL_ELSE_PROMOTE_LOCAL = "remote_replaces_local_else_promote_local"

    def reconcile(self, remote: list[Chat], local: list[Chat]) -> tuple[list[Chat], bool]:
        """Return the chats to adopt and whether they must be pushed."""
        if remote:
            return remote, False
        return local, bool(local)


class ChatStore:
    """Optimistic, offline-capable chat state.

    Exposes ``chats``, ``active_chat``, ``is_loading`` and ``is_syncing``; call
    ``subscribe`` to be notified after every change.
    """

    def __init__(
        self,
        coordinator: SyncCoordinator,
        storage: LocalStorage,
        user_id: str | None = None,
        policy: ReconcilePolicy = ReconcilePolicy.REMOTE_REPLACES_LOCAL_ELSE_PROMOTE_LOCAL,
    ):
        self.coordinator = coordinator
        self.storage = storage
        self.user_id = user_id
        self.policy = policy

        self.chats: list[Chat] = []
        self.is_loading = False
        self._is_syncing = False
        self._active_chat_id: str | None = None
        self._listeners: list[Listener] = []
        self._tasks: set[asyncio.Task] = set()
        # provisional id -> future resolving to the server id (None when creation failed)
        self._pending_creations: dict[str, asyncio.Future] = {}
        self._aliases: dict[str, str] = {}
        # local message id -> future resolving to the server message id
        self._pending_messages: dict[str, asyncio.Future] = {}
        self._message_aliases: dict[str, str] = {}
        self._load_generation = 0

        coordinator.add_push_listener(self._on_pushed)

    # ----- observable state -----

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id)

    @property
    def is_syncing(self) -> bool:
        return self._is_syncing or self.coordinator.is_syncing

    @property
    def active_chat(self) -> Chat | None:
        if self._active_chat_id is None:
            return None
        return self.get_chat(self._active_chat_id)

    @property
    def last_sync_at(self) -> datetime | None:
        return self.coordinator.last_sync_at

    def set_active_chat(self, chat_id: str | None) -> None:
        self._active_chat_id = self._resolve(chat_id) if chat_id else None
        self._notify()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                logger.warning(f"Chat store listener failed: {str(e)}")

    def _persist(self) -> None:
        self.storage.save(self.user_id, self.chats)
        self.coordinator.refresh_pending_push(self.user_id, self.chats)

    def _commit(self) -> None:
        self._persist()
        self._notify()

    # ----- background work -----

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait until every background task, including ones they spawn, is done."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ----- lookups -----

    def _resolve(self, chat_id: str) -> str:
        return self._aliases.get(chat_id, chat_id)

    def get_chat(self, chat_id: str) -> Chat | None:
        chat_id = self._resolve(chat_id)
        return next((chat for chat in self.chats if chat.id == chat_id), None)

    def get_chat_by_contact_id(self, contact_id: str) -> Chat | None:
        return next((chat for chat in self.chats if chat.contact_id == contact_id), None)

    # ----- mutations -----

    def start_chat(self, contact: Contact) -> Chat:
        """Return the chat for ``contact``, creating it optimistically if needed."""
        existing = self.get_chat_by_contact_id(contact.id)
        if existing is not None:
            self._active_chat_id = existing.id
            self._notify()
            return existing

        now = utcnow()
        chat = Chat(
            id=provisional_chat_id(),
            contact_id=contact.id,
            contact_name=contact.name,
            contact_emoji=contact.avatar_emoji,
            contact_image=contact.avatar_image,
            contact_purpose=contact.purpose,
            last_message_at=now,
            created_at=now,
            updated_at=now,
        )
        self.chats.insert(0, chat)
        self._active_chat_id = chat.id
        self._commit()

        if self.is_authenticated:
            future = asyncio.get_running_loop().create_future()
            self._pending_creations[chat.id] = future
            self._spawn(
                self._create_remote(self.user_id, chat.id, future), f"create-{chat.id}"
            )
        return chat

    async def _create_remote(self, user_id: str, provisional_id: str, future: asyncio.Future) -> None:
        server_id = None
        try:
            chat = self.get_chat(provisional_id)
            if chat is not None:
                server_chat = await self.coordinator.create_chat(user_id, chat)
                if server_chat is not None:
                    server_id = server_chat.id
                    if user_id == self.user_id:
                        self._swap_id(provisional_id, server_id)
        finally:
            self._pending_creations.pop(provisional_id, None)
            if not future.done():
                future.set_result(server_id)

    def _swap_id(self, old_id: str, new_id: str) -> None:
        """Replace a provisional id with the server id, keeping the messages."""
        self._aliases[old_id] = new_id
        chat = next((c for c in self.chats if c.id == old_id), None)
        if chat is None:
            return

        if any(c.id == new_id for c in self.chats):
            # A pull already brought the server copy; the provisional one is redundant
            self.chats = [c for c in self.chats if c.id != old_id]
        else:
            chat.id = new_id
            for message in chat.messages:
                message.chat_id = new_id

        if self._active_chat_id == old_id:
            self._active_chat_id = new_id
        self._commit()
        logger.info(f"Chat {old_id} is now {new_id}")

    def _adopt_message_id(self, local_id: str, server_id: str) -> bool:
        """Give a local message the id the server stored it under."""
        self._message_aliases[local_id] = server_id
        for chat in self.chats:
            message = chat.find_message(local_id)
            if message is not None:
                message.id = server_id
                return True
        return False

    async def _server_id(self, chat_id: str) -> str | None:
        """Return the server id for ``chat_id``, waiting for a pending creation."""
        chat_id = self._resolve(chat_id)
        future = self._pending_creations.get(chat_id)
        if future is not None:
            return await asyncio.shield(future)
        if is_provisional(chat_id):
            return None
        return chat_id

    async def _server_message_id(self, message_id: str) -> str | None:
        """Return the server id for ``message_id``, waiting for a pending forward."""
        message_id = self._message_aliases.get(message_id, message_id)
        future = self._pending_messages.get(message_id)
        if future is not None:
            return await asyncio.shield(future)
        if is_local_message(message_id):
            return None
        return message_id

    def _chats_for(self, user_id: str) -> list[Chat]:
        """Chats of ``user_id``, from device storage once another user is signed in."""
        if user_id == self.user_id:
            return self.chats
        return self.storage.load(user_id)

    def add_message(self, chat_id: str, message: Message) -> Message | None:
        """Append ``message`` and forward it in the background.

        Returns the stored message, or None when the chat does not exist. Adding a
        message whose id is already in the chat is a no-op.
        """
        chat = self.get_chat(chat_id)
        if chat is None:
            logger.warning(f"add_message for unknown chat {chat_id}")
            return None

        existing = chat.find_message(self._message_aliases.get(message.id, message.id))
        if existing is not None:
            return existing

        stored = chat.append_message(message)
        self._commit()

        if self.is_authenticated:
            future = asyncio.get_running_loop().create_future()
            self._pending_messages[stored.id] = future
            self._spawn(
                self._forward_message(self.user_id, chat.id, stored, future),
                f"message-{stored.id}",
            )
        return stored

    async def _forward_message(
        self, user_id: str, chat_id: str, message: Message, future: asyncio.Future
    ) -> None:
        local_id = message.id
        server_message_id = None
        try:
            server_id = await self._server_id(chat_id)
            if server_id is None:
                # The chat never reached the server; the next push carries the message
                self.coordinator.schedule_push(user_id, self._chats_for(user_id))
                return
            server_message = await self.coordinator.add_message(user_id, server_id, message)
            if server_message is not None:
                server_message_id = server_message.id
                if user_id == self.user_id and self._adopt_message_id(local_id, server_message_id):
                    self._commit()
        finally:
            self._pending_messages.pop(local_id, None)
            if not future.done():
                future.set_result(server_message_id)

    def update_message(
        self, chat_id: str, message_id: str, updates: MessageUpdate | dict
    ) -> Message | None:
        """Merge ``updates`` into a message; the remote edit is debounced."""
        chat = self.get_chat(chat_id)
        message_id = self._message_aliases.get(message_id, message_id)
        message = chat.find_message(message_id) if chat is not None else None
        if message is None:
            logger.warning(f"update_message for unknown message {message_id} in {chat_id}")
            return None

        if isinstance(updates, MessageUpdate):
            updates = updates.model_dump(exclude_unset=True)
        applied = {
            field: value for field, value in updates.items() if field in ("content", "audio_url")
        }
        for field, value in applied.items():
            setattr(message, field, value)
        chat.refresh_derived()
        self._commit()

        if self.is_authenticated and applied:
            self._spawn(
                self._forward_update(self.user_id, chat.id, message.id, MessageUpdate(**applied)),
                f"update-{message.id}",
            )
        return message

    async def _forward_update(
        self, user_id: str, chat_id: str, message_id: str, update: MessageUpdate
    ) -> None:
        server_chat_id = await self._server_id(chat_id)
        server_message_id = await self._server_message_id(message_id) if server_chat_id else None
        if server_message_id is None:
            # Not on the server yet; the push appends the message with its edited content
            self.coordinator.schedule_push(user_id, self._chats_for(user_id))
            return
        self.coordinator.schedule_message_update(user_id, server_chat_id, server_message_id, update)

    def delete_chat(self, chat_id: str) -> bool:
        chat = self.get_chat(chat_id)
        if chat is None:
            return False

        self.chats = [c for c in self.chats if c.id != chat.id]
        if self._active_chat_id == chat.id:
            self._active_chat_id = None
        self._commit()

        if self.is_authenticated:
            self._spawn(self._delete_remote(self.user_id, chat), f"delete-{chat.id}")
        return True

    async def _delete_remote(self, user_id: str, chat: Chat) -> None:
        server_id = await self._server_id(chat.id)
        await self.coordinator.delete_chat(user_id, server_id, chat)

    # ----- sync -----

    def _apply(self, chats: list[Chat]) -> None:
        self.chats = chats
        if self._active_chat_id and self.get_chat(self._active_chat_id) is None:
            active = next(
                (c for c in chats if c.id == self._aliases.get(self._active_chat_id)), None
            )
            self._active_chat_id = active.id if active else None

    def _without_tombstoned(self, chats: list[Chat]) -> list[Chat]:
        tombstoned = self.coordinator.tombstoned_contacts(self.user_id)
        return [chat for chat in chats if chat.contact_id not in tombstoned]

    async def load_chats(self) -> None:
        """Load chats for the current user.

        Authenticated users check migration status, then pull; the result is combined
        with device storage through ``policy``. A failed pull, or no user at all,
        loads device storage only. A load superseded by a newer one is discarded.
        """
        self._load_generation += 1
        generation = self._load_generation
        user_id = self.user_id
        self.is_loading = True
        self._notify()

        try:
            if not user_id:
                self._apply(self.storage.load(None))
                return

            await self.coordinator.check_migration(user_id)
            remote = await self.coordinator.pull(user_id)
            if generation != self._load_generation:
                return

            local = self.storage.load(user_id)
            if remote is None:
                self._apply(local)
                return

            chats, needs_catch_up = self.policy.reconcile(self._without_tombstoned(remote), local)
            self._apply(chats)
            self._persist()

            if needs_catch_up or self.coordinator.tombstones(user_id):
                logger.info(f"Pushing {len(chats)} local chats for user {user_id}")
                await self.coordinator.push(user_id, chats)
        finally:
            if generation == self._load_generation:
                self.is_loading = False
                self._notify()

    async def sync_with_server(self) -> None:
        """Refresh from the server; an empty result leaves local state alone."""
        if not self.is_authenticated:
            return

        self._is_syncing = True
        self._notify()
        try:
            remote = await self.coordinator.pull(self.user_id)
            if remote:
                self._apply(self._without_tombstoned(remote))
                self._persist()
        finally:
            self._is_syncing = False
            self._notify()

    async def push_now(self) -> list[Chat] | None:
        """Cancel any scheduled push and push the full state right away."""
        if not self.is_authenticated:
            return None
        self.coordinator.cancel_pending_push()
        self._is_syncing = True
        self._notify()
        try:
            return await self.coordinator.push(self.user_id, self.chats)
        finally:
            self._is_syncing = False
            self._notify()

    def _on_pushed(self, user_id: str, server_chats: list[Chat]) -> None:
        """Adopt server ids for chats and messages the push created."""
        if user_id != self.user_id:
            return
        by_contact = {chat.contact_id: chat for chat in server_chats}
        adopted = False
        for chat in list(self.chats):
            server_chat = by_contact.get(chat.contact_id)
            if server_chat is None:
                continue
            if is_provisional(chat.id) and chat.id not in self._pending_creations:
                self._swap_id(chat.id, server_chat.id)
            if chat.id == server_chat.id:
                adopted = self._adopt_pushed_messages(chat, server_chat) or adopted
        if adopted:
            self._commit()

    def _adopt_pushed_messages(self, chat: Chat, server_chat: Chat) -> bool:
        """Match local messages to the server copies a push stored.

        The server keeps pushed timestamps, so a message matches on role, content
        and a ``created_at`` within ``MESSAGE_MATCH_SECONDS``.
        """
        known = {message.id for message in chat.messages}
        candidates = [m for m in server_chat.messages if m.id not in known]
        adopted = False
        for message in chat.messages:
            if not is_local_message(message.id) or message.id in self._pending_messages:
                continue
            match = next(
                (
                    m
                    for m in candidates
                    if m.role == message.role
                    and m.content == message.content
                    and abs((m.created_at - message.created_at).total_seconds()) < MESSAGE_MATCH_SECONDS
                ),
                None,
            )
            if match is not None:
                candidates.remove(match)
                self._message_aliases[message.id] = match.id
                message.id = match.id
                adopted = True
        return adopted

    def switch_user(self, user_id: str | None) -> None:
        """Reset state for another user. Call ``load_chats`` afterwards."""
        self.coordinator.cancel_pending_push()
        self._load_generation += 1
        self.user_id = user_id
        self.chats = []
        self._active_chat_id = None
        self._aliases.clear()
        self._message_aliases.clear()
        self.is_loading = False
        self._notify()
