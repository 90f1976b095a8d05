"""Unit tests for ChatStore."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from app.exceptions.chat import RemoteSyncError
from app.repositories.base import ChatRepository
from app.schemas.chat import MessageCreate, MessageRole, MessageUpdate
from app.sync.coordinator import SyncCoordinator
from app.sync.store import (
    ChatStore,
    ReconcilePolicy,
    is_local_message,
    is_provisional,
    new_message_id,
)
from tests.factories import ChatCreateFactory, ChatFactory, ContactFactory, MessageFactory
from tests.helpers import stored_message


@pytest.fixture
def repository():
    repository = AsyncMock(spec=ChatRepository)
    repository.add_message.side_effect = stored_message
    return repository


@pytest.fixture
def coordinator(repository, storage):
    return SyncCoordinator(repository, storage, debounce_seconds=60)


@pytest.fixture
def store(coordinator, storage, user_id):
    return ChatStore(coordinator, storage, user_id=user_id)


@pytest.fixture
def offline_store(coordinator, storage):
    return ChatStore(coordinator, storage)


@pytest.fixture
def sql_store(sql_repository, storage, user_id):
    """A store whose remote side is the SQL repository."""
    coordinator = SyncCoordinator(sql_repository, storage, debounce_seconds=60)
    return ChatStore(coordinator, storage, user_id=user_id)


def blocking(result):
    """An async side effect that returns ``result`` once its event is set."""
    release = asyncio.Event()

    async def side_effect(*args, **kwargs):
        await release.wait()
        return result

    return side_effect, release


class TestReconcilePolicy:
    def test_remote_replaces_local(self):
        remote, local = [ChatFactory()], [ChatFactory()]

        assert ReconcilePolicy.REMOTE_REPLACES_LOCAL_ELSE_PROMOTE_LOCAL.reconcile(remote, local) == (
            remote,
            False,
        )

    def test_empty_remote_promotes_local(self):
        local = [ChatFactory()]

        chats, push = ReconcilePolicy.REMOTE_REPLACES_LOCAL_ELSE_PROMOTE_LOCAL.reconcile([], local)

        assert chats == local
        assert push is True
        assert ReconcilePolicy.REMOTE_REPLACES_LOCAL_ELSE_PROMOTE_LOCAL.reconcile([], []) == ([], False)


class TestStartChat:
    """Test cases for optimistic chat creation."""

    @pytest.mark.asyncio
    async def test_offline_start_chat(self, offline_store, storage, repository):
        """Test a chat appears at the top with a provisional id and is stored."""
        older = offline_store.start_chat(ContactFactory(id="grace"))
        chat = offline_store.start_chat(ContactFactory(id="ada", name="Ada"))

        assert is_provisional(chat.id)
        assert chat.contact_name == "Ada"
        assert [c.id for c in offline_store.chats] == [chat.id, older.id]
        assert offline_store.active_chat is chat
        assert [c.id for c in storage.load(None)] == [chat.id, older.id]
        repository.create_chat.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_start_chat_is_idempotent_per_contact(self, offline_store):
        contact = ContactFactory()

        first = offline_store.start_chat(contact)
        offline_store.set_active_chat(None)
        second = offline_store.start_chat(contact)

        assert second is first
        assert len(offline_store.chats) == 1
        assert offline_store.active_chat is first

    @pytest.mark.asyncio
    async def test_server_id_replaces_provisional_id(self, store, repository, storage, user_id):
        """Test the created chat swaps to the server id and keeps its messages."""
        contact = ContactFactory(id="ada")
        server = ChatFactory(contact_id="ada")
        repository.create_chat.return_value = (server, False)

        chat = store.start_chat(contact)
        provisional_id = chat.id
        store.add_message(provisional_id, MessageFactory(content="Hi"))
        await store.drain()

        assert chat.id == server.id
        assert chat.messages[0].chat_id == server.id
        assert store.get_chat(provisional_id) is chat
        assert store.active_chat is chat
        assert [c.id for c in storage.load(user_id)] == [server.id]

    @pytest.mark.asyncio
    async def test_message_waits_for_pending_creation(self, store, repository, user_id):
        """Test a message sent before the chat exists remotely goes to the server id."""
        server = ChatFactory(contact_id="ada")
        repository.create_chat.side_effect, release = blocking((server, False))

        chat = store.start_chat(ContactFactory(id="ada"))
        store.add_message(chat.id, MessageFactory(content="Hi"))
        await asyncio.sleep(0.01)
        repository.add_message.assert_not_awaited()

        release.set()
        await store.drain()

        args = repository.add_message.await_args.args
        assert args[0] == user_id
        assert args[1] == server.id
        assert args[2].content == "Hi"

    @pytest.mark.asyncio
    async def test_failed_creation_falls_back_to_push(self, store, repository, coordinator):
        """Test messages of a chat the server never created ride on the next push."""
        repository.create_chat.side_effect = RemoteSyncError("offline")

        chat = store.start_chat(ContactFactory())
        store.add_message(chat.id, MessageFactory())
        await store.drain()

        assert is_provisional(chat.id)
        repository.add_message.assert_not_awaited()
        assert coordinator.push_pending is True

    @pytest.mark.asyncio
    async def test_pulled_copy_wins_over_provisional(self, store, repository):
        """Test the provisional chat is dropped when the server copy is already loaded."""
        server = ChatFactory(contact_id="ada")
        repository.create_chat.side_effect, release = blocking((server, False))

        chat = store.start_chat(ContactFactory(id="ada"))
        store.chats.append(server)
        release.set()
        await store.drain()

        assert [c.id for c in store.chats] == [server.id]
        assert store.get_chat(chat.id) is server


class TestMessages:
    """Test cases for message mutations."""

    @pytest.mark.asyncio
    async def test_add_message_updates_chat(self, offline_store):
        chat = offline_store.start_chat(ContactFactory())

        message = offline_store.add_message(chat.id, MessageFactory(id=new_message_id(), content="Hi"))

        assert message.chat_id == chat.id
        assert chat.last_message == "Hi"
        assert chat.message_count == 1

    @pytest.mark.asyncio
    async def test_add_message_is_idempotent(self, offline_store):
        chat = offline_store.start_chat(ContactFactory())
        message = MessageFactory()

        first = offline_store.add_message(chat.id, message)
        second = offline_store.add_message(chat.id, message)

        assert second is first
        assert chat.message_count == 1

    @pytest.mark.asyncio
    async def test_add_message_to_unknown_chat(self, offline_store):
        assert offline_store.add_message("missing", MessageFactory()) is None

    @pytest.mark.asyncio
    async def test_forwarded_message_adopts_server_id(self, store, repository):
        repository.create_chat.return_value = (ChatFactory(), False)
        chat = store.start_chat(ContactFactory())
        message = store.add_message(chat.id, MessageFactory(content="Hi"))
        local_id = message.id
        await store.drain()

        assert not is_local_message(message.id)
        assert store.add_message(chat.id, MessageFactory(id=local_id)) is message
        assert chat.message_count == 1

    @pytest.mark.asyncio
    async def test_update_message_sends_debounced_edit(self, store, repository, coordinator, user_id):
        """Test edits change memory now and reach the server as one request per message."""
        server = ChatFactory()
        repository.create_chat.return_value = (server, False)
        chat = store.start_chat(ContactFactory())
        message = store.add_message(chat.id, MessageFactory(content="Helo"))
        local_id = message.id
        await store.drain()

        edited = store.update_message(chat.id, local_id, MessageUpdate(content="Hello"))
        store.update_message(chat.id, message.id, {"audio_url": "https://a/1.mp3"})
        await store.drain()

        assert edited.content == "Hello"
        assert chat.last_message == "Hello"
        assert coordinator.edits_pending is True
        assert coordinator.push_pending is False
        repository.update_message.assert_not_awaited()

        await coordinator.flush()

        repository.update_message.assert_awaited_once()
        args = repository.update_message.await_args.args
        assert args[:3] == (user_id, server.id, message.id)
        assert args[3].model_dump(exclude_unset=True) == {
            "content": "Hello",
            "audio_url": "https://a/1.mp3",
        }
        repository.sync_chats.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_edit_waits_for_message_forward(self, store, repository, coordinator):
        """Test an edit made before the message reached the server targets its server id."""
        server = ChatFactory()
        repository.create_chat.side_effect, release = blocking((server, False))
        chat = store.start_chat(ContactFactory(id=server.contact_id))
        message = store.add_message(chat.id, MessageFactory(content="Helo"))
        store.update_message(chat.id, message.id, MessageUpdate(content="Hello"))

        release.set()
        await store.drain()
        await coordinator.flush()

        args = repository.update_message.await_args.args
        assert args[1] == server.id
        assert args[2] == message.id
        assert not is_local_message(args[2])

    @pytest.mark.asyncio
    async def test_edit_of_unsynced_message_rides_on_push(self, store, repository, coordinator):
        """Test an edit to a message the server never stored goes out with the next push."""
        repository.create_chat.side_effect = RemoteSyncError("offline")
        chat = store.start_chat(ContactFactory())
        message = store.add_message(chat.id, MessageFactory(content="Helo"))
        await store.drain()
        coordinator.cancel_pending_push()

        store.update_message(chat.id, message.id, MessageUpdate(content="Hello"))
        await store.drain()

        assert coordinator.push_pending is True
        assert coordinator.edits_pending is False
        repository.update_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_update_message_with_dict(self, offline_store):
        chat = offline_store.start_chat(ContactFactory())
        message = offline_store.add_message(chat.id, MessageFactory())

        edited = offline_store.update_message(chat.id, message.id, {"audio_url": "https://a/1.mp3"})

        assert edited.audio_url == "https://a/1.mp3"
        assert offline_store.update_message(chat.id, "missing", {"content": "x"}) is None


class TestDeleteChat:
    """Test cases for deleting chats."""

    @pytest.mark.asyncio
    async def test_delete_uses_server_id(self, store, repository, user_id):
        server = ChatFactory()
        repository.create_chat.side_effect, release = blocking((server, False))
        repository.delete_chat.return_value = True

        chat = store.start_chat(ContactFactory(id=server.contact_id))
        await asyncio.sleep(0.01)
        assert store.delete_chat(chat.id) is True
        assert store.chats == []
        assert store.active_chat is None

        release.set()
        await store.drain()

        repository.delete_chat.assert_awaited_once_with(user_id, server.id)

    @pytest.mark.asyncio
    async def test_failed_delete_is_not_resurrected(self, store, repository, coordinator, user_id):
        """Test a chat whose remote delete failed stays gone after the next load."""
        server = ChatFactory(contact_id="ada")
        repository.create_chat.return_value = (server, False)
        repository.delete_chat.side_effect = RemoteSyncError("offline")
        chat = store.start_chat(ContactFactory(id="ada"))
        await store.drain()

        store.delete_chat(chat.id)
        await store.drain()
        assert coordinator.tombstoned_contacts(user_id) == {"ada"}

        repository.get_chats.return_value = [server, ChatFactory(contact_id="grace")]
        repository.sync_chats.return_value = []
        await store.load_chats()

        assert [c.contact_id for c in store.chats] == ["grace"]
        sent = repository.sync_chats.await_args.args[1]
        assert ("ada", True) in [(c.contact_id, c.is_deleted) for c in sent]
        assert coordinator.tombstones(user_id) == []

    @pytest.mark.asyncio
    async def test_delete_unknown_chat(self, offline_store):
        assert offline_store.delete_chat("missing") is False


class TestLoadChats:
    """Test cases for loading and reconciling chats."""

    @pytest.mark.asyncio
    async def test_remote_replaces_local(self, store, repository, storage, user_id):
        storage.save(user_id, [ChatFactory(contact_id="stale")])
        remote = [ChatFactory(contact_id="ada", messages=[MessageFactory()])]
        repository.get_chats.return_value = remote

        await store.load_chats()

        assert store.chats == remote
        assert store.is_loading is False
        assert [c.contact_id for c in storage.load(user_id)] == ["ada"]
        repository.sync_chats.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_remote_pushes_local(self, store, repository, storage, user_id):
        """Test local chats of a never-synced account are kept and pushed once."""
        local = [ChatFactory(contact_id="offline")]
        storage.save(user_id, local)
        repository.get_chats.return_value = []
        repository.sync_chats.return_value = []

        await store.load_chats()

        assert [c.contact_id for c in store.chats] == ["offline"]
        sent = repository.sync_chats.await_args.args[1]
        assert [c.contact_id for c in sent] == ["offline"]

    @pytest.mark.asyncio
    async def test_failed_pull_uses_local(self, store, repository, storage, user_id):
        storage.save(user_id, [ChatFactory(contact_id="cached")])
        repository.get_chats.side_effect = RemoteSyncError("offline")

        await store.load_chats()

        assert [c.contact_id for c in store.chats] == ["cached"]
        repository.sync_chats.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_signed_out_loads_anonymous_storage(self, offline_store, storage, repository):
        storage.save(None, [ChatFactory(contact_id="guest")])

        await offline_store.load_chats()

        assert [c.contact_id for c in offline_store.chats] == ["guest"]
        repository.get_chats.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_superseded_load_is_discarded(self, store, repository):
        """Test a slow earlier load never overwrites a newer one."""
        stale, fresh = ChatFactory(contact_id="stale"), ChatFactory(contact_id="fresh")
        release = asyncio.Event()
        calls = []

        async def get_chats(user_id, since=None, include_messages=False):
            calls.append(user_id)
            if len(calls) == 1:
                await release.wait()
                return [stale]
            return [fresh]

        repository.get_chats.side_effect = get_chats

        first = asyncio.create_task(store.load_chats())
        await asyncio.sleep(0.01)
        await store.load_chats()
        release.set()
        await first

        assert store.chats == [fresh]
        assert store.is_loading is False

    @pytest.mark.asyncio
    async def test_sync_with_server_keeps_local_on_empty(self, store, repository):
        repository.create_chat.return_value = (ChatFactory(), False)
        chat = store.start_chat(ContactFactory())
        await store.drain()
        repository.get_chats.return_value = []

        await store.sync_with_server()

        assert store.chats == [chat]
        assert store.is_syncing is False


class TestPushes:
    """Test cases for pushing and adopting server ids."""

    @pytest.mark.asyncio
    async def test_push_now_adopts_server_ids(self, store, repository):
        """Test a push maps provisional chats onto the server's chats by contact."""
        repository.create_chat.side_effect = RemoteSyncError("offline")
        chat = store.start_chat(ContactFactory(id="ada"))
        await store.drain()
        server = ChatFactory(contact_id="ada")
        repository.sync_chats.return_value = [server]

        result = await store.push_now()

        assert result == [server]
        assert chat.id == server.id

    @pytest.mark.asyncio
    async def test_push_adopts_message_ids(self, store, repository):
        """Test pushed messages take the ids the server stored them under."""
        repository.create_chat.side_effect = RemoteSyncError("offline")
        chat = store.start_chat(ContactFactory(id="ada"))
        message = store.add_message(chat.id, MessageFactory(content="Offline hello"))
        local_id = message.id
        await store.drain()
        server_message = MessageFactory(
            id="3f1c2b9e-server", content="Offline hello", created_at=message.created_at
        )
        repository.sync_chats.return_value = [
            ChatFactory(contact_id="ada", messages=[server_message])
        ]

        await store.push_now()

        assert message.id == "3f1c2b9e-server"
        edited = store.update_message(chat.id, local_id, MessageUpdate(content="Hello"))
        assert edited is message

    @pytest.mark.asyncio
    async def test_push_now_signed_out(self, offline_store, repository):
        assert await offline_store.push_now() is None
        repository.sync_chats.assert_not_awaited()


class TestObservers:
    """Test cases for subscriptions and user switching."""

    @pytest.mark.asyncio
    async def test_subscribe_and_unsubscribe(self, offline_store):
        seen = []
        unsubscribe = offline_store.subscribe(lambda s: seen.append(len(s.chats)))

        offline_store.start_chat(ContactFactory())
        unsubscribe()
        offline_store.start_chat(ContactFactory())

        assert seen == [1]

    @pytest.mark.asyncio
    async def test_failing_listener_is_logged(self, offline_store, caplog):
        def broken(store):
            raise ValueError("render failed")

        offline_store.subscribe(broken)
        offline_store.start_chat(ContactFactory())

        assert "Chat store listener failed: render failed" in caplog.text

    @pytest.mark.asyncio
    async def test_switch_user(self, store, repository, other_user_id):
        repository.create_chat.return_value = (ChatFactory(), False)
        store.start_chat(ContactFactory())

        store.switch_user(other_user_id)

        assert store.user_id == other_user_id
        assert store.chats == []
        assert store.active_chat is None

    @pytest.mark.asyncio
    async def test_background_work_keeps_its_user(
        self, store, repository, storage, user_id, other_user_id
    ):
        """Test work queued before a user switch is still sent as the user who queued it."""
        server = ChatFactory()
        repository.create_chat.return_value = (server, False)
        repository.delete_chat.return_value = True
        chat = store.start_chat(ContactFactory(id=server.contact_id))
        await store.drain()

        store.add_message(chat.id, MessageFactory(content="Bye"))
        store.delete_chat(chat.id)
        store.switch_user(other_user_id)
        await store.drain()

        assert repository.add_message.await_args.args[:2] == (user_id, server.id)
        repository.delete_chat.assert_awaited_once_with(user_id, server.id)
        assert storage.load(other_user_id) == []


class TestAgainstDatabase:
    """Store and coordinator over the SQL repository, no mocks in between."""

    @pytest.mark.asyncio
    async def test_edit_before_forward_reaches_server(self, sql_store, sql_repository, user_id):
        chat = sql_store.start_chat(ContactFactory(id="ada"))
        message = sql_store.add_message(chat.id, MessageFactory(id=new_message_id(), content="Hi"))
        sql_store.update_message(chat.id, message.id, MessageUpdate(content="Hi there"))
        await sql_store.drain()
        await sql_store.coordinator.flush()

        remote = await sql_repository.get_chat(user_id, chat.id, include_messages=True)
        assert [m.content for m in remote.messages] == ["Hi there"]
        assert [m.content for m in chat.messages] == ["Hi there"]
        assert remote.messages[0].id == message.id

    @pytest.mark.asyncio
    async def test_edit_after_reload_reaches_server(self, sql_store, sql_repository, user_id):
        """Test an edit to a loaded message updates it in place instead of appending."""
        server_chat, _ = await sql_repository.create_chat(user_id, ChatCreateFactory(contact_id="ada"))
        await sql_repository.add_message(
            user_id, server_chat.id, MessageCreate(role=MessageRole.USER, content="Hi")
        )
        await sql_store.load_chats()
        message = sql_store.chats[0].messages[0]

        sql_store.update_message(server_chat.id, message.id, MessageUpdate(content="Edited"))
        await sql_store.drain()
        await sql_store.coordinator.flush()

        remote = await sql_repository.get_chat(user_id, server_chat.id, include_messages=True)
        assert [m.content for m in remote.messages] == ["Edited"]
        assert remote.last_message == "Edited"

    @pytest.mark.asyncio
    async def test_delete_then_switch_user(self, sql_store, sql_repository, user_id, other_user_id):
        """Test a deletion queued before a user switch removes the first user's chat."""
        chat = sql_store.start_chat(ContactFactory(id="ada"))
        await sql_store.drain()

        sql_store.delete_chat(chat.id)
        sql_store.switch_user(other_user_id)
        await sql_store.drain()

        assert await sql_repository.get_chats(user_id) == []
        assert sql_store.coordinator.tombstones(user_id) == []
