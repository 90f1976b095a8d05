"""API tests for the sync endpoints."""

from datetime import timedelta

import pytest

from app.core.config import settings
from app.schemas.base import utcnow
from app.schemas.sync import SyncChat, SyncRequest
from tests.factories import ChatFactory, MessageFactory

SYNC_URL = f"{settings.api_prefix}/sync"
CHATS_URL = f"{settings.api_prefix}/chats"


def offline_chat(contact_id: str, *contents: str) -> SyncChat:
    """A chat built on the device, with provisional ids and spaced timestamps."""
    chat = SyncChat.model_validate(ChatFactory(id=f"chat-{contact_id}", contact_id=contact_id).model_dump())
    start = utcnow() - timedelta(minutes=10)
    for i, content in enumerate(contents):
        chat.append_message(MessageFactory(content=content, created_at=start + timedelta(seconds=i)))
    return chat


def push_body(*chats: SyncChat) -> dict:
    return SyncRequest(local_chats=list(chats), last_sync_at=None).to_wire()


class TestSyncEndpoints:
    """Test cases for pull and push."""

    @pytest.mark.asyncio
    async def test_pull_includes_messages(self, authenticated_client):
        chat = (
            await authenticated_client.post(
                CHATS_URL, json={"contactId": "ada", "contactName": "Ada"}
            )
        ).json()["chat"]
        await authenticated_client.post(
            f"{CHATS_URL}/{chat['id']}/messages", json={"role": "user", "content": "Hi"}
        )

        response = await authenticated_client.get(SYNC_URL)

        assert response.status_code == 200
        data = response.json()
        assert [c["id"] for c in data["chats"]] == [chat["id"]]
        assert [m["content"] for m in data["chats"][0]["messages"]] == ["Hi"]
        assert "syncedAt" in data

    @pytest.mark.asyncio
    async def test_pull_since(self, authenticated_client):
        await authenticated_client.post(CHATS_URL, json={"contactId": "ada", "contactName": "Ada"})

        response = await authenticated_client.get(
            SYNC_URL, params={"since": (utcnow() + timedelta(minutes=1)).isoformat()}
        )

        assert response.json()["chats"] == []

    @pytest.mark.asyncio
    async def test_push_creates_chats(self, authenticated_client):
        """Test offline chats get server ids and keep their messages and timestamps."""
        local = offline_chat("ada", "Hi", "Hello!")

        response = await authenticated_client.post(SYNC_URL, json=push_body(local))

        assert response.status_code == 200
        chats = response.json()["chats"]
        assert len(chats) == 1
        assert chats[0]["id"] != local.id
        assert chats[0]["contactId"] == "ada"
        assert chats[0]["messageCount"] == 2
        assert [m["content"] for m in chats[0]["messages"]] == ["Hi", "Hello!"]

    @pytest.mark.asyncio
    async def test_push_twice_is_idempotent(self, authenticated_client):
        local = offline_chat("ada", "Hi", "Hello!")

        await authenticated_client.post(SYNC_URL, json=push_body(local))
        response = await authenticated_client.post(SYNC_URL, json=push_body(local))

        chats = response.json()["chats"]
        assert len(chats) == 1
        assert chats[0]["messageCount"] == 2

    @pytest.mark.asyncio
    async def test_push_tombstone_deletes(self, authenticated_client):
        """Test a pushed isDeleted chat is removed on the server."""
        await authenticated_client.post(SYNC_URL, json=push_body(offline_chat("ada", "Hi")))
        tombstone = offline_chat("ada")
        tombstone.is_deleted = True

        response = await authenticated_client.post(
            SYNC_URL, json=push_body(tombstone, offline_chat("grace", "Hey"))
        )

        assert [c["contactId"] for c in response.json()["chats"]] == ["grace"]
        listing = (await authenticated_client.get(CHATS_URL)).json()
        assert [c["contactId"] for c in listing["chats"]] == ["grace"]

    @pytest.mark.asyncio
    async def test_push_validation(self, authenticated_client):
        response = await authenticated_client.post(
            SYNC_URL, json={"localChats": [{"contactId": "ada"}]}
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_requires_token(self, client):
        assert (await client.get(SYNC_URL)).status_code == 401
        assert (await client.post(SYNC_URL, json={"localChats": []})).status_code == 401
