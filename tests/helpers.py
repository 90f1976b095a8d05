"""Test doubles and helpers shared by the test suites."""

import uuid

import jwt
from redis.exceptions import ConnectionError as RedisConnectionError

from app.core.config import settings
from app.schemas.base import utcnow
from app.schemas.chat import Message, MessageCreate


def make_token(user_id: str) -> str:
    """Sign a bearer token the way the identity provider would."""
    return jwt.encode({"sub": user_id}, settings.auth_secret_key, algorithm=settings.auth_algorithm)


async def stored_message(user_id: str, chat_id: str, data: MessageCreate) -> Message:
    """Side effect for a mocked ``add_message`` that answers with a server id."""
    return Message(
        id=str(uuid.uuid4()),
        chat_id=chat_id,
        role=data.role,
        content=data.content,
        audio_url=data.audio_url,
        created_at=data.created_at or utcnow(),
    )


class DownRedis:
    """A Redis client whose server refuses every connection."""

    def __init__(self):
        self.calls = 0

    def _refuse(self):
        self.calls += 1
        raise RedisConnectionError("Error 111 connecting to localhost:6379. Connection refused.")

    async def get(self, key):
        self._refuse()

    async def setex(self, key, ttl, value):
        self._refuse()

    async def incr(self, key):
        self._refuse()

    async def delete(self, *keys):
        self._refuse()

    async def scan_iter(self, match=None, count=None):
        self._refuse()
        yield

    async def ping(self):
        self._refuse()

    async def aclose(self):
        self._refuse()
