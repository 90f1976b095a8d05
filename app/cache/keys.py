"""Cache key builders and TTL tiers."""

from enum import IntEnum


class CacheTTL(IntEnum):
    """Time to live tiers in seconds."""

    SHORT = 60
    MEDIUM = 300
    USER_PREFERENCES = 600
    SUBSCRIPTION = 1800
    LONG = 3600
    VERY_LONG = 86400


class CacheKeys:
    """Deterministic cache keys. Entity keys name the entity, list keys name the owner."""

    USER = "user:"
    CHAT = "chat:"
    CHATS_LIST = "chats:"
    SUBSCRIPTION = "subscription:"
    USAGE = "usage:"
    CONTACTS = "contacts:"
    VOICES = "voices:"
    USER_PREFERENCES = "user_prefs:"
    RATE_LIMIT = "ratelimit:"

    @classmethod
    def user(cls, user_id: str) -> str:
        return f"{cls.USER}{user_id}"

    @classmethod
    def chat(cls, chat_id: str) -> str:
        return f"{cls.CHAT}{chat_id}"

    @classmethod
    def chats_list(cls, user_id: str, with_messages: bool = False) -> str:
        key = f"{cls.CHATS_LIST}{user_id}"
        return f"{key}:messages" if with_messages else key

    @classmethod
    def subscription(cls, user_id: str) -> str:
        return f"{cls.SUBSCRIPTION}{user_id}"

    @classmethod
    def usage(cls, user_id: str) -> str:
        return f"{cls.USAGE}{user_id}"

    @classmethod
    def contacts(cls, user_id: str) -> str:
        return f"{cls.CONTACTS}{user_id}"

    @classmethod
    def voices(cls, user_id: str) -> str:
        return f"{cls.VOICES}{user_id}"

    @classmethod
    def user_preferences(cls, user_id: str) -> str:
        return f"{cls.USER_PREFERENCES}{user_id}"

    @classmethod
    def rate_limit(cls, bucket: str, identifier: str) -> str:
        return f"{cls.RATE_LIMIT}{bucket}:{identifier}"
