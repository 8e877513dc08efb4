"""Shared test fixtures for pytest.

We set minimal env defaults (ENVIRONMENT, TELEGRAM_BOT_TOKEN) early so
importing modules that read settings succeeds without needing an external
.env file during tests.
"""

import os
from collections.abc import Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient


os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "123456:TEST-token-not-real-abcdefghij")

from schemas.retention import MessageRef, TopicKey
from schemas.telegram import TelegramUpdate, TelegramUser
from services.retention.engine import RetentionEngine
from services.retention.interfaces import ChatMemberRole, DeleteOutcome
from services.retention.snapshot_store import SnapshotStore


CHAT_ID = -1001234567890
TOPIC = TopicKey(chat_id=CHAT_ID, thread_id=42)


def ref(message_id: int, thread_id: int = TOPIC.thread_id) -> MessageRef:
    return MessageRef(chat_id=CHAT_ID, message_id=message_id, thread_id=thread_id)


class FakeGateway:
    """In-memory stand-in for ``TelegramGateway``.

    Records every call; delete outcomes and member roles are configurable per
    message / user.
    """

    def __init__(self) -> None:
        self.deleted: list[tuple[int, int]] = []
        self.delete_outcomes: dict[tuple[int, int], DeleteOutcome] = {}
        self.roles: dict[int, ChatMemberRole | None] = {}
        self.sent: list[dict] = []
        self.updates: list[list[TelegramUpdate]] = []
        self.update_calls: list[int | None] = []
        self.webhook_deleted: list[bool] = []
        self.webhook_set: list[dict] = []
        self.closed = False
        self.me = TelegramUser(id=999, is_bot=True, first_name="Bot", username="retention_bot")

    async def delete_message(self, chat_id: int, message_id: int) -> DeleteOutcome:
        self.deleted.append((chat_id, message_id))
        return self.delete_outcomes.get((chat_id, message_id), DeleteOutcome.SUCCESS)

    async def get_chat_member_role(
        self, chat_id: int, user_id: int
    ) -> ChatMemberRole | None:
        return self.roles.get(user_id, ChatMemberRole.MEMBER)

    async def send_message(
        self,
        chat_id: int,
        text: str,
        *,
        thread_id: int | None = None,
        reply_to_message_id: int | None = None,
        parse_mode: str | None = None,
    ) -> bool:
        self.sent.append(
            {
                "chat_id": chat_id,
                "text": text,
                "thread_id": thread_id,
                "reply_to_message_id": reply_to_message_id,
                "parse_mode": parse_mode,
            }
        )
        return True

    async def get_me(self) -> TelegramUser:
        return self.me

    async def get_updates(
        self,
        *,
        offset: int | None = None,
        timeout: int = 30,
        allowed_updates: list[str] | None = None,
    ) -> list[TelegramUpdate]:
        self.update_calls.append(offset)
        if self.updates:
            return self.updates.pop(0)
        return []

    async def delete_webhook(self, *, drop_pending_updates: bool = False) -> None:
        self.webhook_deleted.append(drop_pending_updates)

    async def set_webhook(
        self,
        url: str,
        *,
        secret_token: str | None = None,
        drop_pending_updates: bool = False,
    ) -> None:
        self.webhook_set.append(
            {
                "url": url,
                "secret_token": secret_token,
                "drop_pending_updates": drop_pending_updates,
            }
        )

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def state_path(tmp_path: Path) -> Path:
    return tmp_path / "state.json"


@pytest.fixture
def snapshot_store(state_path: Path) -> SnapshotStore:
    return SnapshotStore(state_path)


@pytest.fixture
def engine(gateway: FakeGateway, snapshot_store: SnapshotStore) -> RetentionEngine:
    return RetentionEngine.from_store(gateway, snapshot_store)


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """Test client without running the app lifespan (no bot is started)."""
    from main import app

    client = TestClient(app)
    yield client
    app.state.runtime = None
