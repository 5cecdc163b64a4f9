from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from streamchat.api import create_app
from streamchat.domain.chat import Chat, Turn
from streamchat.relay import StreamRelay
from tests.fakes import FakeChatStore, FakeCompletionProvider


@pytest.fixture
def test_chats() -> dict[str, Chat]:
    return {
        "chat1": Chat(
            id="chat1",
            title="hi",
            messages=[
                Turn(role="user", content="hi"),
                Turn(role="assistant", content="hello"),
            ],
            created_at=datetime(2024, 12, 31, tzinfo=timezone.utc),
        ),
    }


@pytest.fixture
def fake_chat_store(test_chats: dict[str, Chat]) -> FakeChatStore:
    return FakeChatStore(test_chats)


@pytest.fixture
def fake_completion() -> FakeCompletionProvider:
    return FakeCompletionProvider(fragments=["Hi", " ", "there!"])


@pytest.fixture
def relay(fake_chat_store: FakeChatStore, fake_completion: FakeCompletionProvider) -> StreamRelay:
    return StreamRelay(
        chat_store=fake_chat_store,
        completion_provider=fake_completion,
        model="test-model",
        temperature=0.7,
    )


@pytest.fixture
def test_client(
    fake_chat_store: FakeChatStore,
    fake_completion: FakeCompletionProvider,
) -> TestClient:
    """Create test client with fake implementations."""
    app = create_app(chat_store=fake_chat_store, completion_provider=fake_completion)
    return TestClient(app)
