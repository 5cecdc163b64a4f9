from tests.fakes.fake_chat_api import FakeChatApi
from tests.fakes.fake_chat_store import FakeChatStore
from tests.fakes.fake_completion import FakeCompletionProvider

__all__ = ["FakeChatApi", "FakeChatStore", "FakeCompletionProvider"]
