from types import SimpleNamespace

import httpx
import openai
import pytest

from streamchat.domain.chat import Turn
from streamchat.domain.exceptions import UpstreamFailure
from streamchat.llms.openai_completion import OpenAICompletionProvider


def chunk(content: str | None) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content))])


class FakeStream:
    def __init__(self, chunks: list, error: Exception | None = None) -> None:
        self.chunks = chunks
        self.error = error
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for c in self.chunks:
            yield c
        if self.error:
            raise self.error

    async def close(self) -> None:
        self.closed = True


class FakeCompletions:
    def __init__(self, stream: FakeStream | None = None, error: Exception | None = None) -> None:
        self.stream = stream
        self.error = error
        self.kwargs: dict = {}

    async def create(self, **kwargs):
        self.kwargs = kwargs
        if self.error:
            raise self.error
        return self.stream


def provider_for(completions: FakeCompletions) -> OpenAICompletionProvider:
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return OpenAICompletionProvider(client)  # type: ignore[arg-type]


def connection_error() -> openai.APIConnectionError:
    return openai.APIConnectionError(
        request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    )


async def collect(provider: OpenAICompletionProvider) -> list[str]:
    turns = [Turn(role="user", content="Hello")]
    fragments = provider.stream_completion(turns, model="gpt-4o-mini", temperature=0.7)
    return [fragment async for fragment in fragments]


@pytest.mark.asyncio
async def test_streams_content_deltas() -> None:
    stream = FakeStream(
        [chunk("Hi"), chunk(None), SimpleNamespace(choices=[]), chunk(""), chunk(" there!")]
    )
    completions = FakeCompletions(stream)

    assert await collect(provider_for(completions)) == ["Hi", " there!"]
    assert completions.kwargs == {
        "model": "gpt-4o-mini",
        "messages": [{"role": "user", "content": "Hello"}],
        "temperature": 0.7,
        "stream": True,
    }
    assert stream.closed


@pytest.mark.asyncio
async def test_error_opening_stream_is_upstream_failure() -> None:
    completions = FakeCompletions(error=connection_error())

    with pytest.raises(UpstreamFailure):
        await collect(provider_for(completions))


@pytest.mark.asyncio
async def test_error_mid_stream_is_upstream_failure() -> None:
    stream = FakeStream([chunk("Hi")], error=connection_error())

    with pytest.raises(UpstreamFailure):
        await collect(provider_for(FakeCompletions(stream)))
    assert stream.closed


@pytest.mark.asyncio
async def test_stopping_early_closes_stream() -> None:
    stream = FakeStream([chunk("Hi"), chunk(" there!")])
    fragments = provider_for(FakeCompletions(stream)).stream_completion(
        [Turn(role="user", content="Hello")], model="gpt-4o-mini", temperature=0.7
    )

    assert await fragments.__anext__() == "Hi"
    await fragments.aclose()

    assert stream.closed
