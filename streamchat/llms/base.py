from typing import AsyncIterator, List, Protocol

from streamchat.domain.chat import Turn


class CompletionProvider(Protocol):
    def stream_completion(
        self, turns: List[Turn], *, model: str, temperature: float
    ) -> AsyncIterator[str]:
        """Stream a reply to the turns as text fragments, in the order they are produced.

        The stream is finite and cannot be restarted. Provider errors are raised
        as UpstreamFailure, never yielded as content.
        """
        ...
