from typing import AsyncGenerator, List

from loguru import logger
from openai import AsyncOpenAI, OpenAIError

from streamchat.domain.chat import Turn
from streamchat.domain.exceptions import UpstreamFailure


class OpenAICompletionProvider:
    def __init__(self, client: AsyncOpenAI) -> None:
        self.client = client

    async def stream_completion(
        self, turns: List[Turn], *, model: str, temperature: float
    ) -> AsyncGenerator[str, None]:
        """Stream chat completions, yielding only new content chunks."""
        try:
            stream = await self.client.chat.completions.create(
                model=model,
                messages=[t.model_dump() for t in turns],  # type: ignore
                temperature=temperature,
                stream=True,
            )
        except OpenAIError as e:
            logger.error(f"Could not open completion stream: {e}")
            raise UpstreamFailure(str(e)) from e

        try:
            async for chunk in stream:
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content
                if content:
                    yield content
        except OpenAIError as e:
            logger.error(f"Completion stream failed: {e}")
            raise UpstreamFailure(str(e)) from e
        finally:
            await stream.close()
