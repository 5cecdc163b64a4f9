import sys

from loguru import logger
from openai import AsyncOpenAI

from streamchat.api import create_app
from streamchat.chat_stores.local import LocalChatStore
from streamchat.config import settings
from streamchat.llms.openai_completion import OpenAICompletionProvider

logger.configure(handlers=[{"sink": sys.stderr, "level": settings.log_level}])

logger.info(f"Initializing chat relay with OpenAI model {settings.completion_model}")
openai_client = AsyncOpenAI(api_key=settings.openai_api_key, base_url=settings.openai_base_url)

chat_store = LocalChatStore(filepath=settings.local_chat_store_path)
completion_provider = OpenAICompletionProvider(openai_client)
app = create_app(
    chat_store=chat_store,
    completion_provider=completion_provider,
)
