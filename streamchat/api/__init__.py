from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from streamchat.api.endpoints import CHAT_ID_HEADER, get_endpoints_router
from streamchat.chat_stores.base import ChatStore
from streamchat.config import settings
from streamchat.llms.base import CompletionProvider
from streamchat.relay import StreamRelay


async def _request_validation_handler(request: Request, exc: RequestValidationError):
    """Report malformed request bodies as bad requests."""
    logger.warning(f"Rejected request to {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


def create_app(
    *,
    chat_store: ChatStore,
    completion_provider: CompletionProvider,
) -> FastAPI:
    """Create FastAPI app."""
    app = FastAPI()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[CHAT_ID_HEADER],
    )
    app.add_exception_handler(RequestValidationError, _request_validation_handler)

    relay = StreamRelay(
        chat_store=chat_store,
        completion_provider=completion_provider,
        model=settings.completion_model,
        temperature=settings.completion_temperature,
    )
    app.include_router(router=get_endpoints_router(relay=relay, chat_store=chat_store))

    return app
