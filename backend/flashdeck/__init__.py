from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from flashdeck.config import settings
from flashdeck.db import init_all_databases
from flashdeck.errors import FlashdeckError, RateLimitExceededError


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_all_databases(settings.flashdeck_data_dir)
    yield


async def handle_domain_error(request: Request, exc: FlashdeckError) -> JSONResponse:
    headers = None
    if isinstance(exc, RateLimitExceededError):
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.to_dict()},
        headers=headers,
    )


def create_app() -> FastAPI:
    application = FastAPI(
        title="Flashdeck Backend", version="0.1.0", lifespan=lifespan
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.add_exception_handler(FlashdeckError, handle_domain_error)

    from flashdeck.routers.deps import build_rate_limits
    from flashdeck.services.llm_service import provider_from_settings

    application.state.rate_limits = build_rate_limits(settings)
    application.state.completion_provider = provider_from_settings()

    from flashdeck.routers import decks, flashcards, health, reviews

    application.include_router(health.router)
    application.include_router(
        decks.router, prefix="/decks", tags=["decks"]
    )
    application.include_router(
        flashcards.router, prefix="/flashcards", tags=["flashcards"]
    )
    application.include_router(
        reviews.router, prefix="/reviews", tags=["reviews"]
    )

    return application


app = create_app()
