from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .auth import MagicLinkAuth
from .checkin import CheckInService
from .config import Settings, get_settings
from .database import Base, engine
from .dev_tokens import DevTokenStore
from .identity_provider import IdentityProvider, get_identity_provider
from .mailer import Notifier, build_notifier
from .observability import RequestTimingLoggingMiddleware, add_exception_handlers, configure_logging
from .routers import auth as auth_router
from .routers import events as events_router
from .routers import health
from .routers import members as members_router
from .tokens import CheckInTokenCodec

# Ensure schema is present when the module is imported (helps tests using TestClient without lifespan)
Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Initialize database schema on startup
    Base.metadata.create_all(bind=engine)
    yield


def create_app(
    settings: Optional[Settings] = None,
    provider: Optional[IdentityProvider] = None,
    notifier: Optional[Notifier] = None,
    codec: Optional[CheckInTokenCodec] = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    application = FastAPI(title="Flock Manager API", version="0.1.0", lifespan=lifespan)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.add_middleware(RequestTimingLoggingMiddleware)

    add_exception_handlers(application)

    # Collaborators live on the app instance, not in module globals
    notifier = notifier or build_notifier(settings)
    codec = codec or CheckInTokenCodec(settings.checkin_token_secret, settings.checkin_token_ttl_hours)
    application.state.notifier = notifier
    application.state.codec = codec
    application.state.checkin = CheckInService(codec, notifier, settings.checkin_token_storage_limit)
    application.state.auth = MagicLinkAuth(
        settings,
        provider or get_identity_provider(settings),
        notifier,
        DevTokenStore(),
    )

    # Routers
    application.include_router(health.router)
    application.include_router(auth_router.router)
    application.include_router(members_router.router)
    application.include_router(events_router.public_router)
    application.include_router(events_router.router)

    return application


app = create_app()
