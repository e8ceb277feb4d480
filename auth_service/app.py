"""Authentication FastAPI application for the auth_service.

Routes live under ``/api/auth``:

- ``POST /register`` — create an unverified account and email a
  verification link; returns the sanitised user.
- ``GET /verify?token=`` — consume a verification token.
- ``POST /login`` — email/password login for verified accounts.
- ``GET /google`` and ``GET /google/callback`` — Google sign-in.
- ``GET /check`` — report whether the session is logged in.
- ``POST /logout`` — clear the session.

Login state is kept in a signed session cookie handled by Starlette's
``SessionMiddleware``. Business rules live in :mod:`workflow`; this module
only wires requests to it.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Dict, Optional

import uvicorn
from fastapi import APIRouter, BackgroundTasks, Depends, FastAPI, HTTPException, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.middleware.sessions import SessionMiddleware

from config import Settings, load_settings
from database import create_engine, create_sessionmaker, get_db, init_db
from errors import AuthenticationError, register_exception_handlers
from mailer import Mailer
from schemas import (
    AuthStatus,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RegisterRequest,
    UserOut,
)
from store import UserStore
from strategies import GOOGLE_PROVIDER, GoogleStrategy, LocalStrategy, create_oauth
from workflow import AuthWorkflow

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(db: AsyncSession = Depends(get_db)) -> UserStore:
    return UserStore(db)


def get_workflow(
    request: Request, store: UserStore = Depends(get_store)
) -> AuthWorkflow:
    return AuthWorkflow(store, request.app.state.mailer, request.app.state.settings)


def get_local_strategy(store: UserStore = Depends(get_store)) -> LocalStrategy:
    return LocalStrategy(store)


def get_google_strategy(
    request: Request, store: UserStore = Depends(get_store)
) -> GoogleStrategy:
    client = request.app.state.oauth.create_client(GOOGLE_PROVIDER)
    if client is None:
        raise HTTPException(status_code=503, detail="Google login is not configured")
    return GoogleStrategy(store, client)


@router.post("/register", response_model=UserOut, response_model_exclude_none=True)
async def register(
    data: RegisterRequest,
    background_tasks: BackgroundTasks,
    workflow: AuthWorkflow = Depends(get_workflow),
) -> UserOut:
    """Register a new user.

    The verification email is sent after the response; delivery problems
    are logged and do not affect the result.
    """
    user = await workflow.register(data, schedule=background_tasks.add_task)
    return UserOut.model_validate(user)


@router.get("/verify", response_model=MessageResponse)
async def verify(
    token: Optional[str] = None, workflow: AuthWorkflow = Depends(get_workflow)
) -> MessageResponse:
    await workflow.verify(token)
    return MessageResponse(message="Email verified")


@router.post("/login", response_model=LoginResponse, response_model_exclude_none=True)
async def login(
    credentials: LoginRequest,
    request: Request,
    workflow: AuthWorkflow = Depends(get_workflow),
    strategy: LocalStrategy = Depends(get_local_strategy),
) -> LoginResponse:
    user = await workflow.login(request.session, strategy, credentials)
    return LoginResponse(logged_in=True, user=UserOut.model_validate(user))


@router.get("/google")
async def google_login(
    request: Request,
    strategy: GoogleStrategy = Depends(get_google_strategy),
    settings: Settings = Depends(get_settings),
):
    redirect_uri = settings.google_callback_url or str(request.url_for("google_callback"))
    return await strategy.authorize_redirect(request, redirect_uri)


@router.get("/google/callback", name="google_callback")
async def google_callback(
    request: Request,
    workflow: AuthWorkflow = Depends(get_workflow),
    strategy: GoogleStrategy = Depends(get_google_strategy),
    settings: Settings = Depends(get_settings),
) -> RedirectResponse:
    try:
        await workflow.login(request.session, strategy, request)
    except AuthenticationError:
        return RedirectResponse(settings.login_failure_redirect, status_code=302)
    return RedirectResponse(settings.login_redirect, status_code=302)


@router.get("/check", response_model=AuthStatus, response_model_exclude_none=True)
async def check(
    request: Request, workflow: AuthWorkflow = Depends(get_workflow)
) -> AuthStatus:
    user = await workflow.check(request.session)
    if user is None:
        return AuthStatus(logged_in=False)
    return AuthStatus(logged_in=True, user=UserOut.model_validate(user))


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request, workflow: AuthWorkflow = Depends(get_workflow)
) -> MessageResponse:
    workflow.logout(request.session)
    return MessageResponse(message="User logged out")


def create_app(settings: Optional[Settings] = None, mailer: Optional[Mailer] = None) -> FastAPI:
    """Build the FastAPI application.

    ``settings`` defaults to :func:`config.load_settings`; ``mailer`` can
    be injected to replace the SendGrid transport.
    """
    settings = settings or load_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = create_engine(settings)
        app.state.engine = engine
        app.state.sessionmaker = create_sessionmaker(engine)
        await init_db(engine)
        try:
            yield
        finally:
            await engine.dispose()

    app = FastAPI(
        root_path=settings.root_path,
        title="Auth Service",
        docs_url="/docs",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.mailer = mailer or Mailer(settings)
    app.state.oauth = create_oauth(settings)

    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.secret_key,
        session_cookie=settings.session_cookie,
        max_age=settings.session_max_age,
        https_only=settings.session_https_only,
        same_site="lax",
    )
    register_exception_handlers(app)
    app.include_router(router)

    @app.get("/health")
    async def health() -> Dict[str, str]:
        """Health check endpoint returning the service status."""
        return {"status": "ok"}

    if not settings.mail_enabled:
        logger.warning("SENDGRID_API_KEY/SENDGRID_CALLBACK not set; verification emails are disabled")
    if not settings.google_enabled:
        logger.info("Google login disabled: GOOGLE_CLIENT_ID/GOOGLE_CLIENT_SECRET not set")
    return app


app = create_app()


def main() -> None:
    """Serve the application with uvicorn; ``HOST`` and ``PORT`` override the bind address."""
    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8000")))


if __name__ == "__main__":
    main()
