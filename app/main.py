# app/main.py
from datetime import timedelta

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from app.api.auth import router as auth_router
from app.api.tokens import router as tokens_router

from app.core.config import settings
from app.core.crypto import TokenSigner
from app.core.errors import AuthError
from app.core.identity import UserDirectory
from app.core.logging import configure_logging, get_logger
from app.core.security import RequestAuthenticator
from app.core.tokens import TokenAuthority
from app.db.session import SessionLocal, engine, init_models
from app.db.store import CredentialStore

configure_logging(settings.log_level, settings.log_json)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # === STARTUP ===
    signer = TokenSigner.from_settings(settings)  # fails fast on a bad secret
    await init_models(engine)

    store = CredentialStore(SessionLocal, timeout=settings.store_timeout)
    directory = UserDirectory(SessionLocal, timeout=settings.store_timeout)
    authority = TokenAuthority(signer, store, ttl=timedelta(seconds=settings.token_ttl))

    app.state.store = store
    app.state.directory = directory
    app.state.authority = authority
    app.state.authenticator = RequestAuthenticator(authority, directory)
    logger.info("startup", db_url=engine.url.render_as_string(hide_password=True), ttl=settings.token_ttl)
    yield
    # === SHUTDOWN ===
    await engine.dispose()


app = FastAPI(title="Token Authority", lifespan=lifespan)

app.include_router(auth_router, prefix="/auth", tags=["auth"])
app.include_router(tokens_router, prefix="/users", tags=["access-tokens"])


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError):
    logger.info("request_failed", path=request.url.path, status=exc.status_code, reason=exc.reason)
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"code": exc.status_code, "message": exc.message},
        headers=headers,
    )


@app.get("/")
def root():
    return {"ok": True}
