import logging
import secrets
from contextlib import asynccontextmanager

import uvicorn
from fastapi import Depends, FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.openapi.utils import get_openapi
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from starlette.middleware.sessions import SessionMiddleware

from littlefish.api.endpoints import auth, health, indexer, wallet_auth
from littlefish.core.config import settings
from littlefish.core.errors import AppError, Unauthorized, app_error_handler, request_validation_handler
from littlefish.db.init_db import init_db
from littlefish.db.session import engine

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("littlefish")

API_PREFIX = "/api"


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db(engine, seed=settings.SEED_DEMO_DATA)
    logger.info("%s started (%s)", settings.PROJECT_NAME, settings.ENVIRONMENT)
    yield


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
    lifespan=lifespan,
)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)

# signed cookie holding user_id and the linked wallet, re-issued whenever it changes
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.SESSION_SECRET_KEY,
    max_age=settings.SESSION_MAX_AGE,
    same_site="lax",
    https_only=settings.is_production,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

docs_security = HTTPBasic()


def require_docs_password(credentials: HTTPBasicCredentials = Depends(docs_security)) -> str:
    """Docs stay closed while DOC_PASSWORD is unset."""
    password = settings.DOC_PASSWORD
    if not password or not secrets.compare_digest(credentials.password.encode(), password.encode()):
        err = Unauthorized("Incorrect password")
        err.headers = {"WWW-Authenticate": "Basic"}
        raise err
    return credentials.username


@app.get("/docs", include_in_schema=False)
async def swagger_docs(_: str = Depends(require_docs_password)):
    return get_swagger_ui_html(openapi_url="/openapi.json", title=f"{app.title} docs")


@app.get("/redoc", include_in_schema=False)
async def redoc_docs(_: str = Depends(require_docs_password)):
    return get_redoc_html(openapi_url="/openapi.json", title=f"{app.title} docs")


@app.get("/openapi.json", include_in_schema=False)
async def openapi_schema(_: str = Depends(require_docs_password)):
    return get_openapi(title=app.title, version=app.version, routes=app.routes)


app.include_router(health.router)
for module in (auth, wallet_auth, indexer):
    app.include_router(module.router, prefix=API_PREFIX)


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        ssl_keyfile=settings.SSL_KEY,
        ssl_certfile=settings.SSL_CERT,
        reload=settings.DEBUG,
    )
