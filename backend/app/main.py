import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from backend.app.api.v1.api import api_router
from backend.app.core.config import settings
from backend.app.core.database import init_db
from backend.app.core.logging_config import configure_logging
from backend.app.middleware.request_id import RequestIDMiddleware

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    configure_logging()
    if settings.AUTO_CREATE_TABLES:
        init_db()
    logger.info("Storefront backend started")
    yield


app = FastAPI(title="Storefront ERP Backend", lifespan=lifespan)

# ─── CORS — admin panel and storefront origins ────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)

app.add_middleware(RequestIDMiddleware)


@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error(
        "Unhandled storage error on %s %s [%s]: %s",
        request.method,
        request.url.path,
        getattr(request.state, "request_id", "-"),
        exc,
    )
    return JSONResponse(status_code=500, content={"detail": "Storage failure"})


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok"}


app.include_router(api_router)
