"""
History Progress Engine

FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, HTTPException, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from history_engine.api.deps import DbSession, get_curriculum, get_question_bank
from history_engine.api.middleware.request_id import RequestIdMiddleware
from history_engine.api.v1 import router as api_v1_router
from history_engine.config import get_settings
from history_engine.database import close_db, init_db, ping
from history_engine.logging_config import configure_logging, get_logger
from history_engine.schemas.common import HealthResponse

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan handler.

    Runs startup and shutdown tasks.
    """
    configure_logging(
        log_level=settings.log_level,
        environment=settings.environment,
        debug=settings.debug,
    )

    logger.info("Starting %s v%s", settings.project_name, settings.version)
    await init_db()
    logger.info("Database initialized")
    curriculum = get_curriculum()
    logger.info(
        "Curriculum loaded",
        extra={"phases": len(curriculum.phases()), "path": str(settings.curriculum_path)},
    )

    yield

    logger.info("Shutting down...")
    await close_db()
    logger.info("Database connections closed")


app = FastAPI(
    title=settings.project_name,
    description="""
    History Progress Engine

    Reading progress, quiz gating and attempt lockout for history dossiers.

    ## Rules

    1. Reading gate: a quiz opens once 80% of the dossier has been read
    2. Grading: score 0-100 with stars; 70 passes
    3. Attempts: two failures, then a 12 hour lock; attempt packs add credits
    4. Sequencing: an event unlocks once the previous event of its era is passed
    """,
    version=settings.version,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)


# add_middleware stacks innermost-first: CORS is added last so it wraps everything
_cors_origins = [
    "http://localhost:3000",
    "http://localhost:5173",
    "http://127.0.0.1:3000",
]

app.add_middleware(RequestIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_headers(request: Request) -> dict:
    req_id = getattr(request.state, "request_id", None)
    return {"X-Request-ID": req_id} if req_id else {}


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Pass detail through; 5xx responses also carry the request id."""
    content = {"detail": exc.detail}
    req_id = getattr(request.state, "request_id", None)
    if req_id and exc.status_code >= 500:
        content["request_id"] = req_id
    return JSONResponse(status_code=exc.status_code, content=content, headers=_error_headers(request))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
):
    """Handle request validation errors."""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })
    content = {"detail": "Validation error", "errors": errors}
    req_id = getattr(request.state, "request_id", None)
    if req_id:
        content["request_id"] = req_id
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=content,
        headers=_error_headers(request),
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    """Engine invariant violations are client errors."""
    logger.warning("Rejected request: %s", exc, extra={"path": request.url.path})
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": str(exc)},
        headers=_error_headers(request),
    )


def _server_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled exception: %s", exc, exc_info=exc)
    req_id = getattr(request.state, "request_id", None)
    if settings.debug:
        content = {
            "detail": str(exc),
            "type": type(exc).__name__,
            "request_id": req_id,
        }
    else:
        content = {"detail": "Internal server error", "request_id": req_id}
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=content,
        headers=_error_headers(request),
    )


@app.exception_handler(ValidationError)
async def model_error_handler(request: Request, exc: ValidationError):
    """A model built inside a handler failed validation: a server bug, not bad input."""
    return _server_error(request, exc)


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    return _server_error(request, exc)


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(db: DbSession, response: Response):
    """Check the database and the quiz bank. 503 when the database does not answer."""
    db_ok = await ping(db)
    if not db_ok:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return HealthResponse(
        status="ok" if db_ok else "degraded",
        version=settings.version,
        database="connected" if db_ok else "unavailable",
        quiz_bank_loaded=get_question_bank().path.exists(),
    )


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "name": settings.project_name,
        "version": settings.version,
        "docs": "/docs" if settings.debug else "disabled",
        "api": {
            "v1": "/api/v1",
        },
    }


app.include_router(
    api_v1_router,
    prefix=settings.api_v1_prefix,
)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "history_engine.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
