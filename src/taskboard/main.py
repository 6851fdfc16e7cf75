import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .auth import get_basic_auth_dependency, get_identity_provider
from .context import BoardContext
from .dependencies import get_session
from .engine import RollbackPolicy
from .errors import AuthError, BoardError, NotFoundError, ProtectedEntityError, RemoteError, ValidationError
from .repositories import get_document_store
from .routers import board as board_router
from .routers import columns as columns_router
from .routers import personnel as personnel_router
from .routers import tasks as tasks_router
from .session import BoardSession
from .settings import Settings, get_settings

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

openapi_tags = [
    {"name": "health", "description": "Service health and status endpoints."},
    {"name": "board", "description": "The board projection: columns with their tasks, and error notifications."},
    {"name": "columns", "description": "Add and delete board columns. Reserved columns cannot be deleted."},
    {"name": "tasks", "description": "Create, edit, move and delete tasks and toggle their checklist items."},
    {"name": "personnel", "description": "People tasks can be assigned to."},
]

# RemoteError covers both read and write failures
_ERROR_STATUS = (
    (ValidationError, 422),
    (AuthError, 401),
    (ProtectedEntityError, 403),
    (NotFoundError, 404),
    (RemoteError, 503),
)

SessionFactory = Callable[[Settings], BoardSession]


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)


# PUBLIC_INTERFACE
def create_session(settings: Settings) -> BoardSession:
    """Build the board session for the configured store, identity and rollback policy."""
    context = BoardContext(
        get_document_store(settings),
        get_identity_provider(settings),
        app_id=settings.app_id,
    )
    return BoardSession(context, rollback_policy=RollbackPolicy(settings.optimistic_rollback))


# Global exception handlers for consistent JSON on validation errors
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Return a consistent JSON structure for request validation errors.

    Response format:
        {
            "error": "ValidationError",
            "detail": [... pydantic/fastapi error details ...],
            "message": "Request validation failed"
        }
    """
    return JSONResponse(
        status_code=422,
        content={
            "error": "ValidationError",
            "message": "Request validation failed",
            "detail": jsonable_encoder(exc.errors()),
        },
    )


async def board_error_handler(request: Request, exc: BoardError) -> JSONResponse:
    """
    Translate board errors into JSON responses.

    Response format:
        {"error": "<exception class name>", "message": "<human readable message>"}
    """
    status_code = next((code for cls, code in _ERROR_STATUS if isinstance(exc, cls)), 500)
    return JSONResponse(
        status_code=status_code,
        content={"error": type(exc).__name__, "message": str(exc)},
    )


# PUBLIC_INTERFACE
def create_app(settings: Optional[Settings] = None, session_factory: SessionFactory = create_session) -> FastAPI:
    """
    Build the FastAPI application.

    The board session is created and opened in the lifespan and closed on
    shutdown; routes reach it through the get_session dependency.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        session = session_factory(settings)
        await session.open()
        app.state.session = session
        logger.info(
            "Board session open for user %s (backend=%s, rollback=%s)",
            session.user_id,
            settings.persistence_backend,
            settings.optimistic_rollback,
        )
        try:
            yield
        finally:
            await session.close()
            logger.info("Board session closed")

    app = FastAPI(
        title="Task Board Sync Engine",
        description="Kanban board service: per-user columns, tasks and personnel kept in sync with a document store.",
        version="0.1.0",
        openapi_tags=openapi_tags,
        lifespan=lifespan,
    )

    # Configure CORS based on settings (.env -> CORS_ALLOW_ORIGINS), with '*' fallback
    allow_all = (settings.cors_allow_origins == ["*"]) or (len(settings.cors_allow_origins) == 0)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(BoardError, board_error_handler)

    # PUBLIC_INTERFACE
    @app.get("/", summary="Health Check", tags=["health"])
    def health_check(session: BoardSession = Depends(get_session)):
        """
        Health check endpoint.

        Returns:
            A JSON object indicating service health, the storage backend and
            the user id the board is scoped to.
        """
        return {
            "message": "Healthy",
            "backend": settings.persistence_backend,
            "user_id": session.user_id,
        }

    # Include routers
    auth_dependency = get_basic_auth_dependency(settings)
    for module in (board_router, columns_router, tasks_router, personnel_router):
        app.include_router(module.router, dependencies=[Depends(auth_dependency)])

    return app


app = create_app()
