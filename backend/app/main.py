import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .api import query as query_api
from .config import DATABASE_URL
from .database import Database
from .services.ai_client import get_chat_client
from .services.embeddings import get_embedding_provider
from .utils.error_handlers import get_error_message, register_exception_handlers

app = FastAPI(title="Food Truck Finder")

app.include_router(query_api.router)
register_exception_handlers(app)

logger = logging.getLogger(__name__)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected errors globally."""
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": get_error_message("server_error"),
        },
    )


@app.get("/health")
def health_check():
    """Health check endpoint."""
    database: Database | None = getattr(app.state, "database", None)
    return {
        "status": "Backend running",
        "service": "Food Truck Finder",
        "database": database.dialect if database else None,
    }


@app.on_event("startup")
def on_startup() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    # Providers fail fast on missing credentials so the server never boots half-configured.
    if getattr(app.state, "embedder", None) is None:
        app.state.embedder = get_embedding_provider()
    if getattr(app.state, "chat", None) is None:
        app.state.chat = get_chat_client()
    if getattr(app.state, "database", None) is None:
        app.state.database = Database(DATABASE_URL)
        app.state.database.init_schema()
    logger.info("server ready (database=%s)", app.state.database.dialect)


@app.on_event("shutdown")
def on_shutdown() -> None:
    database: Database | None = getattr(app.state, "database", None)
    if database is not None:
        database.dispose()
