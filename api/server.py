"""
KW OS API Server - REST API over the knowledge base and task database.
"""

import logging

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.calendar_router import calendar_router
from api.files_router import files_router
from api.gmail_router import gmail_router
from api.items_router import items_router
from api.meetings_router import meetings_router
from api.organizations_router import organizations_router
from api.people_router import people_router
from api.projects_router import projects_router
from api.query_router import query_router
from api.response_models import HealthResponse
from api.routines_router import routines_router
from api.sync_router import sync_router
from api.tags_router import tags_router
from api.timecard_router import timecard_router
from lib import config
from lib import db as db_module
from lib.errors import ServiceError
from lib.time_utils import now_iso

logger = logging.getLogger(__name__)

app = FastAPI(
    title="KW OS API",
    description="Tasks, projects, routines and meetings over a markdown knowledge base",
    version="1.0.0",
)

# CORS_ORIGINS is * in development; a comma-separated list otherwise
cors_origins = ["*"] if config.CORS_ORIGINS == "*" else [o.strip() for o in config.CORS_ORIGINS.split(",")]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for router in (
    items_router,
    routines_router,
    projects_router,
    people_router,
    organizations_router,
    tags_router,
    query_router,
    sync_router,
    files_router,
    meetings_router,
    gmail_router,
    calendar_router,
    timecard_router,
):
    app.include_router(router, prefix="/api")


# ==== Errors ====


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})


# ==== DB Startup & Migrations ====


@app.on_event("startup")
async def run_db_migrations_on_startup():
    """Converge the schema before the first request."""
    result = db_module.run_startup_migrations()
    if result.get("errors"):
        logger.warning("Startup migration finished with errors: %s", result["errors"])


@app.get("/api/health", response_model=HealthResponse)
def health() -> dict:
    return {"status": "ok", "timestamp": now_iso(), "database": db_module.get_db_info()}


def main(host: str | None = None, port: int | None = None) -> None:
    logging.basicConfig(
        level=config.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    host = host or config.API_HOST
    port = port or config.API_PORT
    logger.info("Starting KW OS API on %s:%d", host, port)
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
