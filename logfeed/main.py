"""FastAPI application serving the agent log feed."""

import logging
import os
from typing import Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from .classification import Classifier
from .config import MAX_LIMIT, load_settings
from .feed import LogFeed
from .ingestion import (
    InvalidLogFileName,
    LogDirectoryNotFoundError,
    list_log_files,
    resolve_log_path,
    today_log_file,
)


LOGGER = logging.getLogger(__name__)

# Configuration from environment
settings = load_settings()


def _configure_logging() -> None:
    """Configure a reasonable default logging setup."""
    level = getattr(logging, settings.log_level, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


_configure_logging()

feed = LogFeed(classifier=Classifier(suppressed_subsystems=settings.suppressed_subsystems))

# Create FastAPI app
app = FastAPI(
    title="Agent Log Feed",
    description="""
    Tails the JSON log files written by the agent and turns each line
    into a readable event for a live dashboard.
    
    ## Endpoints
    - `GET /api/logs` - Most recent classified events of a log file
    - `GET /api/logs/files` - Log files available in a directory
    - `GET /api/settings` - Defaults used when parameters are omitted
    """,
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_methods=["GET"],
    allow_headers=["*"],
)


@app.get("/api/logs")
def get_logs(
    dir: Optional[str] = Query(
        default=None,
        description="Log directory (defaults to the configured directory)"
    ),
    file: Optional[str] = Query(
        default=None,
        description="Log file name (defaults to today's file)"
    ),
    limit: int = Query(
        default=settings.default_limit,
        ge=0,
        le=MAX_LIMIT,
        description="Number of most recent events to return (0 for the default)"
    ),
    level: str = Query(
        default="all",
        description="Only return events of this level (error, warn, info, debug, unknown) or all"
    ),
):
    """
    Return the most recent classified events of a log file.
    
    ## Response
    - **logs**: Classified events, oldest first
    - **total**: Number of matching events before truncation
    - **showing**: Number of events returned
    - **path**: Resolved log file path
    - **counts**: Number of matching events per event type
    - **error**: Present when the log file does not exist
    """
    log_dir = dir or settings.log_dir
    log_file = file or today_log_file(settings.file_prefix)
    limit = limit or settings.default_limit
    
    try:
        result = feed.tail(log_dir, log_file, limit=limit, level=level)
    except InvalidLogFileName as e:
        raise HTTPException(status_code=400, detail=str(e))
    except OSError as e:
        LOGGER.exception("Failed to read log file %s in %s", log_file, log_dir)
        return JSONResponse(
            status_code=500,
            content={"error": str(e), "path": str(resolve_log_path(log_dir, log_file))},
        )
    
    return result.to_dict()


@app.get("/api/logs/files")
def get_log_files(
    dir: Optional[str] = Query(
        default=None,
        description="Log directory (defaults to the configured directory)"
    ),
):
    """List the `.log` files of a directory, newest first."""
    log_dir = dir or settings.log_dir
    
    try:
        files = list_log_files(log_dir)
    except LogDirectoryNotFoundError as e:
        LOGGER.info("%s", e)
        return {"files": [], "dir": log_dir, "error": str(e)}
    except OSError as e:
        LOGGER.exception("Failed to list log directory %s", log_dir)
        return JSONResponse(status_code=500, content={"error": str(e), "dir": log_dir})
    
    return {"files": files, "dir": log_dir}


@app.get("/api/settings")
def get_settings():
    """Defaults the client should show in its settings panel."""
    return {
        "defaultLogDir": settings.log_dir,
        "defaultLogFile": today_log_file(settings.file_prefix),
        "defaultLimit": settings.default_limit,
        "refreshIntervalMs": settings.refresh_interval_ms,
        "suppressedSubsystems": list(settings.suppressed_subsystems),
    }


@app.get("/health")
async def health_check():
    """Simple health check endpoint."""
    return {"status": "healthy"}


# Serve the built dashboard after the API routes
if settings.static_dir and os.path.isdir(settings.static_dir):
    app.mount("/", StaticFiles(directory=settings.static_dir, html=True), name="dashboard")
    LOGGER.info("Serving dashboard from %s", settings.static_dir)
