from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from routers.rooms import rooms_router, notifications_router
from routers.collections import collections_router
from errors import Forbidden, InvalidOperation, NotFound, OperationTimeout, RoomError, StoreUnavailable, VersionConflict
from logging_config import get_logger, setup_logging
import os

# Setup logging
log_level = os.getenv("LOG_LEVEL", "INFO")
log_file = os.getenv("LOG_FILE", None)
setup_logging(log_level=log_level, log_file=log_file)
logger = get_logger(__name__)

app = FastAPI()

# Configure CORS to allow all origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins
    allow_credentials=True,
    allow_methods=["*"],  # Allow all HTTP methods
    allow_headers=["*"],  # Allow all headers
)

app.include_router(rooms_router)
app.include_router(collections_router)
app.include_router(notifications_router)

logger.info("FastAPI application initialized")

# Most specific first; the first matching class wins
ERROR_STATUS = [
    (NotFound, 404),
    (Forbidden, 403),
    (VersionConflict, 409),
    (InvalidOperation, 400),
    (OperationTimeout, 504),
    (StoreUnavailable, 503),
]


def status_for(exc: RoomError) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status
    return 500


@app.exception_handler(RoomError)
async def room_error_handler(request: Request, exc: RoomError):
    status = status_for(exc)
    if status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.warning(f"{request.method} {request.url.path} refused ({status}): {exc}")
    return JSONResponse(status_code=status, content={"detail": str(exc), "error": type(exc).__name__})


@app.get("/health")
async def health():
    return {"status": "ok"}
