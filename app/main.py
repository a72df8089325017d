"""
Daily Dev Push Backend — FastAPI Entry Point

Initializes the FastAPI app, registers the push routes, and renders
service errors as {"error": "<message>"} responses.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.api.notifications import router as push_router
from app.core.errors import PushServiceError

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Daily Dev Push API",
    description="Reminder push scheduling and APNs delivery",
    version="0.1.0",
)

# --- Register API routers ---
app.include_router(push_router)


@app.exception_handler(PushServiceError)
async def push_service_error_handler(
    request: Request, exc: PushServiceError,
) -> JSONResponse:
    """Render any PushServiceError with its status code."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})


@app.get("/health")
async def health_check():
    """Health check endpoint. Returns service status."""
    return {"status": "ok"}
