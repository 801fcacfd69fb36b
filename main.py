"""
FastAPI backend for the neural network interpreter.

This module provides the web API behind the browser front-end: CSV upload,
dataset preparation, architecture recommendation, model building, training
with live progress over WebSocket, evaluation and prediction.
"""

import asyncio

import uvicorn
from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, ORJSONResponse

from api.app_config import app_config
from api.shared.logger import get_logger, setup_logging

settings = app_config.get_settings()
setup_logging(settings.log_level)
logger = get_logger(__name__)

from api.datasets import router as datasets_router
from api.jobs import job_manager
from api.models import router as models_router
from api.predictions import router as predictions_router
from api.sessions import router as sessions_router
from api.shared.errors import PipelineError
from api.system import APP_VERSION, log_error
from api.system import router as system_router
from api.training import router as training_router
from realtime import job_channel, ws_manager

# Create FastAPI app
app = FastAPI(
    title="Neural Network Interpreter API",
    description="Upload a CSV dataset, get an architecture recommendation, train and query a network",
    version=APP_VERSION,
    default_response_class=ORJSONResponse,
)


# ============= Exception Handlers for Error Logging =============


@app.exception_handler(PipelineError)
async def pipeline_exception_handler(request: Request, exc: PipelineError):
    """Translate pipeline failures into their HTTP status."""
    if exc.status_code >= 500:
        log_error(
            endpoint=str(request.url.path),
            message=str(exc),
            details=f"Pipeline error: {exc.kind}",
            exc=exc,
        )
    else:
        logger.info("%s rejected (%s): %s", request.url.path, exc.kind, exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": str(exc), "error": exc.kind},
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Log HTTP exceptions and return JSON response."""
    # Only log 5xx errors (server errors)
    if exc.status_code >= 500:
        log_error(
            endpoint=str(request.url.path),
            message=str(exc.detail),
            details=f"Status code: {exc.status_code}",
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Log unexpected exceptions and return JSON response."""
    log_error(
        endpoint=str(request.url.path),
        message=str(exc),
        level="critical",
        details=f"Unhandled exception: {type(exc).__name__}",
        exc=exc,
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


# Browser front-end is served from another origin during development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Include API routes
app.include_router(sessions_router, prefix="/api", tags=["sessions"])
app.include_router(datasets_router, prefix="/api", tags=["datasets"])
app.include_router(models_router, prefix="/api", tags=["models"])
app.include_router(training_router, prefix="/api", tags=["training"])
app.include_router(predictions_router, prefix="/api", tags=["predictions"])
app.include_router(system_router, prefix="/api", tags=["system"])


# ============= Startup Events =============


@app.on_event("startup")
async def startup_event():
    """Attach the event loop so worker threads can push WebSocket updates."""
    ws_manager.attach_loop(asyncio.get_running_loop())
    logger.info("Neural network interpreter %s starting...", APP_VERSION)
    logger.info("Config folder: %s", app_config.config_dir)


@app.on_event("shutdown")
async def shutdown_event():
    ws_manager.attach_loop(None)
    job_manager.shutdown(wait=False)
    logger.info("Shutdown complete")


# ============= WebSocket Endpoints =============


async def _serve_websocket(websocket: WebSocket) -> None:
    """Answer ping/subscribe messages until the client disconnects."""
    try:
        while True:
            message_text = await websocket.receive_text()
            response = await ws_manager.handle_message(websocket, message_text)
            if response:
                await ws_manager.send_to_connection(websocket, response)

    except WebSocketDisconnect:
        await ws_manager.disconnect(websocket)
    except Exception as e:
        logger.error("WebSocket error: %s", e)
        await ws_manager.disconnect(websocket)


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, client_id: str = None):
    """
    Main WebSocket endpoint for real-time updates.

    Clients subscribe to ``job:{job_id}`` channels for job and epoch events.

    Message format (JSON):
    {
        "type": "subscribe" | "unsubscribe" | "ping",
        "channel": "channel_name",
        "data": {"channel": "job:..."}
    }
    """
    await ws_manager.connect(websocket, client_id)
    await _serve_websocket(websocket)


@app.websocket("/ws/training/{job_id}")
async def training_websocket_endpoint(websocket: WebSocket, job_id: str):
    """
    WebSocket endpoint for one training job.

    Automatically subscribes to the job channel and streams epoch-by-epoch
    progress and metrics.
    """
    await ws_manager.connect(websocket, f"training-{job_id}")
    await ws_manager.subscribe(websocket, job_channel(job_id))
    await _serve_websocket(websocket)


@app.get("/api/ws/stats")
async def get_websocket_stats():
    """Get WebSocket connection statistics."""
    return {
        "total_connections": ws_manager.get_connection_count(),
    }


def main():
    """Run the backend server with uvicorn."""
    import argparse

    parser = argparse.ArgumentParser(description="Neural network interpreter backend server")
    parser.add_argument(
        "--port",
        type=int,
        default=settings.port,
        help="Port to run the server on (default: 8000 or NNI_PORT env var)",
    )
    parser.add_argument(
        "--host",
        type=str,
        default=settings.host,
        help="Host to bind to (default: 127.0.0.1 or NNI_HOST env var)",
    )
    parser.add_argument(
        "--reload",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Enable auto-reload",
    )
    args = parser.parse_args()

    uvicorn.run(
        "main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
