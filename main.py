"""
FastAPI backend for Simulix.

This module provides the web API behind the Simulix visualizations:
bootstrap, bias-variance decomposition and tradeoff, importance sampling,
random forest, neural network training, the K-means game, the
low-rank VAE toy and the smaller algorithm pages (Q-learning maze, EM
clustering, Huber mean, simulated annealing, Hi-Lo and the alias method).
Long sweeps run as background jobs whose progress is pushed over WebSocket.
"""

import asyncio
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, ORJSONResponse

from api.settings import get_settings
from api.shared.logger import get_logger, setup_logging

settings = get_settings()
setup_logging(settings.log_level)
logger = get_logger(__name__)

from api.alias import router as alias_router
from api.annealing import router as annealing_router
from api.bias_variance import get_tradeoff_calculator
from api.bias_variance import router as bias_variance_router
from api.bootstrap import router as bootstrap_router
from api.em_clustering import router as em_router
from api.hilo import router as hilo_router
from api.huber import router as huber_router
from api.importance_sampling import router as importance_sampling_router
from api.jobs import job_manager
from api.jobs_routes import router as jobs_router
from api.kmeans import router as kmeans_router
from api.neural_network import router as neural_network_router
from api.qlearning import router as qlearning_router
from api.random_forest import router as random_forest_router
from api.system import log_error, mark_ready
from api.system import router as system_router
from api.vae import router as vae_router
from realtime import ws_manager

# Create FastAPI app
app = FastAPI(
    title="Simulix API",
    description="Computation backend for the Simulix statistics and machine learning visualizations",
    version="1.0.0",
    default_response_class=ORJSONResponse,
)


# ============= Exception Handlers for Error Logging =============


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Log HTTP exceptions and return JSON response."""
    # Only log 5xx errors (server errors)
    if exc.status_code >= 500:
        log_error(
            endpoint=str(request.url.path),
            message=str(exc.detail),
            level="error",
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


# Vite dev server runs on another port, so CORS is always on
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=False,  # Must be False when using allow_origins=["*"]
    allow_methods=["*"],
    allow_headers=["*"],
)


# Include API routes
app.include_router(system_router, prefix="/api", tags=["system"])
app.include_router(jobs_router, prefix="/api", tags=["jobs"])
app.include_router(bootstrap_router, prefix="/api", tags=["bootstrap"])
app.include_router(bias_variance_router, prefix="/api", tags=["bias-variance"])
app.include_router(importance_sampling_router, prefix="/api", tags=["importance-sampling"])
app.include_router(random_forest_router, prefix="/api", tags=["random-forest"])
app.include_router(neural_network_router, prefix="/api", tags=["neural-network"])
app.include_router(kmeans_router, prefix="/api", tags=["kmeans"])
app.include_router(vae_router, prefix="/api", tags=["vae"])
app.include_router(qlearning_router, prefix="/api", tags=["qlearning"])
app.include_router(em_router, prefix="/api", tags=["em-clustering"])
app.include_router(huber_router, prefix="/api", tags=["huber"])
app.include_router(annealing_router, prefix="/api", tags=["annealing"])
app.include_router(hilo_router, prefix="/api", tags=["hilo"])
app.include_router(alias_router, prefix="/api", tags=["alias"])


# ============= Startup Events =============


@app.on_event("startup")
async def startup_event():
    """Initialize services on application startup."""
    logger.info("Simulix backend starting...")

    # Job threads schedule websocket broadcasts on this loop
    job_manager.bind_loop(asyncio.get_running_loop())
    ws_manager.set_tradeoff_calculator(get_tradeoff_calculator())

    mark_ready(True)
    logger.info("Startup complete, backend ready")


@app.on_event("shutdown")
async def shutdown_event():
    job_manager.bind_loop(None)
    mark_ready(False)
    logger.info("Simulix backend stopped")


# ============= WebSocket Endpoints =============


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, client_id: str = None):
    """
    Main WebSocket endpoint for real-time updates.

    Clients can subscribe to channels for specific updates:
    - job:{job_id} - Updates for a specific background job

    Message format (JSON):
    {
        "type": "subscribe" | "unsubscribe" | "ping",
        "channel": "channel_name",
        "data": {}
    }

    The tradeoff worker protocol is answered on the same connection:
    {"type": "CALCULATE_TRADEOFF", "params": {...}}
    """
    await ws_manager.connect(websocket, client_id)

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


@app.websocket("/ws/job/{job_id}")
async def job_websocket_endpoint(websocket: WebSocket, job_id: str):
    """
    WebSocket endpoint for job-specific updates.

    Automatically subscribes to the job channel on connection.
    Used for tradeoff sweep progress and per-epoch training metrics.
    """
    await ws_manager.connect(websocket, f"job-{job_id}")
    await ws_manager.subscribe(websocket, f"job:{job_id}")

    try:
        while True:
            # Keep connection alive, handle ping/pong
            message_text = await websocket.receive_text()
            response = await ws_manager.handle_message(websocket, message_text)
            if response:
                await ws_manager.send_to_connection(websocket, response)

    except WebSocketDisconnect:
        await ws_manager.disconnect(websocket)
    except Exception as e:
        logger.error("Job WebSocket error: %s", e)
        await ws_manager.disconnect(websocket)


@app.get("/api/ws/stats")
async def get_websocket_stats(channel: Optional[str] = None):
    """Get WebSocket connection statistics, optionally for one channel."""
    stats = {
        "total_connections": ws_manager.get_connection_count(),
    }
    if channel:
        stats["channel"] = channel
        stats["subscribers"] = ws_manager.get_channel_subscribers(channel)
    return stats


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Simulix backend server")
    parser.add_argument(
        "--port",
        type=int,
        default=settings.port,
        help="Port to run the server on (default: 8000 or SIMULIX_PORT env var)",
    )
    parser.add_argument(
        "--host",
        type=str,
        default=settings.host,
        help="Host to bind to (default: 127.0.0.1 or SIMULIX_HOST env var)",
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
