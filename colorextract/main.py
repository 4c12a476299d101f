"""
colorextract HTTP service.

Run with: uvicorn colorextract.main:app
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from colorextract import __version__
from colorextract.api.v1 import router as v1_router
from colorextract.schemas import HealthResponse
from colorextract.services.orchestrator import ExtractionOrchestrator
from colorextract.utils.logging import get_logger

log = get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Own one orchestrator (and its worker pool) per application."""
    orchestrator = ExtractionOrchestrator()
    app.state.orchestrator = orchestrator
    log.info("colorextract service started", {"version": __version__, "executor": orchestrator.worker.mode})
    try:
        yield
    finally:
        await orchestrator.aclose()
        log.info("colorextract service stopped")


app = FastAPI(
    title="colorextract",
    description="Parallel image palette extraction",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(v1_router)


@app.get("/healthz", response_model=HealthResponse)
def health_check():
    """Service health check."""
    return HealthResponse(ok=True, version=__version__, service="colorextract")
