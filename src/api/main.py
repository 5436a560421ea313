"""
FastAPI application entry-point.
"""
from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.routers import ask, collections
from src.compiler.cache import CacheSweeper, get_recommendation_cache
from src.core.errors import CopilotError
from src.core.logging import get_logger
from src.db.connection import close_client

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    sweeper = CacheSweeper(get_recommendation_cache())
    sweeper.start()
    try:
        yield
    finally:
        sweeper.stop()
        close_client()


app = FastAPI(
    title="Document Query Copilot",
    version="0.1.0",
    description="Natural-language questions compiled to MongoDB aggregation pipelines and charts",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CopilotError)
async def copilot_error_handler(request: Request, exc: CopilotError) -> JSONResponse:
    logger.warning("%s %s failed: [%s] %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


app.include_router(ask.router, prefix="/ask", tags=["Copilot"])
app.include_router(collections.router, prefix="/collections", tags=["Collections"])


@app.get("/health")
def health():
    return {"status": "ok"}
