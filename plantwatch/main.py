"""FastAPI application setup for PlantWatch Insight."""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from .api import router as api_router, shutdown_analytics_service


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Stop the cache sweeper when the server shuts down."""
    yield
    shutdown_analytics_service()


app = FastAPI(title="PlantWatch Insight", lifespan=lifespan)


@app.get("/health")
def health():
    return {"status": "ok"}


# API routes
app.include_router(api_router, prefix="/v1")
