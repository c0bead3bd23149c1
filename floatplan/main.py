"""
Float Planner API - Main FastAPI Application

River mile referencing, gauge selection and float conditions.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from floatplan import __version__
from floatplan.api.routes import router as api_router
from floatplan.api.schemas import HealthResponse
from floatplan.core.config import LOG_FORMAT, settings

logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)

# Create FastAPI app
app = FastAPI(
    title="Float Planner API",
    description="River miles, gauge selection and float conditions",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    debug=settings.debug,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def root():
    """Root endpoint - API info."""
    return {
        "name": "Float Planner API",
        "version": __version__,
        "status": "ok",
        "docs": "/docs",
    }


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint for monitoring."""
    return {
        "status": "healthy",
        "version": __version__,
    }


app.include_router(api_router, prefix="/api/v1")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("floatplan.main:app", host=settings.api_host, port=settings.api_port)
