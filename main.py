"""Main FastAPI application."""

import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from logs.logging_config import get_llm_logger, setup_llm_logging
from translation import router as translation_router
from translation.llm_client import build_llm_client
from translation.profiles import get_profile_registry
from translation.translator import Translator

logger = get_llm_logger("app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    setup_llm_logging()

    # Startup: profiles are validated here, a bad configuration stops the process
    profiles = get_profile_registry()
    client = build_llm_client()
    app.state.translator = Translator(client, profiles)
    logger.info(f"[APP] Started | backend={client.config.backend} | profiles={','.join(profiles.names())}")

    yield

    # Shutdown: release pooled connections
    await client.close()
    logger.info("[APP] Stopped")


app = FastAPI(
    title="LLM Translation Service",
    description="Text translation backed by a remote LLM, synchronous and streamed",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(translation_router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
    )
