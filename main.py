# FILE: main.py
"""
Helm Backend - FastAPI Application
Version: 0.4.0

Features:
- Message analysis pipeline streamed over SSE (/pipeline/stream)
- Security pre-check + LLM risk scoring with a per-org halt threshold
- Rule-based and heuristic model routing across OpenAI, Anthropic and Gemini
- Provider failover and validation-driven upgrades
- Daily model discovery refreshing the model catalog
"""
import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

# Load .env FIRST before any other imports that might need env vars
load_dotenv()

from helm import __version__
from helm.api.pipeline_router import router as pipeline_router
from helm.llm.catalog import get_catalog_holder
from helm.providers.discovery import get_discovery_service, start_discovery_scheduler
from helm.providers.registry import PROVIDERS, get_provider_registry

logging.basicConfig(
    level=os.getenv("HELM_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("helm")

app = FastAPI(
    title="Helm",
    version=__version__,
    description="LLM request orchestration: analysis, security gating, routing and failover",
)

# ====== CORS ======

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("HELM_CORS_ORIGINS", "http://localhost:5173").split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ====== LIFECYCLE ======

@app.on_event("startup")
async def on_startup():
    registry = get_provider_registry()
    for provider, cfg in PROVIDERS.items():
        if registry.is_provider_available(provider):
            logger.info(f"[startup] {cfg.env_key_name}: [OK] set")
        else:
            logger.info(f"[startup] {cfg.env_key_name}: [X] NOT SET")

    snapshot = get_catalog_holder().current()
    logger.info(f"[startup] Model catalog v{snapshot.version}: {len(snapshot)} models")

    if registry.available_providers():
        start_discovery_scheduler()
    else:
        logger.warning("[startup] No provider keys configured; model discovery disabled")


@app.on_event("shutdown")
async def on_shutdown():
    await get_discovery_service().stop_scheduler()


# ====== ROUTERS ======

app.include_router(pipeline_router)


@app.get("/")
def root():
    return {"name": "Helm", "version": __version__}


@app.get("/ping")
def ping():
    return {"status": "ok"}


@app.get("/providers")
def providers():
    registry = get_provider_registry()
    return {
        p.value: {"name": cfg.display_name, "available": registry.is_provider_available(p), "statusUrl": cfg.status_url}
        for p, cfg in PROVIDERS.items()
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host=os.getenv("HELM_HOST", "127.0.0.1"), port=int(os.getenv("HELM_PORT", "8000")))
