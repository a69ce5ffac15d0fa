# FILE: helm/api/pipeline_router.py
"""
Pipeline endpoints. Phase updates are streamed as Server-Sent Events.

Each SSE frame is one PhaseUpdate serialised with camelCase keys:

    data: {"jobId": "...", "phase": "token", "status": "processing", "sequence": 42, ...}

The stream ends after the job's terminal update (`complete` or `cancelled`).
If the client disconnects first, the job is cancelled.
"""

import asyncio
import functools
import json
import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from helm.jobs.admission import get_admission_controller
from helm.llm.catalog import get_catalog_holder
from helm.llm.config_editor import edit_config_with_natural_language
from helm.llm.errors import HelmError
from helm.llm.interfaces import InMemoryRouterConfigStore
from helm.llm.orchestrator import JobRequest, PipelineOrchestrator
from helm.llm.router import get_default_rules
from helm.llm.schemas import ConversationMessage, PhaseUpdate, RouterConfig
from helm.providers.discovery import get_discovery_service
from helm.providers.registry import ProviderRegistry, get_provider_registry

router = APIRouter(prefix="/pipeline", tags=["pipeline"])
logger = logging.getLogger(__name__)

SSE_HEADERS = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}


# =============================================================================
# REQUEST MODELS
# =============================================================================

class PipelineRequest(BaseModel):
    message: str
    org_id: str = "default"
    user_id: Optional[str] = None
    job_id: Optional[str] = None
    history: List[ConversationMessage] = Field(default_factory=list)
    # Per-request provider keys ({"openai": "...", "anthropic": "...", "gemini": "..."})
    api_keys: Optional[Dict[str, str]] = None
    system_prompt: Optional[str] = None


class ConfigEditRequest(BaseModel):
    instruction: str
    org_id: str = "default"
    user_id: Optional[str] = None
    api_keys: Optional[Dict[str, str]] = None


# =============================================================================
# SHARED STATE
# =============================================================================

_orchestrator: Optional[PipelineOrchestrator] = None
_router_store: Optional[InMemoryRouterConfigStore] = None


def get_router_store() -> InMemoryRouterConfigStore:
    global _router_store
    if _router_store is None:
        _router_store = InMemoryRouterConfigStore()
    return _router_store


def get_orchestrator() -> PipelineOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = PipelineOrchestrator(
            get_provider_registry(),
            catalog_holder=get_catalog_holder(),
            admission=get_admission_controller(),
            router_store=get_router_store(),
        )
    return _orchestrator


def _request_registry(api_keys: Optional[Dict[str, str]]) -> Optional[ProviderRegistry]:
    if not api_keys or not any(api_keys.values()):
        return None
    return ProviderRegistry.from_api_keys(api_keys)


def _sse(update: PhaseUpdate) -> str:
    return "data: " + json.dumps(update.model_dump(mode="json", by_alias=True)) + "\n\n"


def _collect_job_result(job_id: str, task: "asyncio.Task") -> None:
    # Done callback; retrieves the outcome so a late failure reaches the log
    if task.cancelled():
        logger.info(f"[orchestrator] Job task {job_id} cancelled")
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"[orchestrator] Job task {job_id} failed: {exc!r}")


async def generate_phase_stream(
    orchestrator: PipelineOrchestrator,
    job: JobRequest,
    registry: Optional[ProviderRegistry] = None,
):
    # Subscribe before the job starts so no update is missed
    subscription = orchestrator.channel.subscribe(job_id=job.job_id)
    task = asyncio.create_task(orchestrator.run_job(job, registry=registry))
    task.add_done_callback(functools.partial(_collect_job_result, job.job_id))
    try:
        async for update in subscription:
            yield _sse(update)
        await task
    finally:
        subscription.close()
        if not task.done():
            logger.info(f"[orchestrator] Client left job {job.job_id}; cancelling")
            if job.job_id in orchestrator.active_jobs():
                orchestrator.cancel(job.job_id)
            else:
                task.cancel()


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post("/stream")
async def stream_pipeline(req: PipelineRequest):
    if not req.message.strip():
        raise HTTPException(status_code=400, detail="Message is empty")

    job = JobRequest(
        message=req.message,
        org_id=req.org_id,
        user_id=req.user_id,
        history=list(req.history),
        system_prompt=req.system_prompt,
    )
    if req.job_id:
        job.job_id = req.job_id

    return StreamingResponse(
        generate_phase_stream(get_orchestrator(), job, _request_registry(req.api_keys)),
        media_type="text/event-stream",
        headers={**SSE_HEADERS, "X-Job-Id": job.job_id},
    )


@router.post("/cancel/{job_id}")
async def cancel_job(job_id: str):
    update = get_orchestrator().cancel(job_id)
    return {"ok": True, "jobId": job_id, "sequence": update.sequence}


@router.get("/models")
async def list_models():
    snapshot = get_catalog_holder().current()
    return {
        "version": snapshot.version,
        "createdAt": snapshot.created_at.isoformat(),
        "models": [m.model_dump(mode="json", by_alias=True) for m in snapshot],
    }


@router.post("/discovery/run")
async def run_discovery():
    report = await get_discovery_service().run_discovery()
    return report.to_dict()


@router.get("/router-config")
async def get_router_config(org_id: str = "default", user_id: Optional[str] = None):
    config = await get_router_store().load(org_id, user_id) or get_default_rules()
    return config.model_dump(mode="json", by_alias=True)


@router.put("/router-config")
async def save_router_config(config: RouterConfig, org_id: str = "default", user_id: Optional[str] = None):
    get_router_store().save(org_id, config, user_id)
    return {"ok": True, "version": config.version}


@router.post("/router-config/edit")
async def edit_router_config(req: ConfigEditRequest):
    """Propose a config change from an instruction. The result is not saved."""
    current = await get_router_store().load(req.org_id, req.user_id) or get_default_rules()
    registry = _request_registry(req.api_keys) or get_provider_registry()
    try:
        result = await edit_config_with_natural_language(
            req.instruction, current, registry, get_catalog_holder().current()
        )
    except HelmError as exc:
        raise HTTPException(status_code=400, detail=exc.message)
    return result.to_dict()


__all__ = [
    "router",
    "PipelineRequest",
    "ConfigEditRequest",
    "generate_phase_stream",
    "get_orchestrator",
    "get_router_store",
]
