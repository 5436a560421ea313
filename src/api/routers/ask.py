"""POST /ask -- main copilot endpoint, plus dry-run planning, chart re-rendering and cache admin."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from src.compiler.cache import get_recommendation_cache
from src.compiler.service import answer_query, compile_query, render_recommendations
from src.core.errors import CopilotError
from src.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()



class AskRequest(BaseModel):
    query: str = Field(..., min_length=3, max_length=1000, description="Natural-language question")
    collection_names: list[str] | None = Field(
        None, description="Restrict planning to these collections (default: all)"
    )
    mode: str | None = Field(None, description="mock | openai | anthropic | gemini (default: configured provider)")


class ChartResponse(BaseModel):
    chart_type: str
    layout: str
    category_field: str | None = None
    value_field: str | None = None
    warnings: list[str] = []
    option: dict[str, Any]


class AskResponse(BaseModel):
    query: str
    interpretation: str
    primary_collection: str
    targeted_collections: list[str]
    pipeline: list[dict]
    results: list[dict]
    chart_spec: ChartResponse | None
    narrative_answer: str
    can_visualize: bool
    explanation: str
    diagnostics: list[dict]
    recommendation_id: str | None
    latency_ms: int


class PlanResponse(BaseModel):
    interpretation: str
    primary_collection: str
    targeted_collections: list[str]
    draft_pipeline: list[dict]
    pipeline: list[dict]
    date_fields: list[str]
    visualization_recommended: bool
    visualization_hint: dict | None
    explanation: str
    diagnostics: list[dict]


class VisualizeRequest(BaseModel):
    recommendation_id: str = Field(..., min_length=1)
    selected_ids: list[str] = Field(default_factory=lambda: ["primary"])


class VisualizeResponse(BaseModel):
    recommendation_id: str
    primary_collection: str
    row_count: int
    charts: list[dict]
    diagnostics: list[dict]


class CacheStatsResponse(BaseModel):
    size: int
    max_size: int
    ttl_seconds: float
    hits: int
    misses: int
    swept: int
    hit_rate: float



@router.post("", response_model=AskResponse)
def ask_endpoint(req: AskRequest):
    """Full pipeline: question -> plan -> sanitize -> execute -> chart -> summary."""
    try:
        answer = answer_query(req.query, target_collection_names=req.collection_names, mode=req.mode)
    except CopilotError:
        raise
    except Exception as exc:
        logger.exception("Copilot.answer_query failed")
        raise HTTPException(status_code=500, detail=str(exc))
    return AskResponse(**answer.to_dict())


@router.post("/plan", response_model=PlanResponse)
def plan_endpoint(req: AskRequest):
    """Dry-run: question -> plan -> sanitize (no execution)."""
    try:
        compiled = compile_query(req.query, target_collection_names=req.collection_names, mode=req.mode)
    except CopilotError:
        raise
    except Exception as exc:
        logger.exception("Copilot.compile_query failed")
        raise HTTPException(status_code=500, detail=str(exc))
    return PlanResponse(**compiled.to_dict())


@router.post("/visualize", response_model=VisualizeResponse)
def visualize_endpoint(req: VisualizeRequest):
    """Re-render the selected chart recommendations of an earlier answer."""
    try:
        rendered = render_recommendations(req.recommendation_id, req.selected_ids)
    except CopilotError:
        raise
    except Exception as exc:
        logger.exception("Copilot.render_recommendations failed")
        raise HTTPException(status_code=500, detail=str(exc))
    return VisualizeResponse(**rendered)


@router.get("/cache/stats", response_model=CacheStatsResponse)
def cache_stats_endpoint():
    """Return recommendation cache statistics."""
    return CacheStatsResponse(**get_recommendation_cache().stats())


@router.post("/cache/sweep")
def cache_sweep_endpoint():
    """Evict expired recommendations now."""
    removed = get_recommendation_cache().sweep()
    return {"swept": removed}
