"""
Copilot service -- orchestrates schemas -> plan -> sanitize -> execute -> reconcile -> summarize.

Full end-to-end pipeline, run strictly in sequence for one question.
Errors from plan resolution, sanitizing and execution propagate as typed
``CopilotError``s (never an empty-but-successful answer); only the
narrative summary degrades to a template.

The plan's visualization hints are stored in the recommendation cache so
that charts can be re-rendered later with ``render_recommendations``.
"""
from __future__ import annotations

from typing import Any, Iterable

from pymongo.database import Database

from src.compiler.cache import RecommendationEntry, get_recommendation_cache
from src.compiler.date_tracker import DateFieldSet
from src.compiler.plan import DraftPlan, QueryAnswer, SchemaSnapshot
from src.compiler.planner import resolve_plan
from src.compiler.reconciler import reconcile
from src.compiler.sanitizer import PipelineSanitizer, SanitizeDiagnostic
from src.compiler.summarizer import summarize
from src.core.config import get_settings
from src.core.logging import get_logger, log_event
from src.core.utils import timer
from src.db.executor import execute_pipeline
from src.db.schema import load_schemas

logger = get_logger(__name__)


class CompiledPlan:
    """A resolved and sanitized plan, ready to execute."""

    def __init__(
        self,
        draft: DraftPlan,
        pipeline: list[dict[str, Any]],
        schemas: dict[str, SchemaSnapshot],
        diagnostics: list[SanitizeDiagnostic],
        date_fields: list[str],
    ):
        self.draft = draft
        self.pipeline = pipeline
        self.schemas = schemas
        self.diagnostics = diagnostics
        self.date_fields = date_fields

    @property
    def primary_collection(self) -> str:
        return self.draft.primary_collection

    def to_dict(self) -> dict[str, Any]:
        return {
            "interpretation": self.draft.interpretation,
            "primary_collection": self.primary_collection,
            "targeted_collections": list(self.schemas),
            "draft_pipeline": self.draft.pipeline,
            "pipeline": self.pipeline,
            "date_fields": self.date_fields,
            "visualization_recommended": self.draft.visualization_recommended,
            "visualization_hint": (
                self.draft.visualization_hint.model_dump() if self.draft.visualization_hint else None
            ),
            "explanation": self.draft.explanation,
            "diagnostics": [d.to_dict() for d in self.diagnostics],
        }


def _database(db: Database | None) -> Database:
    if db is None:
        from src.db.connection import get_database
        return get_database()
    return db


def compile_query(
    query: str,
    target_collection_names: Iterable[str] | None = None,
    mode: str | None = None,
    db: Database | None = None,
    llm_timeout: float | None = None,
) -> CompiledPlan:
    """Resolve and sanitize *query* without executing it (dry run)."""
    db = _database(db)
    schemas = load_schemas(db, target_collection_names)
    draft = resolve_plan(query, schemas, mode=mode, timeout=llm_timeout)

    # Seeded from the primary collection only; discarded after this pass.
    date_fields = DateFieldSet.seed(schemas[draft.primary_collection])
    sanitizer = PipelineSanitizer()
    pipeline = sanitizer.sanitize(draft.pipeline, date_fields, draft.primary_collection)
    return CompiledPlan(draft, pipeline, schemas, list(sanitizer.diagnostics), list(date_fields))


def answer_query(
    query: str,
    target_collection_names: Iterable[str] | None = None,
    mode: str | None = None,
    db: Database | None = None,
    llm_timeout: float | None = None,
    query_timeout_ms: int | None = None,
) -> QueryAnswer:
    """End-to-end: question -> QueryAnswer.

    Parameters
    ----------
    query : str
        Natural-language question.
    target_collection_names : list[str], optional
        Restrict planning to these collections (missing ones are skipped).
    mode : str, optional
        "mock", "openai", "anthropic" or "gemini"; defaults to ``llm_provider``.
    db : Database, optional
        Database to run against; defaults to the shared client's database.
    llm_timeout : float, optional
        Seconds allowed for each model call (plan and summary); defaults to
        ``llm_timeout_seconds``.
    query_timeout_ms : int, optional
        Server-side limit for the aggregation; defaults to ``query_timeout_ms``.
    """
    if mode is None:
        mode = get_settings().llm_provider.lower()
    log_event(logger, "Copilot.answer_query", query=query, collections=target_collection_names, mode=mode)

    with timer() as t:
        db = _database(db)
        compiled = compile_query(query, target_collection_names, mode=mode, db=db, llm_timeout=llm_timeout)
        draft = compiled.draft

        results = execute_pipeline(
            compiled.pipeline, draft.primary_collection, timeout_ms=query_timeout_ms, db=db
        )

        chart = reconcile(
            draft.visualization_hint,
            results,
            interpretation=draft.interpretation,
            recommended=draft.visualization_recommended,
        )
        narrative = summarize(query, results, draft.interpretation, mode=mode, timeout=llm_timeout)

        recommendation_id = None
        if draft.visualization_hint is not None:
            recommendation_id = get_recommendation_cache().put(
                RecommendationEntry(
                    query=query,
                    primary_collection=draft.primary_collection,
                    pipeline=compiled.pipeline,
                    interpretation=draft.interpretation,
                    hints={draft.visualization_hint.id: draft.visualization_hint},
                )
            )

    diagnostics = [d.to_dict() for d in compiled.diagnostics]
    if chart is not None:
        diagnostics.extend({"kind": "chart_warning", "message": w} for w in chart.warnings)

    log_event(logger, "Copilot.answer_query done", rows=len(results),
              chart=chart.layout if chart else None, elapsed_ms=t["elapsed_ms"])

    return QueryAnswer(
        query=query,
        interpretation=draft.interpretation,
        primary_collection=draft.primary_collection,
        targeted_collections=list(compiled.schemas),
        pipeline=compiled.pipeline,
        results=results,
        chart_spec=chart,
        narrative_answer=narrative,
        can_visualize=chart is not None,
        explanation=draft.explanation,
        diagnostics=diagnostics,
        recommendation_id=recommendation_id,
        latency_ms=t["elapsed_ms"],
    )


def render_recommendations(
    recommendation_id: str,
    selected_ids: Iterable[str],
    db: Database | None = None,
    query_timeout_ms: int | None = None,
) -> dict[str, Any]:
    """Re-execute a cached pipeline and reconcile each selected hint.

    Unknown hint ids are logged and reported in ``diagnostics``; they do
    not abort the request.  An unknown or expired *recommendation_id*
    raises ``RecommendationNotFoundError``.
    """
    entry = get_recommendation_cache().get(recommendation_id)
    rows = execute_pipeline(
        entry.pipeline, entry.primary_collection, timeout_ms=query_timeout_ms, db=_database(db)
    )

    charts: list[dict[str, Any]] = []
    diagnostics: list[dict[str, Any]] = []
    for hint_id in selected_ids:
        hint = entry.hints.get(hint_id)
        if hint is None:
            logger.warning("Recommendation %s has no hint '%s' -- skipped", recommendation_id, hint_id)
            diagnostics.append({
                "kind": "unmatched_recommendation",
                "id": hint_id,
                "message": f"No visualization '{hint_id}' in recommendation {recommendation_id}",
            })
            continue
        chart = reconcile(hint, rows, interpretation=entry.interpretation)
        if chart is None:
            diagnostics.append({
                "kind": "no_results",
                "id": hint_id,
                "message": "The pipeline returned no rows; nothing to visualize",
            })
            continue
        charts.append({"id": hint_id, **chart.to_dict()})

    return {
        "recommendation_id": recommendation_id,
        "primary_collection": entry.primary_collection,
        "row_count": len(rows),
        "charts": charts,
        "diagnostics": diagnostics,
    }
