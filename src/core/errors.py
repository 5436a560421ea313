"""
Typed error taxonomy for the query copilot.

Every failure that aborts a request is a ``CopilotError`` subclass carrying a
stable ``code``, a human-readable ``message``, optional ``details`` and the
HTTP status the API layer should answer with.  Only
``SummarizerDegradedError`` is recovered locally (templated answer).
"""
from __future__ import annotations

from typing import Any


class CopilotError(Exception):
    """Base class for all typed copilot failures."""

    code = "copilot_error"
    status_code = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


# ── Plan resolution ─────────────────────────────────────


class PlanParseError(CopilotError):
    """The model output held no parseable JSON object."""

    code = "plan_parse_error"
    status_code = 502


class PlanShapeError(CopilotError):
    """The parsed plan lacks a pipeline / primary collection, or names an unknown one."""

    code = "plan_shape_error"
    status_code = 502


class CollectionNotFoundError(CopilotError):
    code = "collection_not_found"
    status_code = 404


# ── Sanitize / execute ──────────────────────────────────


class SanitizeError(CopilotError):
    """A pipeline stage is not a valid nested key/value structure."""

    code = "sanitize_error"
    status_code = 422


class PipelineExecutionError(CopilotError):
    code = "pipeline_execution_error"
    status_code = 502

    def __init__(self, message: str, pipeline: str, collection: str, details: dict[str, Any] | None = None):
        merged = {"pipeline": pipeline, "collection": collection}
        merged.update(details or {})
        super().__init__(message, merged)
        self.pipeline = pipeline
        self.collection = collection


class QueryTimeoutError(CopilotError):
    code = "query_timeout"
    status_code = 504


class DocumentStoreError(CopilotError):
    """The document store could not be reached or refused a metadata read."""

    code = "document_store_error"
    status_code = 503


# ── LLM ─────────────────────────────────────────────────


class LLMProviderError(CopilotError):
    """Provider unknown, not configured, or failing."""

    code = "llm_provider_error"
    status_code = 502


class LLMTimeoutError(CopilotError):
    code = "llm_timeout"
    status_code = 504


class SummarizerDegradedError(CopilotError):
    """Non-fatal: the narrative summary falls back to a template."""

    code = "summarizer_degraded"
    status_code = 200


# ── Recommendation cache ────────────────────────────────


class RecommendationNotFoundError(CopilotError):
    code = "recommendation_not_found"
    status_code = 404
