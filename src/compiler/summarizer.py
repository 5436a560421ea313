"""
Narrative summarizer -- a short plain-language answer for the result set.

Works in both ``mock`` mode (template-based, no API key needed) and LLM
mode (calls the configured provider with the question, a small sample of
rows, the total count and the interpretation).

The summary is the only step allowed to fail softly: any provider failure
becomes a ``SummarizerDegradedError`` that is logged and answered with a
templated sentence instead of aborting the request.
"""
from __future__ import annotations

from typing import Any

from src.core.config import get_settings
from src.core.errors import SummarizerDegradedError
from src.core.logging import get_logger
from src.core.utils import to_json

logger = get_logger(__name__)


def fallback_summary(count: int, interpretation: str) -> str:
    return f"Found {count} result(s) for your query: {interpretation}"


# ── Template-based summary (mock / offline) ─────────────


def summarize_mock(query: str, results: list[dict[str, Any]], interpretation: str) -> str:
    """Deterministic summary built from the first row; no LLM call."""
    if not results:
        return f"No documents matched your query: {interpretation}"
    summary = fallback_summary(len(results), interpretation)
    first = {k: v for k, v in results[0].items() if k != "_id"}
    if first:
        summary += f". Top result: {to_json(first)}"
    return summary


# ── LLM summary ─────────────────────────────────────────

_PROMPT = """\
A user asked: "{query}"

The query was understood as: {interpretation}
It returned {count} result(s). Here are the first {sample_size}:
{sample}

Answer the user's question in 2-3 plain sentences based on these results.
Mention concrete numbers where they help.  Do not describe the query itself."""


def _build_prompt(query: str, results: list[dict[str, Any]], interpretation: str, sample_size: int) -> str:
    sample = results[:sample_size]
    return _PROMPT.format(
        query=query,
        interpretation=interpretation,
        count=len(results),
        sample_size=len(sample),
        sample=to_json(sample),
    )


def summarize_llm(
    query: str,
    results: list[dict[str, Any]],
    interpretation: str,
    provider: str | None = None,
    timeout: float | None = None,
) -> str:
    """Ask the LLM for a summary; raises SummarizerDegradedError on any failure."""
    from src.compiler.llm_client import call_llm

    prompt = _build_prompt(query, results, interpretation, get_settings().summary_sample_size)
    try:
        response = call_llm(prompt, provider=provider, timeout=timeout)
    except Exception as exc:
        raise SummarizerDegradedError(f"Summary generation failed: {exc}") from exc
    if not response or not response.strip():
        raise SummarizerDegradedError("Summary generation returned an empty response")
    return response.strip()


def summarize(
    query: str,
    results: list[dict[str, Any]],
    interpretation: str,
    mode: str | None = None,
    timeout: float | None = None,
) -> str:
    """Public API -- dispatches to mock or LLM-based summary.

    LLM failures never propagate: they are logged and replaced by
    ``"Found <count> result(s) for your query: <interpretation>"``.
    """
    if mode is None:
        mode = get_settings().llm_provider.lower()
    if mode == "mock":
        return summarize_mock(query, results, interpretation)
    try:
        return summarize_llm(query, results, interpretation, provider=mode, timeout=timeout)
    except SummarizerDegradedError as exc:
        logger.warning("%s -- falling back to template", exc.message)
        return fallback_summary(len(results), interpretation)
