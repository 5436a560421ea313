"""
LLM client abstraction -- provider-agnostic wrapper.

Supported providers:
  mock      -- echo back the prompt (for tests / offline dev)
  openai    -- OpenAI ChatCompletion (gpt-4o-mini default)
  anthropic -- Anthropic Messages (claude-3-haiku default)
  gemini    -- Google Generative AI (gemini-1.5-flash default)

Every call is single-shot: SDK retries are disabled and a timeout surfaces
as ``LLMTimeoutError``.  Configuration is read from Settings (env / .env).
"""
from __future__ import annotations

from typing import Any

from src.core.config import get_settings
from src.core.errors import LLMProviderError, LLMTimeoutError
from src.core.logging import get_logger

logger = get_logger(__name__)


_OPENAI_DEFAULT_MODEL = "gpt-4o-mini"
_ANTHROPIC_DEFAULT_MODEL = "claude-3-haiku-20240307"
_GEMINI_DEFAULT_MODEL = "gemini-1.5-flash"

_SYSTEM_PROMPT = "You are a document-database query and data analysis assistant."
_MAX_TOKENS = 2048



def _call_mock(prompt: str, timeout: float) -> str:
    logger.info("LLM mock mode -- returning echo")
    return f"[MOCK] {prompt[:200]}"



def _call_openai(prompt: str, timeout: float) -> str:
    """Call OpenAI ChatCompletion API."""
    settings = get_settings()
    api_key = settings.openai_api_key
    if not api_key:
        raise LLMProviderError(
            "openai_api_key is not set.  "
            "Set OPENAI_API_KEY in your .env file or environment."
        )

    try:
        import openai  # type: ignore[import-untyped]
    except ImportError as exc:
        raise LLMProviderError(
            "The 'openai' package is not installed.  "
            "Run: pip install openai"
        ) from exc

    client = openai.OpenAI(api_key=api_key, timeout=timeout, max_retries=0)
    try:
        response = client.chat.completions.create(
            model=_OPENAI_DEFAULT_MODEL,
            messages=[
                {"role": "system", "content": _SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            temperature=0.0,
            max_tokens=_MAX_TOKENS,
        )
    except openai.APITimeoutError as exc:
        raise LLMTimeoutError(f"OpenAI call timed out after {timeout}s") from exc
    except openai.OpenAIError as exc:
        raise LLMProviderError(f"OpenAI call failed: {exc}") from exc

    text = response.choices[0].message.content or ""
    logger.info("OpenAI response (%d chars)", len(text))
    return text



def _call_anthropic(prompt: str, timeout: float) -> str:
    """Call Anthropic Messages API."""
    settings = get_settings()
    api_key = settings.anthropic_api_key
    if not api_key:
        raise LLMProviderError(
            "anthropic_api_key is not set.  "
            "Set ANTHROPIC_API_KEY in your .env file or environment."
        )

    try:
        import anthropic  # type: ignore[import-untyped]
    except ImportError as exc:
        raise LLMProviderError(
            "The 'anthropic' package is not installed.  "
            "Run: pip install anthropic"
        ) from exc

    client = anthropic.Anthropic(api_key=api_key, timeout=timeout, max_retries=0)
    try:
        response = client.messages.create(
            model=_ANTHROPIC_DEFAULT_MODEL,
            max_tokens=_MAX_TOKENS,
            system=_SYSTEM_PROMPT,
            messages=[{"role": "user", "content": prompt}],
        )
    except anthropic.APITimeoutError as exc:
        raise LLMTimeoutError(f"Anthropic call timed out after {timeout}s") from exc
    except anthropic.AnthropicError as exc:
        raise LLMProviderError(f"Anthropic call failed: {exc}") from exc

    text = response.content[0].text if response.content else ""
    logger.info("Anthropic response (%d chars)", len(text))
    return text



def _gemini_text(response: Any) -> str:
    """``response.text`` raises ValueError when the candidate was blocked or has no parts."""
    try:
        return response.text or ""
    except ValueError as exc:
        feedback = getattr(response, "prompt_feedback", None)
        raise LLMProviderError(
            f"Gemini returned no text: {exc}",
            {"prompt_feedback": str(feedback) if feedback is not None else None},
        ) from exc


def _call_gemini(prompt: str, timeout: float) -> str:
    """Call Google Generative AI."""
    settings = get_settings()
    api_key = settings.gemini_api_key
    if not api_key:
        raise LLMProviderError(
            "gemini_api_key is not set.  "
            "Set GEMINI_API_KEY in your .env file or environment."
        )

    try:
        import google.generativeai as genai  # type: ignore[import-untyped]
        from google.api_core import exceptions as google_exceptions  # type: ignore[import-untyped]
    except ImportError as exc:
        raise LLMProviderError(
            "The 'google-generativeai' package is not installed.  "
            "Run: pip install google-generativeai"
        ) from exc

    genai.configure(api_key=api_key)
    model = genai.GenerativeModel(_GEMINI_DEFAULT_MODEL)
    try:
        response = model.generate_content(prompt, request_options={"timeout": timeout})
    except google_exceptions.DeadlineExceeded as exc:
        raise LLMTimeoutError(f"Gemini call timed out after {timeout}s") from exc
    except google_exceptions.GoogleAPIError as exc:
        raise LLMProviderError(f"Gemini call failed: {exc}") from exc

    text = _gemini_text(response)
    logger.info("Gemini response (%d chars)", len(text))
    return text



_PROVIDERS: dict[str, Any] = {
    "mock": _call_mock,
    "openai": _call_openai,
    "anthropic": _call_anthropic,
    "gemini": _call_gemini,
}


def call_llm(prompt: str, provider: str | None = None, timeout: float | None = None) -> str:
    """Send *prompt* to the configured (or overridden) LLM provider.

    Parameters
    ----------
    prompt : str
        The full prompt text.
    provider : str, optional
        Override the provider from settings.  One of: mock, openai, anthropic, gemini.
    timeout : float, optional
        Seconds before the call is abandoned; defaults to ``llm_timeout_seconds``.
    """
    settings = get_settings()
    if provider is None:
        provider = settings.llm_provider.lower()
    if timeout is None:
        timeout = settings.llm_timeout_seconds

    fn = _PROVIDERS.get(provider)
    if fn is None:
        raise LLMProviderError(
            f"LLM provider '{provider}' is not supported.  "
            f"Choose from: {', '.join(_PROVIDERS)}"
        )

    logger.info("Calling LLM provider=%s  prompt_len=%d  timeout=%.1fs", provider, len(prompt), timeout)
    return fn(prompt, timeout)
