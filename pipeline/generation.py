"""AI completion boundary — runs the ADK agents and maps failures to error codes.

Every call is bounded by LLM_TIMEOUT_SECONDS (default 60). Nothing here raises
for expected failures; callers get a GenerationResult with an error_code.
"""
import asyncio
import json
import logging
import os
import re
import time
from typing import Optional

import model_config
from schemas.results import ErrorCode, GenerationResult
from teams.personality import PERSONALITY_OUTPUT_KEY, build_personality_agent
from teams.response_drafting import DRAFT_OUTPUT_KEY, build_drafting_agent
from teams.runner import run_agent

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.5

_RATE_LIMIT_MARKERS = ("429", "quota", "rate limit", "ratelimit", "resource_exhausted")
_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def _timeout() -> float:
    return float(os.environ.get("LLM_TIMEOUT_SECONDS", "60"))


def clamp_confidence(value) -> float:
    """Coerce a model-reported confidence into [0, 1]; missing means 0.5."""
    if value is None or isinstance(value, bool):
        return DEFAULT_CONFIDENCE
    try:
        number = float(value)
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE
    if number != number:  # NaN
        return DEFAULT_CONFIDENCE
    return min(1.0, max(0.0, number))


def parse_draft(raw) -> Optional[dict]:
    """Parse the drafting agent's JSON answer.

    Accepts a dict (already parsed state) or text, with or without code fences.
    Returns None when no usable response text is present.
    """
    data = raw
    if isinstance(raw, str):
        text = _FENCE.sub("", raw.strip())
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            match = re.search(r"\{.*\}", text, re.DOTALL)
            if not match:
                return None
            try:
                data = json.loads(match.group(0))
            except json.JSONDecodeError:
                return None
    if not isinstance(data, dict):
        return None
    response = data.get("response")
    if not isinstance(response, str) or not response.strip():
        return None
    return {
        "response": response.strip(),
        "confidence": clamp_confidence(data.get("confidence")),
        "reasoning": str(data.get("reasoning") or ""),
    }


def classify_error(exc: BaseException) -> ErrorCode:
    """Map an exception raised by the model stack to an error code."""
    if isinstance(exc, asyncio.TimeoutError):
        return ErrorCode.TIMEOUT
    if type(exc).__name__ in ("RateLimitError", "ResourceExhausted"):
        return ErrorCode.RATE_LIMIT
    text = str(exc).lower()
    if any(marker in text for marker in _RATE_LIMIT_MARKERS):
        return ErrorCode.RATE_LIMIT
    if type(exc).__name__ == "AuthenticationError" or "api key" in text:
        return ErrorCode.MISSING_API_KEY
    return ErrorCode.API_ERROR


_ERROR_MESSAGES = {
    ErrorCode.MISSING_API_KEY: "No AI provider is configured. Set ANTHROPIC_API_KEY or GOOGLE_CLOUD_PROJECT.",
    ErrorCode.RATE_LIMIT: "The AI provider is rate limiting requests. Wait a minute and retry.",
    ErrorCode.TIMEOUT: "The AI provider did not answer in time. Retry manually.",
    ErrorCode.API_ERROR: "The AI provider returned an error.",
}


def _failed(code: ErrorCode, detail: Optional[str], started: float) -> GenerationResult:
    message = _ERROR_MESSAGES[code]
    if detail:
        message = f"{message} ({detail})"
    return GenerationResult(
        success=False,
        error_code=code,
        error=message,
        model_used=model_config.active_model_name(),
        duration_ms=int((time.monotonic() - started) * 1000),
    )


async def _run(team, message: str, output_key: str, started: float):
    """Run ``team`` under the timeout; returns (output, failure)."""
    try:
        state = await asyncio.wait_for(run_agent(team, message), timeout=_timeout())
    except Exception as exc:
        code = classify_error(exc)
        logger.warning("AI generation failed (%s): %s", code.value, exc, exc_info=True)
        return None, _failed(code, str(exc) or type(exc).__name__, started)
    output = state.get(output_key) or state.get("final_response")
    return output, None


async def generate_reply(instruction: str, message: str) -> GenerationResult:
    """Draft a reply; ``instruction`` is the composed prompt, ``message`` the user turn."""
    started = time.monotonic()
    if model_config.active_provider() is None:
        return _failed(ErrorCode.MISSING_API_KEY, None, started)

    team = build_drafting_agent(instruction)
    output, failure = await _run(team, message, DRAFT_OUTPUT_KEY, started)
    if failure is not None:
        return failure

    parsed = parse_draft(output)
    if parsed is None:
        logger.warning("Unparseable drafting output: %.200r", output)
        return _failed(ErrorCode.API_ERROR, "response was not valid JSON", started)

    return GenerationResult(
        success=True,
        response=parsed["response"],
        confidence=parsed["confidence"],
        reasoning=parsed["reasoning"],
        model_used=model_config.active_model_name(),
        duration_ms=int((time.monotonic() - started) * 1000),
    )


async def generate_system_prompt(material: str) -> GenerationResult:
    """Synthesize a personality system prompt from knowledge ``material``."""
    started = time.monotonic()
    if model_config.active_provider() is None:
        return _failed(ErrorCode.MISSING_API_KEY, None, started)

    team = build_personality_agent()
    output, failure = await _run(team, material, PERSONALITY_OUTPUT_KEY, started)
    if failure is not None:
        return failure

    text = _FENCE.sub("", str(output or "").strip()).strip()
    if not text:
        return _failed(ErrorCode.API_ERROR, "empty response", started)
    return GenerationResult(
        success=True,
        response=text,
        confidence=1.0,
        model_used=model_config.active_model_name(),
        duration_ms=int((time.monotonic() - started) * 1000),
    )
