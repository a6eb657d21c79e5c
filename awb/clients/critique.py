"""Critique client — asks the quality-check endpoint to grade a widget.

Fail-open: a broken QA service never blocks delivery of a widget.

- transport failure, non-OK status or undecodable body -> passed, score 0
  (the "check unavailable" sentinel) with one informational system issue
- decoded body without a boolean 'passed' and numeric 'score' -> passed, score 7
- well-formed body -> passed through
"""

import logging

import httpx

from awb.config import get_config
from awb.state import CritiqueResult
from awb.utils.parsing import retrying

logger = logging.getLogger(__name__)

DEFAULT_SCORE = 7


def unavailable_result() -> CritiqueResult:
    """Verdict used when the quality check could not run."""
    return {
        "passed": True,
        "score": 0,
        "issues": [
            {
                "category": "system",
                "severity": "minor",
                "description": "Quality check unavailable; the widget was not verified.",
                "fix": "",
            }
        ],
    }


def default_result() -> CritiqueResult:
    """Optimistic verdict for a response that lacks the required fields."""
    return {"passed": True, "score": DEFAULT_SCORE, "issues": []}


def normalize_critique(data) -> CritiqueResult:
    """Validate the critique body, degrading to the default pass on a bad shape."""
    if not isinstance(data, dict):
        return default_result()

    passed = data.get("passed")
    score = data.get("score")
    if not isinstance(passed, bool):
        return default_result()
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        return default_result()

    issues = data.get("issues")
    if not isinstance(issues, list):
        return {**data, "issues": []}
    return data


async def _post(client: httpx.AsyncClient, body: dict):
    path = get_config().get("critique_path", "/api/ai/critique-widget")

    async for attempt in retrying():
        with attempt:
            response = await client.post(path, json=body)
            response.raise_for_status()
            return response.json()


async def critique(client: httpx.AsyncClient, code: str, user_prompt: str) -> CritiqueResult:
    """Grade code against the user's prompt. Never raises for service failures."""
    try:
        data = await _post(client, {"code": code, "userPrompt": user_prompt})
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("Quality check unavailable, skipping: %r", exc)
        return unavailable_result()

    result = normalize_critique(data)
    logger.info(
        "Critique: passed=%s score=%s issues=%d",
        result["passed"], result["score"], len(result["issues"]),
    )
    return result
