"""Coach assessment generated by the Gemini API from recent attempts."""
import logging
from typing import Any, Dict, Optional, Sequence
import httpx
from app.config import settings
from app.constants import (
    ASSESSMENT_ATTEMPT_LIMIT,
    ASSESSMENT_MIN_ATTEMPTS,
    ASSESSMENT_FALLBACK_MESSAGE,
    NOT_ENOUGH_DATA_MESSAGE
)

logger = logging.getLogger(__name__)

PROMPT_TEMPLATE = (
    "You are a friendly and encouraging speed math coach. Analyze the practice "
    "results below. Reply in 3-4 warm sentences: open with something positive, "
    "name one strength and one area to focus on, and finish with a short "
    "motivational line. Here is the data:\n\n{summary}"
)


class AssessmentError(Exception):
    """Raised when the assessment service cannot produce text."""


def summarize_attempt(attempt) -> str:
    game_mode = getattr(attempt.game_mode, "value", attempt.game_mode)
    return (
        f"Game: {game_mode}, Score: {attempt.score}/{attempt.total_questions}, "
        f"Time: {attempt.time_taken:.1f}s, Mistakes: {len(attempt.wrong_answers)}"
    )


def build_assessment_prompt(attempts: Sequence) -> str:
    """
    Build the coach prompt from the newest attempts.

    Args:
        attempts: Attempts ordered newest first; only the first 30 are used

    Returns:
        Prompt text with one summary line per attempt
    """
    summary = "\n".join(summarize_attempt(a) for a in attempts[:ASSESSMENT_ATTEMPT_LIMIT])
    return PROMPT_TEMPLATE.format(summary=summary)


class AssessmentClient:
    """Minimal async client for the Gemini ``generateContent`` endpoint."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.GEMINI_API_KEY
        if not self.api_key:
            raise AssessmentError("GEMINI_API_KEY is not configured")
        self.base_url = base_url or settings.gemini_url
        self._client = httpx.AsyncClient(
            timeout=timeout or settings.ASSESSMENT_TIMEOUT_SECONDS,
            transport=transport
        )

    async def generate(self, prompt: str) -> str:
        """Send a single-turn prompt and return the first candidate's text."""
        payload: Dict[str, Any] = {"contents": [{"parts": [{"text": prompt}]}]}
        try:
            r = await self._client.post(self.base_url, params={"key": self.api_key}, json=payload)
            r.raise_for_status()
        except httpx.HTTPError as e:
            raise AssessmentError(f"Gemini request failed: {e}") from e

        try:
            data = r.json()
            return data["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise AssessmentError(f"Unexpected Gemini response: {r.text[:200]}") from e

    async def aclose(self) -> None:
        await self._client.aclose()


async def get_assessment_client():
    """
    FastAPI dependency yielding an AssessmentClient, or None when the API
    key is not configured.
    """
    try:
        client = AssessmentClient()
    except AssessmentError as e:
        logger.warning(f"Assessment client unavailable: {e}")
        yield None
        return

    try:
        yield client
    finally:
        await client.aclose()


async def generate_assessment(attempts: Sequence, client) -> str:
    """
    Produce the coach assessment text.

    Returns a fixed message when fewer than 5 attempts exist, and a fixed
    fallback when the client is missing or the call fails.

    Args:
        attempts: Attempts ordered newest first
        client: Object with ``async generate(prompt) -> str``, or None
    """
    if len(attempts) < ASSESSMENT_MIN_ATTEMPTS:
        return NOT_ENOUGH_DATA_MESSAGE

    if client is None:
        return ASSESSMENT_FALLBACK_MESSAGE

    prompt = build_assessment_prompt(attempts)
    try:
        return await client.generate(prompt)
    except AssessmentError as e:
        logger.warning(f"Assessment generation failed: {e}")
        return ASSESSMENT_FALLBACK_MESSAGE
