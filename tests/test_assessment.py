"""Tests for the coach assessment service."""
import asyncio
import json
from types import SimpleNamespace
import httpx
import pytest
from app.constants import ASSESSMENT_FALLBACK_MESSAGE, NOT_ENOUGH_DATA_MESSAGE
from app.services.assessment import (
    AssessmentClient,
    AssessmentError,
    build_assessment_prompt,
    generate_assessment
)
from conftest import FakeAssessmentClient


def attempt(score=20, mistakes=0, time_taken=42.0):
    return SimpleNamespace(
        game_mode="addition",
        score=score,
        total_questions=25,
        time_taken=time_taken,
        wrong_answers=[object()] * mistakes
    )


def gemini_transport(handler):
    return httpx.MockTransport(handler)


class TestBuildPrompt:
    """Tests for prompt construction."""

    def test_one_line_per_attempt(self):
        prompt = build_assessment_prompt([attempt(score=20, mistakes=5), attempt(score=25)])

        assert "Game: addition, Score: 20/25, Time: 42.0s, Mistakes: 5" in prompt
        assert "Score: 25/25" in prompt

    def test_only_thirty_newest_attempts(self):
        attempts = [attempt(score=i % 26) for i in range(40)]

        prompt = build_assessment_prompt(attempts)

        assert prompt.count("Game: addition") == 30


class TestGenerateAssessment:
    """Tests for the assessment flow and its fallbacks."""

    def test_not_enough_attempts(self):
        client = FakeAssessmentClient()

        text = asyncio.run(generate_assessment([attempt()] * 4, client))

        assert text == NOT_ENOUGH_DATA_MESSAGE
        assert client.prompts == []

    def test_returns_client_text(self):
        client = FakeAssessmentClient(text="Nice pace!")

        text = asyncio.run(generate_assessment([attempt()] * 5, client))

        assert text == "Nice pace!"
        assert len(client.prompts) == 1

    def test_client_failure_falls_back(self):
        client = FakeAssessmentClient(error=AssessmentError("boom"))

        text = asyncio.run(generate_assessment([attempt()] * 5, client))

        assert text == ASSESSMENT_FALLBACK_MESSAGE

    def test_missing_client_falls_back(self):
        assert asyncio.run(generate_assessment([attempt()] * 5, None)) == ASSESSMENT_FALLBACK_MESSAGE


class TestAssessmentClient:
    """Tests for the Gemini HTTP client."""

    def test_requires_api_key(self):
        with pytest.raises(AssessmentError):
            AssessmentClient(api_key="")

    def test_posts_prompt_and_reads_first_candidate(self):
        seen = {}

        def handler(request):
            seen["key"] = request.url.params["key"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "candidates": [{"content": {"parts": [{"text": "Keep going!"}]}}]
            })

        async def run():
            client = AssessmentClient(
                api_key="test-key",
                base_url="https://example.test/generate",
                transport=gemini_transport(handler)
            )
            try:
                return await client.generate("hello")
            finally:
                await client.aclose()

        assert asyncio.run(run()) == "Keep going!"
        assert seen["key"] == "test-key"
        assert seen["body"] == {"contents": [{"parts": [{"text": "hello"}]}]}

    @pytest.mark.parametrize("response", [
        httpx.Response(500, json={"error": "unavailable"}),
        httpx.Response(200, json={"candidates": []}),
        httpx.Response(200, text="not json"),
    ])
    def test_bad_responses_raise_assessment_error(self, response):
        async def run():
            client = AssessmentClient(
                api_key="test-key",
                base_url="https://example.test/generate",
                transport=gemini_transport(lambda request: response)
            )
            try:
                await client.generate("hello")
            finally:
                await client.aclose()

        with pytest.raises(AssessmentError):
            asyncio.run(run())
