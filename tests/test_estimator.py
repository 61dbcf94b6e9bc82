"""Tests for pokerroom.estimator fallbacks, parsing and snapping."""

import random
from unittest.mock import patch

import pytest
from conftest import FakeOracle

from pokerroom.estimator import (
    ERROR_RATIONALE,
    NO_CONTEXT_RATIONALE,
    OFFLINE_RATIONALE,
    MalformedPayloadError,
    build_prompt,
    estimate,
    parse_estimate_payload,
    snap_to_scale,
)
from pokerroom.models import Topic
from pokerroom.personas import PERSONAS

SARAH = PERSONAS[0]
TOPIC = Topic("Password reset", "Email a one-time link")


class TestSnapToScale:
    @pytest.mark.parametrize("value,expected", [
        (10, 8),
        (4, 3),
        (0, 1),
        (-5, 1),
        (100, 21),
        (17, 13),
        (5.4, 5),
        (13, 13),
    ])
    def test_snaps_to_nearest(self, value, expected):
        assert snap_to_scale(value) == expected


class TestParsePayload:
    """Tests for parse_estimate_payload."""

    def test_plain_json(self):
        assert parse_estimate_payload('{"points": 5, "reasoning": "Simple."}') == (5, "Simple.")

    def test_code_fenced_json(self):
        text = '```json\n{"points": 13, "reasoning": "Risky."}\n```'
        assert parse_estimate_payload(text) == (13, "Risky.")

    def test_numeric_string_points(self):
        points, _ = parse_estimate_payload('{"points": "8", "reasoning": "ok"}')
        assert points == 8.0

    @pytest.mark.parametrize("text", [
        "not json",
        "[1, 2]",
        '{"reasoning": "no points"}',
        '{"points": "many", "reasoning": "x"}',
        '{"points": true, "reasoning": "x"}',
        '{"points": 5}',
        '{"points": 5, "reasoning": 7}',
        '{"points": NaN, "reasoning": "x"}',
    ])
    def test_malformed(self, text):
        with pytest.raises(MalformedPayloadError):
            parse_estimate_payload(text)


class TestBuildPrompt:
    def test_includes_persona_and_topic(self):
        prompt = build_prompt(TOPIC, SARAH)

        assert SARAH.name in prompt
        assert SARAH.role in prompt
        assert "Password reset" in prompt
        assert "Email a one-time link" in prompt
        assert "[1, 2, 3, 5, 8, 13, 21]" in prompt


class TestEstimate:
    """Tests for estimate()."""

    @pytest.mark.asyncio
    async def test_blank_topic_never_calls_oracle(self):
        oracle = FakeOracle()

        result = await estimate(Topic(" ", ""), SARAH, oracle=oracle, rng=random.Random(0))

        assert oracle.prompts == []
        assert result.rationale == NO_CONTEXT_RATIONALE
        assert result.points in (1, 2, 3, 5, 8, 13, 21)

    @pytest.mark.asyncio
    async def test_unconfigured_oracle(self):
        oracle = FakeOracle(configured=False)

        result = await estimate(TOPIC, SARAH, oracle=oracle)

        assert (result.points, result.rationale) == (8, OFFLINE_RATIONALE)
        assert oracle.prompts == []

    @pytest.mark.asyncio
    async def test_snaps_oracle_value(self):
        oracle = FakeOracle('{"points": 4, "reasoning": "Small but fiddly."}')

        result = await estimate(TOPIC, SARAH, oracle=oracle)

        assert result.points == 3
        assert result.card.points == 3
        assert result.rationale == "Small but fiddly."

    @pytest.mark.asyncio
    async def test_oracle_exception(self):
        result = await estimate(TOPIC, SARAH, oracle=FakeOracle(error=TimeoutError("slow")))
        assert (result.points, result.rationale) == (8, ERROR_RATIONALE)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reply", [None, "", "I think 5 points", '{"points": "lots"}'])
    async def test_bad_replies_fall_back(self, reply):
        result = await estimate(TOPIC, SARAH, oracle=FakeOracle(reply))
        assert (result.points, result.rationale) == (8, ERROR_RATIONALE)

    @pytest.mark.asyncio
    async def test_default_oracle_without_key(self):
        with patch("pokerroom.config.OPENROUTER_API_KEY", None):
            result = await estimate(TOPIC, SARAH)
        assert result.rationale == OFFLINE_RATIONALE
