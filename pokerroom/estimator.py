"""Estimate oracle adapter for simulated participants.

``estimate`` never raises: blank topics get a random card without consulting
the oracle, an unconfigured or failing oracle yields a fixed fallback, and
off-scale answers are snapped onto the scale.
"""

import json
import logging
import math
import random
import re
from dataclasses import dataclass
from typing import Any, Protocol

from .config import FALLBACK_POINTS, SCALE
from .models import Card, Topic
from .personas import Persona

logger = logging.getLogger(__name__)

NO_CONTEXT_RATIONALE = (
    "I don't have any context on the story, so I'm providing a random "
    "estimate to participate."
)
OFFLINE_RATIONALE = (
    "I'm currently offline (no oracle configured), but this looks like a "
    "medium effort task."
)
ERROR_RATIONALE = (
    "I'm having trouble connecting to my brain, but this feels complex."
)

ESTIMATE_PROMPT = """You are participating in a Planning Poker session for software estimation.

Your Persona:
Name: {persona_name}
Role: {persona_role}

The Story to Estimate:
Title: "{title}"
Description: "{description}"

Task:
1. Analyze the complexity of the story based on your persona's perspective.
2. Select a Story Point value from the Fibonacci sequence: {scale}.
   - 1-3: Simple, well-understood tasks.
   - 5-8: Medium complexity, some unknowns or significant effort.
   - 13-21: High complexity, high risk, or too large (needs splitting).
3. Provide a short, one-sentence reasoning for your vote, sounding like your persona.

Respond with a single JSON object and nothing else:
{{"points": <number>, "reasoning": "<one sentence>"}}"""

_CODE_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


class Oracle(Protocol):
    """External estimation service."""

    def is_configured(self) -> bool: ...

    async def complete(self, prompt: str) -> str | None: ...


class MalformedPayloadError(ValueError):
    """Oracle output did not have the expected shape."""


@dataclass(frozen=True)
class EstimateResult:
    """An oracle-backed estimate, always on the numeric scale."""

    points: int
    rationale: str

    @property
    def card(self) -> Card:
        return Card(self.points)


def snap_to_scale(value: float) -> int:
    """
    Map a number onto the nearest scale member.

    Ties go to the earlier member, so 4 snaps to 3.
    """
    return min(SCALE, key=lambda point: abs(point - value))


def build_prompt(topic: Topic, persona: Persona) -> str:
    return ESTIMATE_PROMPT.format(
        persona_name=persona.name,
        persona_role=persona.role,
        title=topic.title,
        description=topic.description,
        scale=list(SCALE),
    )


def parse_estimate_payload(text: str) -> tuple[float, str]:
    """
    Parse the oracle's JSON reply.

    Args:
        text: Raw model output, optionally wrapped in a markdown code fence

    Returns:
        Tuple of (points, reasoning)

    Raises:
        MalformedPayloadError: If the text is not the expected JSON object
    """
    stripped = text.strip()
    fenced = _CODE_FENCE.match(stripped)
    if fenced:
        stripped = fenced.group(1)

    try:
        data: Any = json.loads(stripped)
    except json.JSONDecodeError as e:
        raise MalformedPayloadError(f"Not JSON: {e}") from e

    if not isinstance(data, dict):
        raise MalformedPayloadError("Expected a JSON object")

    points = data.get("points")
    if isinstance(points, str):
        try:
            points = float(points)
        except ValueError:
            raise MalformedPayloadError(f"points is not numeric: {points!r}") from None
    if isinstance(points, bool) or not isinstance(points, (int, float)):
        raise MalformedPayloadError(f"points is not numeric: {points!r}")
    if not math.isfinite(points):
        raise MalformedPayloadError(f"points is not finite: {points!r}")

    reasoning = data.get("reasoning")
    if not isinstance(reasoning, str):
        raise MalformedPayloadError("reasoning is missing")

    return points, reasoning.strip()


async def estimate(
    topic: Topic,
    persona: Persona,
    oracle: Oracle | None = None,
    rng: random.Random | None = None,
) -> EstimateResult:
    """
    Produce an estimate for a simulated participant.

    Args:
        topic: The story being estimated
        persona: Who is estimating (name and role feed the prompt)
        oracle: Estimation service (defaults to the OpenRouter oracle)
        rng: Random source for the no-context fast path

    Returns:
        EstimateResult on the numeric scale; never raises
    """
    if topic.is_blank:
        points = (rng or random).choice(SCALE)
        return EstimateResult(points=points, rationale=NO_CONTEXT_RATIONALE)

    try:
        if oracle is None:
            from .openrouter import OpenRouterOracle

            oracle = OpenRouterOracle()
        configured = oracle.is_configured()
    except Exception as e:
        logger.warning("Estimate oracle unavailable: %s", e)
        configured = False

    if not configured:
        logger.info("Estimate oracle not configured; using offline fallback for %s", persona.name)
        return EstimateResult(points=FALLBACK_POINTS, rationale=OFFLINE_RATIONALE)

    try:
        text = await oracle.complete(build_prompt(topic, persona))
        if not text:
            raise MalformedPayloadError("Empty response from oracle")
        raw_points, reasoning = parse_estimate_payload(text)
    except Exception as e:
        logger.warning("Estimate oracle failed for %s: %s", persona.name, e)
        return EstimateResult(points=FALLBACK_POINTS, rationale=ERROR_RATIONALE)

    points = snap_to_scale(raw_points)
    if points != raw_points:
        logger.debug("Snapped oracle estimate %s to %s", raw_points, points)
    return EstimateResult(points=points, rationale=reasoning or ERROR_RATIONALE)
