#!/usr/bin/env python3
"""Scoring engine: fold observations into one signed score per family.

Every YES/NO observation with a family route contributes its weight
(WEAK=6, MEDIUM=13, STRONG=26) to its primary family and ``weight x 0.02``
to each explicitly listed secondary family. Contributions are kept in
separate sign x reliability-class buckets so two rules can be applied per
family once everything is folded in:

1. Medium cap -- a family with no strong evidence at all (either sign,
   spillover included) cannot collect more than 13 points of positive
   medium evidence. Piling up medium symptoms stops helping; one strong
   symptom lifts the cap. Weak evidence is never capped.
2. Always-dampen -- ``final = |positive - negative| x 0.5`` carrying the
   sign of the larger side. The halving is unconditional.

SKIP and UNSURE answers are not iterated at all, and an observation with no
route contributes nothing. Each call builds fresh accumulators; nothing is
shared between calls.

Usage (from Python):
    from triage.scoring import score_hypotheses
    scores = score_hypotheses([{"id": "engine_cranks_slowly", "value": "YES"}])
    scores["battery"]   # 13.0
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from triage.knowledge import Knowledge, load_knowledge
from triage.schema import NO, STRENGTH_WEIGHTS, YES, normalize_observations

LOGGER = logging.getLogger(__name__)


# ──────────────────────────────────────────────────
# Scoring constants
# ──────────────────────────────────────────────────

# Share of an observation's weight that spills to each listed secondary family.
CROSS_FAMILY_MULTIPLIER = 0.02

# Ceiling on positive medium evidence for a family without strong evidence.
MEDIUM_CAP = STRENGTH_WEIGHTS["MEDIUM"]

# Applied to every family's net score as the last step.
DAMPENING_FACTOR = 0.5

STRENGTH_CLASSES = ("WEAK", "MEDIUM", "STRONG")


def _empty_accumulator() -> Dict[str, Any]:
    return {
        "positive": {name: 0.0 for name in STRENGTH_CLASSES},
        "negative": {name: 0.0 for name in STRENGTH_CLASSES},
        "has_strong": False,
    }


def _add_contribution(acc: Dict[str, Any], sign: int, strength: str, amount: float) -> None:
    side = "positive" if sign > 0 else "negative"
    acc[side][strength] += amount
    if strength == "STRONG":
        acc["has_strong"] = True


def _apply_medium_cap(acc: Dict[str, Any]) -> None:
    if acc["has_strong"]:
        return
    if acc["positive"]["MEDIUM"] > MEDIUM_CAP:
        acc["positive"]["MEDIUM"] = float(MEDIUM_CAP)


def _finalize(acc: Dict[str, Any]) -> float:
    _apply_medium_cap(acc)
    positive = sum(acc["positive"].values())
    negative = sum(acc["negative"].values())

    if positive == 0 and negative == 0:
        return 0.0

    sign = 1 if positive >= negative else -1
    return sign * abs(positive - negative) * DAMPENING_FACTOR


def resolve_strength(obs: Dict[str, Any], knowledge: Knowledge) -> str:
    """Explicit strength when valid, else the catalog default for the id."""
    return obs.get("strength") or knowledge.default_strength(obs["id"])


def _accumulate(observations: Any, knowledge: Knowledge) -> Dict[str, Dict[str, Any]]:
    accumulators = {family: _empty_accumulator() for family in knowledge.family_ids}

    for obs in normalize_observations(observations):
        value = obs["value"]
        if value not in (YES, NO):
            continue

        route = knowledge.mapping.get(obs["id"])
        if route is None:
            continue

        strength = resolve_strength(obs, knowledge)
        weight = STRENGTH_WEIGHTS[strength]
        sign = 1 if value == YES else -1

        _add_contribution(accumulators[route["primary"]], sign, strength, weight)

        spill = weight * CROSS_FAMILY_MULTIPLIER
        for family in route["secondary"]:
            _add_contribution(accumulators[family], sign, strength, spill)

    return accumulators


def score_hypotheses(
    observations: Any,
    knowledge: Optional[Knowledge] = None,
) -> Dict[str, float]:
    """Score every hypothesis family from an observation set.

    Args:
        observations: List of ``{id, value, strength?}`` dicts or an
            ``{id: value}`` mapping. Clarifier answers must already be
            expressed as observations.
        knowledge: Knowledge bundle; defaults to the bundled data.

    Returns:
        Dict of family id -> signed score, with an entry for every family
        (0.0 when nothing touched it).
    """
    if knowledge is None:
        knowledge = load_knowledge()

    accumulators = _accumulate(observations, knowledge)
    scores = {family: _finalize(acc) for family, acc in accumulators.items()}

    LOGGER.debug(
        "Scored families: %s",
        {family: score for family, score in scores.items() if score != 0},
    )
    return scores


def score_breakdown(
    observations: Any,
    knowledge: Optional[Knowledge] = None,
) -> Dict[str, Dict[str, Any]]:
    """Per-family bucket totals behind ``score_hypotheses``.

    Useful for explaining a score: shows the positive/negative totals per
    reliability class after the medium cap, whether strong evidence was
    present, and the final score.
    """
    if knowledge is None:
        knowledge = load_knowledge()

    breakdown = {}
    for family, acc in _accumulate(observations, knowledge).items():
        score = _finalize(acc)
        breakdown[family] = {
            "positive": dict(acc["positive"]),
            "negative": dict(acc["negative"]),
            "has_strong": acc["has_strong"],
            "score": score,
        }
    return breakdown
