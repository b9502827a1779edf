#!/usr/bin/env python3
"""Confidence estimator: how far ahead is the leading family?

Confidence is the leader's share of the top three positive scores:

    confidence = top / (top + second + third)

Only positive scores take part; negative and zero scores are evidence
AGAINST a family and never dilute the leader. With fewer than three
positive families only the ones that exist are summed, so a single positive
family is 100% confident. No positive score at all means confidence 0.

Bands (boundary-inclusive):
    >= 0.80  CONFIDENT
    >= 0.60  PROBABLE
    <  0.60  UNSURE

The result depends only on the score values, never on family order.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping

CONFIDENT = "CONFIDENT"
PROBABLE = "PROBABLE"
UNSURE = "UNSURE"

CONFIDENT_THRESHOLD = 0.80
PROBABLE_THRESHOLD = 0.60

# How many leading families form the denominator.
TOP_N = 3


def confidence_band(confidence: float) -> str:
    """Classify a confidence value into CONFIDENT / PROBABLE / UNSURE."""
    if confidence >= CONFIDENT_THRESHOLD:
        return CONFIDENT
    if confidence >= PROBABLE_THRESHOLD:
        return PROBABLE
    return UNSURE


def calculate_confidence(scores: Mapping[str, float]) -> Dict[str, Any]:
    """Compute confidence and band from a score map.

    Args:
        scores: Family id -> signed score (output of scoring or credibility
            correction).

    Returns:
        Dict with:
            - confidence: float in [0, 1]
            - band: CONFIDENT / PROBABLE / UNSURE
            - top_scores: the (up to three) positive scores used, descending
            - reasoning: one-line explanation
    """
    positives = sorted(
        (float(score) for score in (scores or {}).values() if score > 0),
        reverse=True,
    )
    top_scores = positives[:TOP_N]
    total = sum(top_scores)

    if total <= 0:
        return {
            "confidence": 0.0,
            "band": UNSURE,
            "top_scores": [],
            "reasoning": "No family has positive evidence.",
        }

    confidence = top_scores[0] / total
    band = confidence_band(confidence)
    return {
        "confidence": confidence,
        "band": band,
        "top_scores": top_scores,
        "reasoning": (
            f"Leading family holds {confidence:.0%} of the top "
            f"{len(top_scores)} positive score(s) -> {band}."
        ),
    }
