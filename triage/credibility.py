#!/usr/bin/env python3
"""Credibility corrector: post-scoring suppression of known over-selections.

Some families win too often on thin evidence. The classic case is a car
that pulls to one side: the strong "pulls to one side" symptom routes to
hydraulic steering, but without a whine or heavy steering the pull is far
more often a tire problem. A correction profile encodes that knowledge as
an ordered rule table:

    rule fires   -> penalty += rule.penalty
    corrected    =  max(0, score x (1 - min(penalty, max_penalty)))
    penalty > threshold
                 -> alternate = max(alt, alt + score x min(penalty, cap) x share)

Profiles live in ``data/knowledge/credibility.yaml``; adding a rule never
touches this module. A profile only acts on a POSITIVE target score, and
the knowledge loader refuses profiles aimed at a family that receives
safety-trigger evidence.

This stage is optional; the orchestrator can skip it per call.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from triage.knowledge import Knowledge, load_knowledge
from triage.schema import index_observations, normalize_observations, pattern_matches

LOGGER = logging.getLogger(__name__)


def accumulate_penalty(
    profile: Dict[str, Any],
    index: Mapping[str, set],
) -> Tuple[float, List[str]]:
    """Sum the penalties of every rule in ``profile`` that matches.

    Returns the raw (unclamped) penalty and the names of the fired rules.
    """
    penalty = 0.0
    fired = []
    for rule in profile["rules"]:
        if pattern_matches(index, rule["required_yes"], rule["absent_or_no"]):
            penalty += rule["penalty"]
            fired.append(rule["name"])
    return penalty, fired


def apply_profile(
    profile: Dict[str, Any],
    scores: Dict[str, float],
    index: Mapping[str, set],
) -> Optional[Dict[str, Any]]:
    """Apply one profile to ``scores`` in place.

    Returns an adjustment record, or None when the profile did not act
    (target not positive, or no rule fired).
    """
    target = profile["target"]
    alternate = profile["alternate"]
    original = scores.get(target, 0.0)
    if original <= 0:
        return None

    penalty, fired = accumulate_penalty(profile, index)
    if penalty <= 0:
        return None

    effective = min(penalty, profile["max_penalty"])
    corrected = max(0.0, original * (1 - effective))
    scores[target] = corrected

    alternate_original = scores.get(alternate, 0.0)
    alternate_boost = 0.0
    if penalty > profile["redistribution_threshold"]:
        boosted = alternate_original + original * effective * profile["redistribution_share"]
        scores[alternate] = max(alternate_original, boosted)
        alternate_boost = scores[alternate] - alternate_original

    return {
        "profile": profile["name"],
        "target": target,
        "penalty": penalty,
        "effective_penalty": effective,
        "rules_fired": fired,
        "original": original,
        "corrected": corrected,
        "alternate": alternate,
        "alternate_boost": alternate_boost,
    }


def apply_credibility_corrections(
    scores: Mapping[str, float],
    observations: Any,
    knowledge: Optional[Knowledge] = None,
) -> Dict[str, Any]:
    """Run every credibility profile over a score map.

    Args:
        scores: Family id -> score from the scoring engine. Not modified.
        observations: The full observation set for this run.
        knowledge: Knowledge bundle; defaults to the bundled data.

    Returns:
        Dict with:
            - scores: new score map after all profiles
            - adjustments: one record per profile that acted, in profile order
    """
    if knowledge is None:
        knowledge = load_knowledge()

    corrected = dict(scores)
    index = index_observations(normalize_observations(observations))
    adjustments = []

    for profile in knowledge.credibility_profiles:
        adjustment = apply_profile(profile, corrected, index)
        if adjustment is None:
            continue
        LOGGER.info(
            "Credibility correction %s: %s %.3f -> %.3f (penalty %.2f, rules %s), "
            "%s +%.3f",
            adjustment["profile"], adjustment["target"], adjustment["original"],
            adjustment["corrected"], adjustment["penalty"],
            ", ".join(adjustment["rules_fired"]),
            adjustment["alternate"], adjustment["alternate_boost"],
        )
        adjustments.append(adjustment)

    return {"scores": corrected, "adjustments": adjustments}
