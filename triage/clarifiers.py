#!/usr/bin/env python3
"""Clarifying follow-up questions, resolved BEFORE the engine runs.

When two families are close, the question flow may ask up to three binary
follow-ups. Each clarifier targets at least two families and resolves to
an ordinary observation, so the engine scores the answer like any other
symptom and has no clarifier-specific code path.

Usage (from Python):
    from triage.clarifiers import select_clarifiers, resolve_clarifier_answers
    questions = select_clarifiers(scores, observations)
    extra = resolve_clarifier_answers({"clarify_jump_start": "YES"})
    observations = observations + extra
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from triage.knowledge import Knowledge, load_knowledge
from triage.schema import (
    NO,
    UNSURE,
    YES,
    index_observations,
    normalize_observation_value,
    normalize_observations,
)

LOGGER = logging.getLogger(__name__)

# Clarifier answers are binary; UNSURE is always allowed.
ALLOWED_ANSWERS = (YES, NO, UNSURE)


def _leading_families(scores: Mapping[str, float], count: int = 2) -> List[str]:
    ranked = sorted(
        ((family, score) for family, score in scores.items() if score > 0),
        key=lambda item: (-item[1], item[0]),
    )
    return [family for family, _ in ranked[:count]]


def select_clarifiers(
    scores: Mapping[str, float],
    observations: Any = None,
    knowledge: Optional[Knowledge] = None,
) -> List[Dict[str, Any]]:
    """Pick at most ``max_per_run`` clarifiers that separate the leaders.

    Clarifiers touching both leading families come first, then those
    touching only the leader, then only the runner-up. A clarifier whose
    observation was already answered YES or NO is not asked again.

    Args:
        scores: Family id -> score for the current observation set.
        observations: Observations answered so far.
        knowledge: Knowledge bundle; defaults to the bundled data.

    Returns:
        List of clarifier dicts (id, question, observation, families).
    """
    if knowledge is None:
        knowledge = load_knowledge()

    leaders = _leading_families(scores)
    if not leaders:
        return []

    index = index_observations(normalize_observations(observations))
    ranked = []
    for position, clarifier in enumerate(knowledge.clarifiers):
        answered = index.get(clarifier["observation"], set()) & {YES, NO}
        if answered:
            continue
        touched = [family for family in leaders if family in clarifier["families"]]
        if not touched:
            continue
        if len(touched) == len(leaders):
            priority = 0
        elif touched[0] == leaders[0]:
            priority = 1
        else:
            priority = 2
        ranked.append((priority, position, clarifier))

    ranked.sort(key=lambda item: (item[0], item[1]))
    return [dict(clarifier) for _, _, clarifier in ranked[: knowledge.max_clarifiers]]


def _coerce_answers(answers: Any) -> List[Dict[str, Any]]:
    if answers is None:
        return []
    if isinstance(answers, Mapping):
        return [{"clarifier": key, "answer": value} for key, value in answers.items()]
    return [a for a in answers if isinstance(a, Mapping)]


def resolve_clarifier_answers(
    answers: Any,
    knowledge: Optional[Knowledge] = None,
) -> List[Dict[str, Any]]:
    """Turn clarifier answers into ordinary observations.

    Args:
        answers: ``{clarifier_id: answer}`` or a list of
            ``{"clarifier": id, "answer": value}`` dicts, in the order asked.
        knowledge: Knowledge bundle; defaults to the bundled data.

    Returns:
        List of ``{"id": observation_id, "value": YES|NO|UNSURE}``. Anything
        that is not YES or NO becomes UNSURE. Unknown clarifiers and answers
        beyond the per-run limit are dropped.
    """
    if knowledge is None:
        knowledge = load_knowledge()

    by_id = {c["id"]: c for c in knowledge.clarifiers}
    observations = []
    for entry in _coerce_answers(answers):
        clarifier_id = entry.get("clarifier")
        clarifier = by_id.get(clarifier_id)
        if clarifier is None:
            LOGGER.warning("Dropping answer for unknown clarifier %r", clarifier_id)
            continue
        if len(observations) >= knowledge.max_clarifiers:
            LOGGER.warning(
                "Dropping clarifier %s: limit of %d per run reached",
                clarifier_id, knowledge.max_clarifiers,
            )
            continue

        value = normalize_observation_value(entry.get("answer"))
        if value not in ALLOWED_ANSWERS:
            value = UNSURE
        observations.append({"id": clarifier["observation"], "value": value})

    return observations
