#!/usr/bin/env python3
"""Component refiner: narrow a winning family to a named part.

Each family owns an ORDERED rule list in ``data/knowledge/refinement.yaml``.
Rules are tried top to bottom and the first one whose ``required_yes``
symptoms are all YES and whose ``absent_or_no`` symptoms are all NO (or
unanswered) names the component. Narrower rules must therefore sit above
broader ones. No match leaves the diagnosis at family level.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from triage.knowledge import Knowledge, load_knowledge
from triage.schema import index_observations, normalize_observations, pattern_matches

LOGGER = logging.getLogger(__name__)


def refine_component(
    family: Optional[str],
    observations: Any,
    knowledge: Optional[Knowledge] = None,
) -> Optional[str]:
    """Return the component id for ``family``, or None.

    Args:
        family: Selected top family (None when there is no diagnosis).
        observations: The full observation set for this run.
        knowledge: Knowledge bundle; defaults to the bundled data.
    """
    if family is None:
        return None
    if knowledge is None:
        knowledge = load_knowledge()

    rules = knowledge.refinement_rules.get(family, [])
    if not rules:
        return None

    index = index_observations(normalize_observations(observations))
    for position, rule in enumerate(rules):
        if pattern_matches(index, rule["required_yes"], rule["absent_or_no"]):
            LOGGER.debug(
                "Refined %s -> %s (rule %d)", family, rule["component"], position,
            )
            return rule["component"]
    return None


def describe_component(
    component: Optional[str],
    knowledge: Optional[Knowledge] = None,
) -> Optional[Dict[str, Any]]:
    """Display name and urgency for a component id, if known."""
    if component is None:
        return None
    if knowledge is None:
        knowledge = load_knowledge()
    info = knowledge.components.get(component)
    if info is None:
        return None
    return {"id": component, **info}
