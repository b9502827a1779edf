#!/usr/bin/env python3
"""Observation normalization helpers shared by every pipeline stage.

The question flow, saved results and hand-written JSON files do not agree on
how an answer is encoded (``"yes"``, ``True``, ``"YES"``, a missing key...).
Everything is folded into the canonical value set here so the scoring,
safety and refinement stages only ever compare against four constants.

This module also carries the legacy family alias bridge: older exports used
``hvac_secondary`` where the current taxonomy says ``hvac``.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

# Canonical observation values.
YES = "YES"
NO = "NO"
UNSURE = "UNSURE"
SKIP = "SKIP"

OBSERVATION_VALUES = (YES, NO, UNSURE, SKIP)

# Reliability classes -> numeric weight.
STRENGTH_WEIGHTS = {
    "WEAK": 6,
    "MEDIUM": 13,
    "STRONG": 26,
}
WEIGHT_TO_STRENGTH = {weight: name for name, weight in STRENGTH_WEIGHTS.items()}

# Legacy -> canonical family bridge (one-release alias support).
LEGACY_FAMILY_ALIASES = {
    "hvac_secondary": "hvac",
}


def normalize_observation_value(value: Any) -> str:
    """Map any supported answer encoding to YES/NO/UNSURE/SKIP.

    Missing and unrecognized values are SKIP, which every stage treats as
    "not answered".
    """
    if value is None:
        return SKIP
    if value is True:
        return YES
    if value is False:
        return NO
    if isinstance(value, str):
        candidate = value.strip().upper()
        if candidate in OBSERVATION_VALUES:
            return candidate
    return SKIP


def normalize_strength(strength: Any) -> Optional[str]:
    """Return WEAK/MEDIUM/STRONG for a numeric weight or class name.

    Returns None when the strength is missing or not one of the three
    classes, so the caller can fall back to the catalog default.
    """
    if strength is None or isinstance(strength, bool):
        return None
    if isinstance(strength, str):
        name = strength.strip().upper()
        return name if name in STRENGTH_WEIGHTS else None
    if isinstance(strength, (int, float)):
        return WEIGHT_TO_STRENGTH.get(strength)
    return None


def normalize_family_name(name: Optional[str]) -> Optional[str]:
    """Lower-case a family name and resolve legacy aliases."""
    if name is None:
        return None
    key = str(name).strip().lower()
    return LEGACY_FAMILY_ALIASES.get(key, key)


def _coerce_observation_list(observations: Any) -> List[Any]:
    """Accept a list of responses or a ``{id: value}`` mapping."""
    if observations is None:
        return []
    if isinstance(observations, Mapping):
        return [{"id": obs_id, "value": value} for obs_id, value in observations.items()]
    if isinstance(observations, (list, tuple)):
        return list(observations)
    return []


def normalize_observation(entry: Any) -> Optional[Dict[str, Any]]:
    """Normalize a single response dict; returns None for unusable entries.

    The result always has ``id`` (str), ``value`` (canonical) and
    ``strength`` (class name or None).
    """
    if not isinstance(entry, Mapping):
        return None
    obs_id = entry.get("id")
    if not obs_id or not isinstance(obs_id, str):
        return None
    return {
        "id": obs_id.strip(),
        "value": normalize_observation_value(entry.get("value")),
        "strength": normalize_strength(entry.get("strength")),
    }


def normalize_observations(observations: Any) -> List[Dict[str, Any]]:
    """Normalize an observation payload into an ordered list of responses.

    Entries without a usable ``id`` are dropped. Order and duplicates are
    preserved: a symptom reported twice counts twice.
    """
    normalized = []
    for entry in _coerce_observation_list(observations):
        obs = normalize_observation(entry)
        if obs is not None:
            normalized.append(obs)
    return normalized


def index_observations(observations: Iterable[Dict[str, Any]]) -> Dict[str, Set[str]]:
    """Collect every value reported for each observation id.

    Expects already-normalized responses.
    """
    index: Dict[str, Set[str]] = {}
    for obs in observations:
        index.setdefault(obs["id"], set()).add(obs["value"])
    return index


def is_yes(index: Mapping[str, Set[str]], obs_id: str) -> bool:
    """True when any response for ``obs_id`` is YES."""
    return YES in index.get(obs_id, ())


def is_no_or_absent(index: Mapping[str, Set[str]], obs_id: str) -> bool:
    """True when ``obs_id`` was answered NO, skipped, or never asked.

    An UNSURE (or YES) answer means the symptom may be present, so it does
    not count as absent.
    """
    values = index.get(obs_id)
    if not values:
        return True
    return values <= {NO, SKIP}


def pattern_matches(
    index: Mapping[str, Set[str]],
    required_yes: Iterable[str],
    absent_or_no: Iterable[str],
) -> bool:
    """Shared matcher for refinement rules and credibility rules."""
    return all(is_yes(index, obs_id) for obs_id in required_yes) and all(
        is_no_or_absent(index, obs_id) for obs_id in absent_or_no
    )
