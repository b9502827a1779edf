#!/usr/bin/env python3
"""Loader for the static YAML knowledge under ``data/knowledge/``.

The engine never computes its domain data. The observation catalog, the
observation -> family routing, the refinement rules, the credibility
profiles and the clarifier list are authored as YAML and validated here
once, so a typo in a rule table fails loudly at load time instead of
silently never matching during a diagnosis.

Usage (from Python):
    from triage.knowledge import load_knowledge
    kb = load_knowledge()                    # bundled data/knowledge
    kb = load_knowledge("/path/to/overrides")

The parsed bundle is cached per directory and must be treated as read-only.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import yaml

from triage.safety import SAFETY_TRIGGERS
from triage.schema import LEGACY_FAMILY_ALIASES, STRENGTH_WEIGHTS

LOGGER = logging.getLogger(__name__)

# Project root is one level above the package (flat layout).
PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_KNOWLEDGE_DIR = PROJECT_ROOT / "data" / "knowledge"

KNOWLEDGE_FILES = (
    "observations.yaml",
    "families.yaml",
    "entry_anchors.yaml",
    "refinement.yaml",
    "credibility.yaml",
    "clarifiers.yaml",
)


class KnowledgeError(ValueError):
    """Raised when a knowledge file is missing or internally inconsistent."""


@dataclass(frozen=True)
class Knowledge:
    """Parsed and cross-validated knowledge bundle.

    Shared through the loader cache, so every table is read-only: mappings
    are ``MappingProxyType`` views and lists are tuples.
    """

    observations: Mapping[str, Mapping[str, Any]]
    families: Mapping[str, str]
    family_aliases: Mapping[str, str]
    mapping: Mapping[str, Mapping[str, Any]]
    entry_anchors: Mapping[str, str]
    components: Mapping[str, Mapping[str, Any]]
    refinement_rules: Mapping[str, Sequence[Mapping[str, Any]]]
    credibility_profiles: Sequence[Mapping[str, Any]]
    clarifiers: Sequence[Mapping[str, Any]]
    max_clarifiers: int
    source_dir: str

    @property
    def family_ids(self) -> Tuple[str, ...]:
        return tuple(self.families)

    def default_strength(self, obs_id: str) -> str:
        """Catalog reliability class for ``obs_id`` (WEAK when uncatalogued)."""
        definition = self.observations.get(obs_id)
        if definition is None:
            return "WEAK"
        return definition["default_strength"]

    def resolve_family(self, name: Optional[str]) -> Optional[str]:
        """Case-insensitive family lookup with legacy aliases applied."""
        if name is None:
            return None
        key = str(name).strip().lower()
        return self.family_aliases.get(key, key)

    def safety_families(self) -> set:
        """Families that any safety-trigger observation routes score to."""
        return _families_touched_by_safety(self.mapping)


def _families_touched_by_safety(mapping: Mapping[str, Mapping[str, Any]]) -> set:
    touched = set()
    for trigger in SAFETY_TRIGGERS:
        route = mapping.get(trigger)
        if route:
            touched.add(route["primary"])
            touched.update(route["secondary"])
    return touched


def _freeze(value: Any) -> Any:
    """Recursively turn dicts into read-only views and lists into tuples."""
    if isinstance(value, dict):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    return value


# ──────────────────────────────────────────────────
# File loading
# ──────────────────────────────────────────────────

def _read_yaml(knowledge_dir: Path, filename: str) -> Dict[str, Any]:
    path = knowledge_dir / filename
    if not path.exists():
        raise KnowledgeError(f"Knowledge file not found: {path}")
    with open(path, encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise KnowledgeError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise KnowledgeError(f"{path} must contain a mapping at the top level")
    return data


def _require_mapping(entry: Any, where: str) -> None:
    if not isinstance(entry, dict):
        raise KnowledgeError(f"{where}: entry must be a mapping, got {entry!r}")


def _mapping_section(raw: Dict[str, Any], key: str) -> Dict[str, Any]:
    section = raw.get(key) or {}
    _require_mapping(section, key)
    return section


def _list_section(raw: Dict[str, Any], key: str) -> List[Any]:
    section = raw.get(key) or []
    if not isinstance(section, list):
        raise KnowledgeError(f"{key} must be a list, got {type(section).__name__}")
    return section


def _as_id_list(value: Any, where: str) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise KnowledgeError(f"{where} must be a list of ids")
    return list(value)


# ──────────────────────────────────────────────────
# Section parsers (each validates against what is already loaded)
# ──────────────────────────────────────────────────

def _parse_observations(raw: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    weights = raw.get("strength_weights", STRENGTH_WEIGHTS)
    if weights != STRENGTH_WEIGHTS:
        raise KnowledgeError(
            f"strength_weights must be {STRENGTH_WEIGHTS}, got {weights}"
        )

    catalog: Dict[str, Dict[str, Any]] = {}
    for i, entry in enumerate(_list_section(raw, "observations")):
        _require_mapping(entry, f"observations[{i}]")
        obs_id = entry.get("id")
        if not obs_id:
            raise KnowledgeError(f"Observation entry without id: {entry}")
        if obs_id in catalog:
            raise KnowledgeError(f"Duplicate observation id: {obs_id}")
        strength = str(entry.get("default_strength", "")).upper()
        if strength not in STRENGTH_WEIGHTS:
            raise KnowledgeError(
                f"Observation {obs_id} has unknown default_strength {strength!r}"
            )
        catalog[obs_id] = {
            "label": entry.get("label", obs_id),
            "domain": entry.get("domain"),
            "default_strength": strength,
            "dash_light": bool(entry.get("dash_light", False)),
            "safety_critical": bool(entry.get("safety_critical", False)),
        }

    flagged = {obs_id for obs_id, d in catalog.items() if d["safety_critical"]}
    if flagged != set(SAFETY_TRIGGERS):
        raise KnowledgeError(
            f"safety_critical observations must be exactly {sorted(SAFETY_TRIGGERS)}, "
            f"got {sorted(flagged)}"
        )
    return catalog


def _parse_families(
    raw: Dict[str, Any],
    catalog: Dict[str, Dict[str, Any]],
) -> Tuple[Dict[str, str], Dict[str, str], Dict[str, Dict[str, Any]]]:
    families = {str(k): str(v) for k, v in _mapping_section(raw, "families").items()}
    if not families:
        raise KnowledgeError("families.yaml defines no families")

    aliases = dict(LEGACY_FAMILY_ALIASES)
    aliases.update({str(k): str(v) for k, v in _mapping_section(raw, "legacy_aliases").items()})
    for alias, target in aliases.items():
        if target not in families:
            raise KnowledgeError(f"Alias {alias} points at unknown family {target}")

    def canonical(name: Any, where: str) -> str:
        family = aliases.get(str(name), str(name))
        if family not in families:
            raise KnowledgeError(f"{where}: unknown family {name!r}")
        return family

    mapping: Dict[str, Dict[str, Any]] = {}
    for obs_id, route in _mapping_section(raw, "mapping").items():
        if obs_id not in catalog:
            raise KnowledgeError(f"mapping: unknown observation {obs_id!r}")
        if not isinstance(route, dict) or not route.get("primary"):
            raise KnowledgeError(f"mapping.{obs_id}: primary family is required")
        primary = canonical(route["primary"], f"mapping.{obs_id}.primary")
        secondary = [
            canonical(f, f"mapping.{obs_id}.secondary")
            for f in _as_id_list(route.get("secondary"), f"mapping.{obs_id}.secondary")
        ]
        mapping[obs_id] = {"primary": primary, "secondary": secondary}

    return families, aliases, mapping


def _parse_rule_ids(
    rule: Dict[str, Any],
    catalog: Dict[str, Dict[str, Any]],
    where: str,
) -> Tuple[List[str], List[str]]:
    required = _as_id_list(rule.get("required_yes"), f"{where}.required_yes")
    excluded = _as_id_list(rule.get("absent_or_no"), f"{where}.absent_or_no")
    if not required and not excluded:
        raise KnowledgeError(f"{where}: rule has no conditions")
    for obs_id in required + excluded:
        if obs_id not in catalog:
            raise KnowledgeError(f"{where}: unknown observation {obs_id!r}")
    return required, excluded


def _parse_refinement(
    raw: Dict[str, Any],
    catalog: Dict[str, Dict[str, Any]],
    families: Dict[str, str],
) -> Tuple[Dict[str, Dict[str, Any]], Dict[str, List[Dict[str, Any]]]]:
    components = {}
    for comp_id, info in _mapping_section(raw, "components").items():
        info = info or {}
        _require_mapping(info, f"refinement.components.{comp_id}")
        components[comp_id] = {
            "name": info.get("name", comp_id),
            "urgency": info.get("urgency"),
        }

    rules: Dict[str, List[Dict[str, Any]]] = {}
    for family, family_rules in _mapping_section(raw, "rules").items():
        if family not in families:
            raise KnowledgeError(f"refinement.rules: unknown family {family!r}")
        parsed = []
        for i, rule in enumerate(family_rules or []):
            where = f"refinement.rules.{family}[{i}]"
            _require_mapping(rule, where)
            component = rule.get("component")
            if component not in components:
                raise KnowledgeError(f"{where}: unknown component {component!r}")
            required, excluded = _parse_rule_ids(rule, catalog, where)
            parsed.append({
                "component": component,
                "required_yes": required,
                "absent_or_no": excluded,
            })
        rules[family] = parsed
    return components, rules


def _parse_credibility(
    raw: Dict[str, Any],
    catalog: Dict[str, Dict[str, Any]],
    families: Dict[str, str],
    protected: set,
) -> List[Dict[str, Any]]:
    profiles = []
    for i, profile in enumerate(_list_section(raw, "profiles")):
        _require_mapping(profile, f"credibility.profiles[{i}]")
        name = profile.get("name") or f"profile_{i}"
        where = f"credibility.{name}"
        target = profile.get("target")
        alternate = profile.get("alternate")
        for role, family in (("target", target), ("alternate", alternate)):
            if family not in families:
                raise KnowledgeError(f"{where}: unknown {role} family {family!r}")
        if target == alternate:
            raise KnowledgeError(f"{where}: target and alternate must differ")
        if target in protected:
            raise KnowledgeError(
                f"{where}: {target} receives safety-trigger evidence and cannot be corrected"
            )

        rules = []
        for j, rule in enumerate(profile.get("rules") or []):
            rule_where = f"{where}.rules[{j}]"
            _require_mapping(rule, rule_where)
            required, excluded = _parse_rule_ids(rule, catalog, rule_where)
            penalty = float(rule.get("penalty", 0.0))
            if penalty <= 0:
                raise KnowledgeError(f"{rule_where}: penalty must be positive")
            rules.append({
                "name": rule.get("name") or f"rule_{j}",
                "required_yes": required,
                "absent_or_no": excluded,
                "penalty": penalty,
            })
        if not rules:
            raise KnowledgeError(f"{where}: profile has no rules")

        profiles.append({
            "name": name,
            "target": target,
            "alternate": alternate,
            "max_penalty": float(profile.get("max_penalty", 1.5)),
            "redistribution_threshold": float(profile.get("redistribution_threshold", 0.5)),
            "redistribution_share": float(profile.get("redistribution_share", 0.5)),
            "rules": rules,
        })
    return profiles


def _parse_clarifiers(
    raw: Dict[str, Any],
    catalog: Dict[str, Dict[str, Any]],
    families: Dict[str, str],
) -> Tuple[List[Dict[str, Any]], int]:
    clarifiers = []
    seen = set()
    for i, entry in enumerate(_list_section(raw, "clarifiers")):
        _require_mapping(entry, f"clarifiers[{i}]")
        clarifier_id = entry.get("id")
        where = f"clarifiers.{clarifier_id}"
        if not clarifier_id or clarifier_id in seen:
            raise KnowledgeError(f"{where}: missing or duplicate id")
        seen.add(clarifier_id)
        observation = entry.get("observation")
        if observation not in catalog:
            raise KnowledgeError(f"{where}: unknown observation {observation!r}")
        targets = _as_id_list(entry.get("families"), f"{where}.families")
        if len(set(targets)) < 2:
            raise KnowledgeError(f"{where}: a clarifier must target at least 2 families")
        for family in targets:
            if family not in families:
                raise KnowledgeError(f"{where}: unknown family {family!r}")
        clarifiers.append({
            "id": clarifier_id,
            "question": entry.get("question", ""),
            "observation": observation,
            "families": targets,
        })
    return clarifiers, int(raw.get("max_per_run", 3))


# ──────────────────────────────────────────────────
# Public loader
# ──────────────────────────────────────────────────

@lru_cache(maxsize=8)
def _load_cached(knowledge_dir: str) -> Knowledge:
    base = Path(knowledge_dir)
    raw = {name: _read_yaml(base, name) for name in KNOWLEDGE_FILES}

    catalog = _parse_observations(raw["observations.yaml"])
    families, aliases, mapping = _parse_families(raw["families.yaml"], catalog)
    anchors = {
        str(k): str(v)
        for k, v in _mapping_section(raw["entry_anchors.yaml"], "entry_anchors").items()
    }
    components, refinement_rules = _parse_refinement(
        raw["refinement.yaml"], catalog, families,
    )

    profiles = _parse_credibility(
        raw["credibility.yaml"], catalog, families, _families_touched_by_safety(mapping),
    )
    clarifiers, max_clarifiers = _parse_clarifiers(raw["clarifiers.yaml"], catalog, families)

    LOGGER.debug(
        "Loaded knowledge from %s: %d observations, %d families, %d mapped, "
        "%d credibility profiles, %d clarifiers",
        base, len(catalog), len(families), len(mapping), len(profiles), len(clarifiers),
    )
    return Knowledge(
        observations=_freeze(catalog),
        families=_freeze(families),
        family_aliases=_freeze(aliases),
        mapping=_freeze(mapping),
        entry_anchors=_freeze(anchors),
        components=_freeze(components),
        refinement_rules=_freeze(refinement_rules),
        credibility_profiles=_freeze(profiles),
        clarifiers=_freeze(clarifiers),
        max_clarifiers=max_clarifiers,
        source_dir=str(base),
    )


def load_knowledge(knowledge_dir: Optional[Union[str, Path]] = None) -> Knowledge:
    """Load (or return the cached) knowledge bundle.

    Args:
        knowledge_dir: Directory holding the YAML files. Defaults to the
            bundled ``data/knowledge``.

    Raises:
        KnowledgeError: a file is missing, unparsable, or references an
            unknown observation, family or component.
    """
    if knowledge_dir is None:
        knowledge_dir = DEFAULT_KNOWLEDGE_DIR
    return _load_cached(str(Path(knowledge_dir).resolve()))
