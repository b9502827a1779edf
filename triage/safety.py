#!/usr/bin/env python3
"""Safety evaluator: hard-stop detection for safety-critical symptoms.

This is the FIRST stage of the pipeline. Five symptoms mean the driver must
stop and act before any diagnosis matters: low oil pressure, overheating, a
flashing check engine light, exhaust in the cabin and a brake failure
warning. Any one of them triggers the safety override; there is no severity
grading and one trigger is treated exactly like five.

The evaluator does not score or rank anything. The orchestrator uses its
verdict to short-circuit the rest of the pipeline.

Usage (from Python):
    from triage.safety import evaluate_safety
    safety = evaluate_safety([{"id": "oil_pressure_warning", "value": "YES"}])
    safety["safety_override"]   # True
"""

from __future__ import annotations

from typing import Any, Dict

from triage.schema import index_observations, is_yes, normalize_observations


# Fixed trigger set, in report order. Each note is shown to the user verbatim.
SAFETY_TRIGGER_NOTES = {
    "oil_pressure_warning": (
        "Oil pressure warning detected. Stop driving and investigate immediately."
    ),
    "overheating_warning": (
        "Overheating warning detected. Stop and allow engine to cool; "
        "investigate cooling system."
    ),
    "flashing_cel": (
        "Flashing check engine light detected. Avoid driving; "
        "risk of severe engine damage."
    ),
    "exhaust_smell_in_cabin": (
        "Exhaust smell in cabin detected. Ventilate and stop driving; "
        "potential carbon monoxide risk."
    ),
    "brake_failure_warning": (
        "Brake failure warning detected. Do not drive; tow for inspection."
    ),
}

SAFETY_TRIGGERS = tuple(SAFETY_TRIGGER_NOTES)


def evaluate_safety(observations: Any) -> Dict[str, Any]:
    """Check the observation set for safety-critical triggers.

    A trigger fires when ANY response for its id normalizes to YES; NO,
    UNSURE and SKIP never fire.

    Args:
        observations: Ordered list of ``{id, value, strength?}`` dicts, or a
            ``{id: value}`` mapping.

    Returns:
        Dict with:
            - safety_override: True if any trigger fired
            - hard_stop: always equal to safety_override
            - warnings: triggered ids, in fixed trigger order
            - notes: one human-readable note per triggered id
    """
    index = index_observations(normalize_observations(observations))

    warnings = [trigger for trigger in SAFETY_TRIGGERS if is_yes(index, trigger)]
    notes = [SAFETY_TRIGGER_NOTES[trigger] for trigger in warnings]
    safety_override = len(warnings) > 0

    return {
        "safety_override": safety_override,
        "hard_stop": safety_override,
        "warnings": warnings,
        "notes": notes,
    }
