#!/usr/bin/env python3
"""Diagnosis orchestrator: observations in, one immutable result out.

This is the only stage that talks to the outside world. It runs the pipeline
in a fixed order and assembles the DiagnosticResult:

    SafetyCheck -> Normalize -> Score -> [Correct] -> Confidence
        -> SelectTop -> Refine -> Assemble

There is exactly one branch. If the safety check fires, everything after it
is skipped and the result reports ``SAFETY_OVERRIDE`` with confidence 0 and
the safety notes; the score map is deliberately left out so "no evidence"
and "evidence not computed" cannot be confused.

Usage (CLI):
    python -m triage.diagnose --input observations.json \
        --entry-anchor wont_start --result-id r-1 --timestamp 2026-01-01T00:00:00Z

Usage (from Python):
    from triage.diagnose import run_diagnosis
    output = run_diagnosis(observations, entry_anchor="wont_start",
                           result_id="r-1", timestamp="2026-01-01T00:00:00Z")
    output["result"].top_hypothesis

Output: JSON to stdout.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

from triage.confidence import UNSURE, calculate_confidence
from triage.credibility import apply_credibility_corrections
from triage.knowledge import Knowledge, KnowledgeError, load_knowledge
from triage.models import SAFETY_OVERRIDE, DiagnosticResult
from triage.refine import describe_component, refine_component
from triage.safety import evaluate_safety
from triage.schema import YES, normalize_observations
from triage.scoring import score_hypotheses

LOGGER = logging.getLogger(__name__)


# ──────────────────────────────────────────────────
# Top-hypothesis selection
# ──────────────────────────────────────────────────

def _excluded_set(
    excluded_hypotheses: Optional[Iterable[str]],
    knowledge: Knowledge,
) -> set:
    return {
        knowledge.resolve_family(name)
        for name in (excluded_hypotheses or [])
        if name is not None
    }


def select_top_hypothesis(
    scores: Mapping[str, float],
    excluded_hypotheses: Optional[Iterable[str]] = None,
    knowledge: Optional[Knowledge] = None,
) -> Optional[str]:
    """Pick the family with the greatest absolute score.

    Excluded families (case-insensitive, legacy aliases resolved) are
    skipped. A tie at the maximum, or nothing above zero, means there is no
    hypothesis; an excluded leader is never used as a fallback.
    """
    if knowledge is None:
        knowledge = load_knowledge()
    excluded = _excluded_set(excluded_hypotheses, knowledge)

    best_family = None
    best_abs = 0.0
    tied = False
    for family, score in scores.items():
        if family in excluded:
            continue
        magnitude = abs(score)
        if magnitude > best_abs:
            best_family, best_abs, tied = family, magnitude, False
        elif magnitude == best_abs and magnitude > 0:
            tied = True

    if best_family is None or tied:
        return None
    return best_family


def supporting_observations(
    observations: List[Dict[str, Any]],
    family: Optional[str],
    knowledge: Knowledge,
) -> List[str]:
    """YES observations routed to ``family``, first-seen order, no repeats."""
    if family is None:
        return []
    supporting = []
    for obs in observations:
        if obs["value"] != YES or obs["id"] in supporting:
            continue
        route = knowledge.mapping.get(obs["id"])
        if route and (route["primary"] == family or family in route["secondary"]):
            supporting.append(obs["id"])
    return supporting


def _no_confidence(reasoning: str) -> Dict[str, Any]:
    return {
        "confidence": 0.0,
        "band": UNSURE,
        "top_scores": [],
        "reasoning": reasoning,
    }


# ──────────────────────────────────────────────────
# Pipeline
# ──────────────────────────────────────────────────

def run_diagnosis(
    observations: Any,
    entry_anchor: str,
    result_id: str,
    timestamp: str,
    vehicle_id: str = "",
    excluded_hypotheses: Optional[Iterable[str]] = None,
    apply_corrections: bool = True,
    knowledge: Optional[Knowledge] = None,
) -> Dict[str, Any]:
    """Run the full diagnosis pipeline on one observation set.

    Args:
        observations: List of ``{id, value, strength?}`` dicts (or an
            ``{id: value}`` mapping). Clarifier answers are already included.
        entry_anchor: Problem category the questions came from. Passed
            through to the result untouched.
        result_id: Identifier for the result; supplied by the caller.
        timestamp: ISO timestamp for the result; supplied by the caller.
        vehicle_id: Vehicle the observations belong to.
        excluded_hypotheses: Families the user ruled out. Affects only which
            family may be reported, never the scores.
        apply_corrections: Run the credibility-correction stage.
        knowledge: Knowledge bundle; defaults to the bundled data.

    Returns:
        Dict with:
            - result: DiagnosticResult
            - safety: safety evaluation
            - scores: family -> score (absent on safety override)
            - confidence: confidence/band detail (absent on safety override)
            - corrections: applied credibility adjustments (absent on override)
    """
    if knowledge is None:
        knowledge = load_knowledge()

    if entry_anchor not in knowledge.entry_anchors:
        LOGGER.warning("Unknown entry anchor %r; passing it through", entry_anchor)

    # ── SafetyCheck ──
    safety = evaluate_safety(observations)
    if safety["safety_override"]:
        LOGGER.info("Safety override: %s", ", ".join(safety["warnings"]))
        result = DiagnosticResult(
            id=result_id,
            vehicle_id=vehicle_id,
            timestamp=timestamp,
            entry_anchor=entry_anchor,
            top_hypothesis=SAFETY_OVERRIDE,
            confidence=0.0,
            supporting_observations=tuple(safety["warnings"]),
            safety_notes=tuple(safety["notes"]),
        )
        return {"result": result, "safety": safety}

    # ── Normalize + Score ──
    normalized = normalize_observations(observations)
    scores = score_hypotheses(normalized, knowledge)

    # ── Correct (optional) ──
    corrections: List[Dict[str, Any]] = []
    if apply_corrections:
        corrected = apply_credibility_corrections(scores, normalized, knowledge)
        scores = corrected["scores"]
        corrections = corrected["adjustments"]

    # ── Confidence ──
    # Measured over the families that may still be reported.
    excluded = _excluded_set(excluded_hypotheses, knowledge)
    selectable = {f: s for f, s in scores.items() if f not in excluded}
    confidence = calculate_confidence(selectable)

    # ── SelectTop ──
    top = select_top_hypothesis(scores, excluded, knowledge)
    if top is None:
        confidence = _no_confidence("No single family leads; no hypothesis reported.")
    elif scores[top] <= 0:
        # Leads on evidence against it; no positive score backs it.
        confidence = _no_confidence(
            f"{top} leads on negative evidence only; no confidence assigned."
        )

    # ── Refine ──
    component = None
    if top is not None and scores[top] > 0:
        component = refine_component(top, normalized, knowledge)

    # ── Assemble ──
    result = DiagnosticResult(
        id=result_id,
        vehicle_id=vehicle_id,
        timestamp=timestamp,
        entry_anchor=entry_anchor,
        top_hypothesis=top,
        confidence=confidence["confidence"],
        supporting_observations=tuple(supporting_observations(normalized, top, knowledge)),
        specific_component=component,
    )
    LOGGER.debug(
        "Diagnosis %s: top=%s component=%s confidence=%.3f (%s)",
        result_id, top, component, confidence["confidence"], confidence["band"],
    )
    return {
        "result": result,
        "safety": safety,
        "scores": scores,
        "confidence": confidence,
        "corrections": corrections,
    }


def serialize_diagnosis(
    output: Dict[str, Any],
    knowledge: Optional[Knowledge] = None,
) -> Dict[str, Any]:
    """JSON-ready form of ``run_diagnosis`` output."""
    result: DiagnosticResult = output["result"]
    payload = dict(output)
    payload["result"] = result.to_dict()
    component = describe_component(result.specific_component, knowledge)
    if component is not None:
        payload["component"] = component
    return payload


# ──────────────────────────────────────────────────
# CLI interface
# ──────────────────────────────────────────────────

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments for CLI usage."""
    parser = argparse.ArgumentParser(
        description="Diagnose a vehicle problem from yes/no/unsure symptom reports"
    )
    parser.add_argument(
        "--input", required=True,
        help="JSON file: a list of observations, or an object with 'observations'"
    )
    parser.add_argument("--entry-anchor", default=None, help="Problem category")
    parser.add_argument("--vehicle-id", default=None, help="Vehicle identifier")
    parser.add_argument("--result-id", default=None, help="Identifier for the result")
    parser.add_argument("--timestamp", default=None, help="ISO timestamp for the result")
    parser.add_argument(
        "--exclude", nargs="*", default=None,
        help="Families to exclude from top-hypothesis selection"
    )
    parser.add_argument(
        "--no-corrections", action="store_true",
        help="Skip the credibility-correction stage"
    )
    parser.add_argument(
        "--knowledge-dir", default=None,
        help="Directory with knowledge YAML files (default: data/knowledge)"
    )
    parser.add_argument(
        "--log-level", default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level for stderr diagnostics"
    )
    return parser.parse_args(argv)


def _fail(message: str) -> None:
    print(json.dumps({"error": message}))
    sys.exit(1)


def main(argv: Optional[List[str]] = None) -> None:
    """CLI entry point: load observations JSON, run diagnosis, print JSON."""
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        stream=sys.stderr,
        format="%(levelname)s %(name)s: %(message)s",
    )

    input_path = Path(args.input)
    if not input_path.exists():
        _fail(f"File not found: {args.input}")

    with open(input_path, encoding="utf-8") as f:
        try:
            payload = json.load(f)
        except json.JSONDecodeError as exc:
            _fail(f"Invalid JSON in {args.input}: {exc}")

    if isinstance(payload, list):
        payload = {"observations": payload}
    if not isinstance(payload, dict):
        _fail("Input must be a list of observations or an object")

    result_id = args.result_id or payload.get("result_id")
    timestamp = args.timestamp or payload.get("timestamp")
    if not result_id or not timestamp:
        _fail("A result id and timestamp are required (--result-id, --timestamp)")

    excluded = args.exclude if args.exclude is not None else payload.get("excluded_hypotheses")

    try:
        knowledge = load_knowledge(args.knowledge_dir)
    except KnowledgeError as exc:
        _fail(str(exc))

    output = run_diagnosis(
        observations=payload.get("observations", []),
        entry_anchor=args.entry_anchor or payload.get("entry_anchor", ""),
        result_id=result_id,
        timestamp=timestamp,
        vehicle_id=args.vehicle_id or payload.get("vehicle_id", ""),
        excluded_hypotheses=excluded,
        apply_corrections=not args.no_corrections,
        knowledge=knowledge,
    )

    print(json.dumps(serialize_diagnosis(output, knowledge), indent=2))


if __name__ == "__main__":
    main()
