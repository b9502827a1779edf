#!/usr/bin/env python3
"""Flow validation: replay canned symptom scenarios through the full engine.

Each scenario in eval/scenarios/*.yaml is one complete question-flow
outcome (entry anchor + answered observations, optionally clarifier answers
and exclusions) together with what the engine is expected to conclude:

    expect:
      top: tires_wheels            # or SAFETY_OVERRIDE, or null
      component: tire_pressure_low # or null
      band: CONFIDENT
      min_confidence: 0.8
      override: false
      scores_present: true

Only the keys that are present are checked. Every scenario gets PASS or
FAIL, and the script exits non-zero when anything failed so it can gate CI.

Usage (CLI):
    python eval/run_flow_validation.py                 # all scenarios
    python eval/run_flow_validation.py --scenario pull_with_tire_light
    python eval/run_flow_validation.py --list

Usage (from Python):
    from eval.run_flow_validation import load_scenarios, evaluate_scenario
    report = evaluate_scenario(load_scenarios()[0])
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

# ── Setup paths ──
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from triage.clarifiers import resolve_clarifier_answers  # noqa: E402
from triage.diagnose import run_diagnosis  # noqa: E402
from triage.knowledge import Knowledge, load_knowledge  # noqa: E402

EVAL_DIR = Path(__file__).resolve().parent
SCENARIOS_DIR = EVAL_DIR / "scenarios"

# Fixed id/timestamp so replays are byte-for-byte comparable.
REPLAY_TIMESTAMP = "2026-01-01T00:00:00Z"

LOGGER = logging.getLogger(__name__)


# ──────────────────────────────────────────────────
# Scenario loader
# ──────────────────────────────────────────────────

def load_scenarios(scenarios_dir: Optional[Path] = None) -> List[Dict[str, Any]]:
    """Load every scenario YAML, sorted by filename.

    A file may hold one scenario mapping or a list of them.
    """
    if scenarios_dir is None:
        scenarios_dir = SCENARIOS_DIR

    scenarios = []
    for yaml_path in sorted(Path(scenarios_dir).glob("*.yaml")):
        with open(yaml_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
        entries = data if isinstance(data, list) else [data]
        for entry in entries:
            entry["_source_file"] = yaml_path.name
            scenarios.append(entry)
    return scenarios


# ──────────────────────────────────────────────────
# Expectation checks
# ──────────────────────────────────────────────────

def _check(name: str, expected: Any, actual: Any, passed: bool) -> Dict[str, Any]:
    return {
        "check": name,
        "expected": expected,
        "actual": actual,
        "status": "PASS" if passed else "FAIL",
    }


def check_expectations(expect: Dict[str, Any], output: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Compare one ``run_diagnosis`` output against a scenario's ``expect`` block."""
    result = output["result"]
    checks = []

    if "top" in expect:
        checks.append(_check(
            "top", expect["top"], result.top_hypothesis,
            result.top_hypothesis == expect["top"],
        ))
    if "component" in expect:
        checks.append(_check(
            "component", expect["component"], result.specific_component,
            result.specific_component == expect["component"],
        ))
    if "override" in expect:
        checks.append(_check(
            "override", expect["override"], result.is_safety_override,
            result.is_safety_override == bool(expect["override"]),
        ))
    if "scores_present" in expect:
        present = "scores" in output
        checks.append(_check(
            "scores_present", expect["scores_present"], present,
            present == bool(expect["scores_present"]),
        ))
    if "band" in expect:
        band = output.get("confidence", {}).get("band")
        checks.append(_check("band", expect["band"], band, band == expect["band"]))
    if "min_confidence" in expect:
        checks.append(_check(
            "min_confidence", expect["min_confidence"], result.confidence,
            result.confidence >= float(expect["min_confidence"]),
        ))
    return checks


def evaluate_scenario(
    scenario: Dict[str, Any],
    knowledge: Optional[Knowledge] = None,
) -> Dict[str, Any]:
    """Run one scenario through the engine and grade it.

    Returns:
        Dict with name, status (PASS/FAIL), the individual checks and the
        wire-form result.
    """
    if knowledge is None:
        knowledge = load_knowledge()

    name = scenario.get("name") or scenario.get("_source_file", "unnamed")
    observations = list(scenario.get("observations") or [])
    observations += resolve_clarifier_answers(scenario.get("clarifier_answers"), knowledge)

    output = run_diagnosis(
        observations=observations,
        entry_anchor=scenario.get("entry_anchor", ""),
        result_id=f"flow-{name}",
        timestamp=REPLAY_TIMESTAMP,
        vehicle_id=scenario.get("vehicle_id", ""),
        excluded_hypotheses=scenario.get("excluded_hypotheses"),
        apply_corrections=scenario.get("apply_corrections", True),
        knowledge=knowledge,
    )

    checks = check_expectations(scenario.get("expect") or {}, output)
    failed = [c for c in checks if c["status"] == "FAIL"]
    if failed:
        LOGGER.warning("Scenario %s failed: %s", name, [c["check"] for c in failed])

    return {
        "name": name,
        "status": "FAIL" if failed else "PASS",
        "checks": checks,
        "result": output["result"].to_dict(),
    }


def run_flow_validation(
    scenarios: List[Dict[str, Any]],
    knowledge: Optional[Knowledge] = None,
) -> Dict[str, Any]:
    """Grade every scenario and summarize."""
    reports = [evaluate_scenario(s, knowledge) for s in scenarios]
    passed = sum(1 for r in reports if r["status"] == "PASS")
    return {
        "total": len(reports),
        "passed": passed,
        "failed": len(reports) - passed,
        "scenarios": reports,
    }


# ──────────────────────────────────────────────────
# CLI interface
# ──────────────────────────────────────────────────

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments for CLI usage."""
    parser = argparse.ArgumentParser(
        description="Replay canned symptom scenarios through the triage engine"
    )
    parser.add_argument(
        "--scenario", default=None,
        help="Run only the scenario with this name"
    )
    parser.add_argument(
        "--scenarios-dir", default=None,
        help="Directory of scenario YAML files (default: eval/scenarios)"
    )
    parser.add_argument(
        "--list", action="store_true",
        help="List scenario names and exit"
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    """CLI entry point: load scenarios, run them, print a JSON report."""
    args = parse_args(argv)
    logging.basicConfig(level=logging.WARNING, stream=sys.stderr)

    scenarios_dir = Path(args.scenarios_dir) if args.scenarios_dir else None
    scenarios = load_scenarios(scenarios_dir)

    if args.list:
        for scenario in scenarios:
            print(f"  {scenario.get('name')}: {scenario.get('description', '')}")
        return

    if args.scenario:
        scenarios = [s for s in scenarios if s.get("name") == args.scenario]
        if not scenarios:
            print(json.dumps({"error": f"No scenario named {args.scenario}"}))
            sys.exit(1)

    report = run_flow_validation(scenarios)
    print(json.dumps(report, indent=2))
    if report["failed"]:
        sys.exit(1)


if __name__ == "__main__":
    main()
