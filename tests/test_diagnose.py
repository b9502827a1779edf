"""Tests for the diagnosis orchestrator and its CLI."""

import dataclasses
import json

import pytest

from triage.diagnose import (
    main,
    run_diagnosis,
    select_top_hypothesis,
    serialize_diagnosis,
    supporting_observations,
)
from triage.models import SAFETY_OVERRIDE, DiagnosticResult
from triage.safety import SAFETY_TRIGGERS
from triage.schema import normalize_observations


def _run(observations, knowledge, **kwargs):
    kwargs.setdefault("entry_anchor", "wont_start")
    return run_diagnosis(
        observations,
        result_id="r-1",
        timestamp="2026-01-01T00:00:00Z",
        vehicle_id="veh-1",
        knowledge=knowledge,
        **kwargs,
    )


class TestSafetyOverride:

    def test_override_short_circuits(self, knowledge):
        output = _run([
            {"id": "oil_pressure_warning", "value": "YES"},
            {"id": "engine_cranks_slowly", "value": "YES"},
        ], knowledge)
        result = output["result"]
        assert result.top_hypothesis == SAFETY_OVERRIDE
        assert result.is_safety_override
        assert result.confidence == 0.0
        assert result.supporting_observations == ("oil_pressure_warning",)
        assert len(result.safety_notes) == 1
        assert result.specific_component is None
        assert "scores" not in output
        assert "confidence" not in output

    @pytest.mark.parametrize("trigger", SAFETY_TRIGGERS)
    def test_any_trigger_overrides_strong_evidence(self, knowledge, trigger):
        observations = [
            {"id": "pulls_to_one_side", "value": "YES"},
            {"id": "steering_feels_heavy", "value": "YES"},
            {"id": trigger, "value": "YES"},
        ]
        assert _run(observations, knowledge)["result"].top_hypothesis == SAFETY_OVERRIDE

    def test_supporting_observations_are_the_warnings(self, knowledge):
        output = _run([
            {"id": "flashing_cel", "value": "YES"},
            {"id": "overheating_warning", "value": "YES"},
        ], knowledge)
        assert output["result"].supporting_observations == (
            "overheating_warning", "flashing_cel",
        )


class TestNormalRun:

    def test_pull_with_tire_light(self, knowledge, pull_with_tire_light):
        output = _run(pull_with_tire_light, knowledge, entry_anchor="braking_handling")
        result = output["result"]
        assert result.top_hypothesis == "tires_wheels"
        assert result.specific_component == "tire_pressure_low"
        assert result.confidence == 1.0
        assert output["confidence"]["band"] == "CONFIDENT"
        assert result.supporting_observations == ("pulls_to_one_side", "tire_pressure_light_on")
        assert result.safety_notes is None
        assert result.entry_anchor == "braking_handling"
        assert result.vehicle_id == "veh-1"
        assert len(output["corrections"]) == 1

    def test_corrections_can_be_skipped(self, knowledge, pull_with_tire_light):
        output = _run(pull_with_tire_light, knowledge, apply_corrections=False)
        result = output["result"]
        assert result.top_hypothesis == "steering_hydraulic"
        assert result.specific_component is None
        assert result.supporting_observations == ("pulls_to_one_side",)
        assert result.confidence == pytest.approx(13 / (13 + 3.26))
        assert output["confidence"]["band"] == "PROBABLE"
        assert output["corrections"] == []

    def test_empty_observations(self, knowledge):
        output = _run([], knowledge)
        result = output["result"]
        assert result.top_hypothesis is None
        assert result.confidence == 0.0
        assert result.supporting_observations == ()
        assert result.specific_component is None
        assert set(output["scores"]) == set(knowledge.family_ids)

    def test_only_unsure_answers(self, knowledge):
        output = _run([{"id": "rough_idle", "value": "UNSURE"}], knowledge)
        assert output["result"].top_hypothesis is None

    def test_tie_at_top_has_no_hypothesis(self, knowledge):
        output = _run([
            {"id": "rough_idle", "value": "YES"},
            {"id": "clunk_over_bumps", "value": "YES"},
        ], knowledge)
        assert output["scores"]["ignition"] == output["scores"]["suspension"] == 6.5
        assert output["result"].top_hypothesis is None
        assert output["result"].confidence == 0.0

    def test_deterministic(self, knowledge, slow_crank_corroded):
        first = _run(slow_crank_corroded, knowledge)
        second = _run(slow_crank_corroded, knowledge)
        assert first["result"] == second["result"]
        assert first["scores"] == second["scores"]

    def test_unknown_entry_anchor_passed_through(self, knowledge, caplog):
        output = _run([], knowledge, entry_anchor="mystery")
        assert output["result"].entry_anchor == "mystery"
        assert "Unknown entry anchor" in caplog.text

    def test_result_is_immutable(self, knowledge):
        result = _run([], knowledge)["result"]
        with pytest.raises(dataclasses.FrozenInstanceError):
            result.confidence = 1.0


class TestNegativeLeader:
    """A family can lead on evidence against it; that lead carries no confidence."""

    def test_negative_leader_has_no_confidence(self, knowledge):
        output = _run([
            {"id": "engine_cranks_slowly", "value": "NO"},
            {"id": "starts_then_stalls", "value": "YES", "strength": "WEAK"},
        ], knowledge)
        result = output["result"]
        assert result.top_hypothesis == "battery"
        assert output["scores"]["battery"] == -13.0
        assert output["scores"]["fuel"] > 0
        assert result.confidence == 0.0
        assert output["confidence"]["band"] == "UNSURE"
        assert output["confidence"]["top_scores"] == []

    def test_negative_leader_is_not_refined(self, knowledge):
        """The starter-solenoid rule matches, but the battery score is negative."""
        output = _run([
            {"id": "single_click_no_crank", "value": "YES"},
            {"id": "jump_start_helps", "value": "NO"},
            {"id": "engine_cranks_slowly", "value": "NO"},
        ], knowledge)
        result = output["result"]
        assert result.top_hypothesis == "battery"
        assert output["scores"]["battery"] < 0
        assert result.specific_component is None
        assert result.confidence == 0.0

    def test_positive_leader_with_negative_evidence_elsewhere(self, knowledge):
        output = _run([
            {"id": "rough_idle", "value": "YES"},
            {"id": "headlights_dim", "value": "NO"},
        ], knowledge)
        result = output["result"]
        assert result.top_hypothesis == "ignition"
        assert output["scores"]["battery"] < 0
        assert result.confidence == pytest.approx(6.5 / (6.5 + 0.13))
        assert output["confidence"]["band"] == "CONFIDENT"
        assert result.specific_component == "spark_plugs"


class TestExclusions:

    def test_excluded_leader_not_reported(self, knowledge, slow_crank_corroded):
        plain = _run(slow_crank_corroded, knowledge)
        excluded = _run(slow_crank_corroded, knowledge, excluded_hypotheses=["BATTERY"])
        assert plain["result"].top_hypothesis == "battery"
        assert excluded["result"].top_hypothesis == "grounds"
        assert excluded["result"].specific_component == "battery_terminals"

    def test_exclusion_does_not_change_scores(self, knowledge, slow_crank_corroded):
        plain = _run(slow_crank_corroded, knowledge)
        excluded = _run(slow_crank_corroded, knowledge, excluded_hypotheses=["battery"])
        assert plain["scores"] == excluded["scores"]

    def test_no_fallback_when_everything_excluded(self, knowledge, slow_crank_corroded):
        output = _run(slow_crank_corroded, knowledge, excluded_hypotheses=["battery", "grounds"])
        assert output["result"].top_hypothesis is None
        assert output["result"].specific_component is None

    def test_legacy_alias_exclusion(self, knowledge):
        output = _run(
            [{"id": "blower_not_working", "value": "YES"}], knowledge,
            excluded_hypotheses=["hvac_secondary"],
        )
        assert output["result"].top_hypothesis is None


class TestSelectTopHypothesis:

    def test_greatest_absolute_score(self, knowledge):
        assert select_top_hypothesis({"battery": -10.0, "fuel": 5.0}, None, knowledge) == "battery"

    def test_all_zero(self, knowledge):
        assert select_top_hypothesis({"battery": 0.0, "fuel": 0.0}, None, knowledge) is None

    def test_tie(self, knowledge):
        assert select_top_hypothesis({"battery": 4.0, "fuel": -4.0}, None, knowledge) is None

    def test_tie_broken_by_exclusion(self, knowledge):
        assert select_top_hypothesis({"battery": 4.0, "fuel": 4.0}, ["Fuel"], knowledge) == "battery"


class TestSupportingObservations:

    def test_first_seen_order_without_duplicates(self, knowledge):
        observations = normalize_observations([
            {"id": "jump_start_helps", "value": "YES"},
            {"id": "engine_cranks_slowly", "value": "YES"},
            {"id": "jump_start_helps", "value": "YES"},
            {"id": "headlights_dim", "value": "NO"},
            {"id": "rough_idle", "value": "YES"},
        ])
        assert supporting_observations(observations, "battery", knowledge) == [
            "jump_start_helps", "engine_cranks_slowly",
        ]

    def test_secondary_routes_count(self, knowledge):
        observations = normalize_observations([{"id": "terminals_corroded", "value": "YES"}])
        assert supporting_observations(observations, "battery", knowledge) == ["terminals_corroded"]

    def test_no_family(self, knowledge):
        assert supporting_observations([], None, knowledge) == []


class TestWireFormat:

    def test_to_dict_camel_case(self, knowledge, pull_with_tire_light):
        payload = _run(pull_with_tire_light, knowledge)["result"].to_dict()
        assert payload == {
            "id": "r-1",
            "vehicleId": "veh-1",
            "timestamp": "2026-01-01T00:00:00Z",
            "entryAnchor": "wont_start",
            "topHypothesis": "tires_wheels",
            "confidence": 1.0,
            "supportingObservations": ["pulls_to_one_side", "tire_pressure_light_on"],
            "specificComponent": "tire_pressure_low",
        }

    def test_optional_fields_omitted(self):
        result = DiagnosticResult(
            id="r", vehicle_id="v", timestamp="t", entry_anchor="noise",
            top_hypothesis=None, confidence=0.0,
        )
        payload = result.to_dict()
        assert payload["topHypothesis"] is None
        assert "specificComponent" not in payload
        assert "safetyNotes" not in payload

    def test_override_has_safety_notes(self, knowledge):
        payload = _run([{"id": "brake_failure_warning", "value": "YES"}], knowledge)["result"].to_dict()
        assert payload["topHypothesis"] == SAFETY_OVERRIDE
        assert payload["safetyNotes"] == ["Brake failure warning detected. Do not drive; tow for inspection."]

    def test_serialize_is_json_ready(self, knowledge, pull_with_tire_light):
        payload = serialize_diagnosis(_run(pull_with_tire_light, knowledge), knowledge)
        json.dumps(payload)
        assert payload["component"]["name"] == "Low Tire Pressure"


class TestCli:

    def _write(self, tmp_path, payload):
        path = tmp_path / "obs.json"
        path.write_text(json.dumps(payload))
        return str(path)

    def test_list_input(self, tmp_path, capsys, pull_with_tire_light):
        path = self._write(tmp_path, pull_with_tire_light)
        main(["--input", path, "--result-id", "cli-1", "--timestamp", "2026-01-01T00:00:00Z",
              "--entry-anchor", "braking_handling"])
        output = json.loads(capsys.readouterr().out)
        assert output["result"]["topHypothesis"] == "tires_wheels"
        assert output["result"]["id"] == "cli-1"

    def test_object_input(self, tmp_path, capsys, slow_crank_corroded):
        path = self._write(tmp_path, {
            "observations": slow_crank_corroded,
            "entry_anchor": "wont_start",
            "result_id": "obj-1",
            "timestamp": "2026-01-01T00:00:00Z",
            "excluded_hypotheses": ["battery"],
        })
        main(["--input", path])
        output = json.loads(capsys.readouterr().out)
        assert output["result"]["topHypothesis"] == "grounds"

    def test_utf8_input(self, tmp_path, capsys):
        path = tmp_path / "obs.json"
        path.write_text(json.dumps({
            "observations": [{"id": "rough_idle", "value": "YES"}],
            "vehicle_id": "Škoda Octavia – garage №2",
            "result_id": "utf-1",
            "timestamp": "2026-01-01T00:00:00Z",
        }, ensure_ascii=False), encoding="utf-8")
        main(["--input", str(path)])
        output = json.loads(capsys.readouterr().out)
        assert output["result"]["vehicleId"] == "Škoda Octavia – garage №2"

    def test_no_corrections_flag(self, tmp_path, capsys, pull_with_tire_light):
        path = self._write(tmp_path, pull_with_tire_light)
        main(["--input", path, "--result-id", "x", "--timestamp", "t", "--no-corrections"])
        output = json.loads(capsys.readouterr().out)
        assert output["result"]["topHypothesis"] == "steering_hydraulic"

    def test_missing_file(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["--input", str(tmp_path / "nope.json"), "--result-id", "x", "--timestamp", "t"])
        assert exc.value.code == 1
        assert "File not found" in json.loads(capsys.readouterr().out)["error"]

    def test_missing_result_id(self, tmp_path, capsys):
        path = self._write(tmp_path, [])
        with pytest.raises(SystemExit) as exc:
            main(["--input", path, "--timestamp", "t"])
        assert exc.value.code == 1
        assert "error" in json.loads(capsys.readouterr().out)
