"""Shared test fixtures for Vehicle Triage tests."""

import shutil

import pytest
from pathlib import Path

from triage.knowledge import load_knowledge

# Project root
ROOT = Path(__file__).parent.parent

# Path to knowledge files
KNOWLEDGE_DIR = ROOT / "data" / "knowledge"
SCENARIOS_DIR = ROOT / "eval" / "scenarios"


@pytest.fixture
def knowledge_dir():
    """Path to the data/knowledge directory."""
    return KNOWLEDGE_DIR


@pytest.fixture
def knowledge():
    """The bundled knowledge, parsed and validated."""
    return load_knowledge(KNOWLEDGE_DIR)


@pytest.fixture
def knowledge_copy(tmp_path):
    """A writable copy of data/knowledge for tests that break one file."""
    target = tmp_path / "knowledge"
    shutil.copytree(KNOWLEDGE_DIR, target)
    return target


@pytest.fixture
def pull_with_tire_light():
    """Car pulls to one side and the tire pressure light is on.

    Raw scores put hydraulic steering ahead (13 vs ~3.26); the credibility
    profile moves the diagnosis to the tires.
    """
    return [
        {"id": "pulls_to_one_side", "value": "YES"},
        {"id": "tire_pressure_light_on", "value": "YES"},
    ]


@pytest.fixture
def slow_crank_corroded():
    """Slow crank plus corroded terminals: battery leads, grounds runner-up."""
    return [
        {"id": "engine_cranks_slowly", "value": "YES"},
        {"id": "terminals_corroded", "value": "YES"},
    ]
