"""Vehicle Triage — deterministic symptom-to-diagnosis engine.

Modules are importable as a library and ``triage.diagnose`` doubles as a
CLI script. Every stage reads its domain data from ``data/knowledge/*.yaml``
and returns plain dicts; the final verdict is a frozen DiagnosticResult.
"""

from triage.knowledge import Knowledge, KnowledgeError, load_knowledge
from triage.models import SAFETY_OVERRIDE, DiagnosticResult

__all__ = [
    "DiagnosticResult",
    "Knowledge",
    "KnowledgeError",
    "SAFETY_OVERRIDE",
    "load_knowledge",
]
