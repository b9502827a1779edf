#!/usr/bin/env python3
"""Diagnostic result record.

One record is produced per evaluation and never changes afterwards;
persisting or exporting it is the caller's business. ``to_dict`` emits the
camelCase wire shape used by saved results and exports.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

# topHypothesis value for the safety-override branch.
SAFETY_OVERRIDE = "SAFETY_OVERRIDE"


@dataclass(frozen=True)
class DiagnosticResult:
    id: str
    vehicle_id: str
    timestamp: str
    entry_anchor: str
    top_hypothesis: Optional[str]
    confidence: float
    supporting_observations: Tuple[str, ...] = ()
    specific_component: Optional[str] = None
    safety_notes: Optional[Tuple[str, ...]] = None

    @property
    def is_safety_override(self) -> bool:
        return self.top_hypothesis == SAFETY_OVERRIDE

    def to_dict(self) -> Dict[str, Any]:
        """Wire form. Optional fields are omitted when unset."""
        payload: Dict[str, Any] = {
            "id": self.id,
            "vehicleId": self.vehicle_id,
            "timestamp": self.timestamp,
            "entryAnchor": self.entry_anchor,
            "topHypothesis": self.top_hypothesis,
            "confidence": self.confidence,
            "supportingObservations": list(self.supporting_observations),
        }
        if self.specific_component is not None:
            payload["specificComponent"] = self.specific_component
        if self.safety_notes is not None:
            payload["safetyNotes"] = list(self.safety_notes)
        return payload
