"""
Capability Interfaces

Collaborators injected into the core. The core only relies on these
read/upsert contracts and never decides how records are persisted.
"""

from datetime import datetime
from typing import Iterable, List, Optional, Protocol

from ..models.domain import Reference, ScreeningDecision, ScreeningPhase


class ReferenceSource(Protocol):
    """Read-only access to imported references"""

    def get_reference(self, reference_id: int) -> Optional[Reference]:
        ...

    def list_references(self, project_id: int) -> List[Reference]:
        ...


class DecisionStore(Protocol):
    """Read and upsert screening decisions keyed by (reference_id, phase)"""

    def get(self, reference_id: int, phase: ScreeningPhase) -> Optional[ScreeningDecision]:
        ...

    def list_for_references(
        self,
        reference_ids: Iterable[int],
        phase: Optional[ScreeningPhase] = None
    ) -> List[ScreeningDecision]:
        ...

    def upsert(self, decision: ScreeningDecision) -> ScreeningDecision:
        ...


class Clock(Protocol):
    """Source of the current time for stamping decisions"""

    def now(self) -> datetime:
        ...
