"""
In-Memory Stores

Dictionary-backed implementations of the capability interfaces, used by
tests and by hosts that keep a project snapshot in memory.
"""

from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple
import logging

from ..models.domain import Reference, ScreeningDecision, ScreeningPhase

logger = logging.getLogger(__name__)


class InMemoryReferenceSource:
    """Reference lookup over a fixed collection"""

    def __init__(self, references: Iterable[Reference] = ()):
        self._references: Dict[int, Reference] = {}
        self.add(references)

    def add(self, references: Iterable[Reference]) -> None:
        for ref in references:
            if ref.id in self._references:
                raise ValueError(f"Reference {ref.id} already exists")
            self._references[ref.id] = ref

    def get_reference(self, reference_id: int) -> Optional[Reference]:
        return self._references.get(reference_id)

    def list_references(self, project_id: int) -> List[Reference]:
        return sorted(
            (ref for ref in self._references.values() if ref.project_id == project_id),
            key=lambda ref: ref.id
        )

    def __len__(self):
        return len(self._references)


class InMemoryDecisionStore:
    """
    Decision records keyed by (reference_id, phase)

    upsert replaces the existing record for the key, so there is never
    more than one decision per reference per phase.
    """

    def __init__(self, decisions: Iterable[ScreeningDecision] = ()):
        self._decisions: Dict[Tuple[int, ScreeningPhase], ScreeningDecision] = {}
        for decision in decisions:
            self.upsert(decision)

    def get(self, reference_id: int, phase: ScreeningPhase) -> Optional[ScreeningDecision]:
        return self._decisions.get((reference_id, phase))

    def list_for_references(
        self,
        reference_ids: Iterable[int],
        phase: Optional[ScreeningPhase] = None
    ) -> List[ScreeningDecision]:
        wanted = set(reference_ids)
        return sorted(
            (
                d for d in self._decisions.values()
                if d.reference_id in wanted and (phase is None or d.phase == phase)
            ),
            key=lambda d: (d.reference_id, d.phase.value)
        )

    def all(self) -> List[ScreeningDecision]:
        return sorted(self._decisions.values(), key=lambda d: (d.reference_id, d.phase.value))

    def upsert(self, decision: ScreeningDecision) -> ScreeningDecision:
        self._decisions[decision.key] = decision
        logger.debug(f"Upserted decision {decision.key}: {decision.verdict.value}")
        return decision

    def __len__(self):
        return len(self._decisions)


class SystemClock:
    """Current UTC time"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Clock returning a set time; advance() moves it forward"""

    def __init__(self, current: datetime):
        self.current = current

    def now(self) -> datetime:
        return self.current

    def advance(self, delta) -> datetime:
        self.current = self.current + delta
        return self.current
