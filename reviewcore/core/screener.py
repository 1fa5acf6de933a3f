"""
Screening State Machine - Two-phase reviewer decisions

Records and validates reviewer verdicts per reference per phase.

States per (reference, phase):
    Pending -> Include | Exclude | Maybe

Rules:
- A recorded verdict can be overwritten within its phase (upsert) but never
  set back to Pending
- Full-text decisions require a title/abstract verdict of Include or Maybe
- Exclude requires a non-empty exclusion reason
- Every successful write stamps decided_at from the injected clock

A failed call raises before anything is written. The machine does no
locking; the host serializes writes to the same (reference, phase).
"""

from dataclasses import replace
from typing import Iterable, List, Optional, Union
import logging

from ..errors import InvalidTransition, MissingExclusionReason, ReferenceNotFound
from ..models.domain import (
    PASSING_VERDICTS,
    Reference,
    ScreeningDecision,
    ScreeningPhase,
    ScreeningStats,
    ScreeningVerdict
)
from ..stores.base import Clock, DecisionStore, ReferenceSource

logger = logging.getLogger(__name__)


class ScreeningStateMachine:
    """
    Validates and records screening verdicts

    Usage:
        machine = ScreeningStateMachine(reference_source, decision_store, clock)
        machine.record_decision(12, ScreeningPhase.TITLE_ABSTRACT, ScreeningVerdict.INCLUDE)
    """

    def __init__(self, references: ReferenceSource, decisions: DecisionStore, clock: Clock):
        self.references = references
        self.decisions = decisions
        self.clock = clock

    def record_decision(
        self,
        reference_id: int,
        phase: Union[ScreeningPhase, str],
        verdict: Union[ScreeningVerdict, str],
        exclusion_reason: Optional[str] = None,
        notes: Optional[str] = None
    ) -> ScreeningDecision:
        """
        Record a reviewer verdict, creating or overwriting the phase's record

        Args:
            reference_id: Reference being screened
            phase: Screening phase
            verdict: Include, Exclude or Maybe
            exclusion_reason: Required for Exclude, dropped otherwise
            notes: Free-text reviewer notes

        Returns:
            The stored decision

        Raises:
            ReferenceNotFound: Unknown reference id
            InvalidTransition: Verdict Pending, or full-text decision before
                the title/abstract phase passed
            MissingExclusionReason: Exclude without a reason
        """
        phase = ScreeningPhase(phase)
        verdict = ScreeningVerdict(verdict)

        if self.references.get_reference(reference_id) is None:
            raise ReferenceNotFound(f"Reference {reference_id} not found", reference_id, phase)

        if verdict == ScreeningVerdict.PENDING:
            raise InvalidTransition(
                f"Cannot set reference {reference_id} back to pending in {phase.value}",
                reference_id, phase
            )

        if phase == ScreeningPhase.FULL_TEXT:
            self._require_title_abstract_pass(reference_id)

        reason = (exclusion_reason or "").strip()
        if verdict == ScreeningVerdict.EXCLUDE and not reason:
            raise MissingExclusionReason(
                f"Excluding reference {reference_id} in {phase.value} requires a reason",
                reference_id, phase
            )

        existing = self.decisions.get(reference_id, phase)
        fields = dict(
            verdict=verdict,
            exclusion_reason=reason if verdict == ScreeningVerdict.EXCLUDE else None,
            notes=notes,
            decided_at=self.clock.now()
        )
        if existing is None:
            decision = ScreeningDecision(reference_id=reference_id, phase=phase, **fields)
        else:
            decision = replace(existing, **fields)

        stored = self.decisions.upsert(decision)
        logger.info(
            f"Recorded {verdict.value} for reference {reference_id} ({phase.value})"
            + (" [overwrite]" if existing is not None and existing.is_decided else "")
        )
        return stored

    def _require_title_abstract_pass(self, reference_id: int) -> None:
        title_decision = self.decisions.get(reference_id, ScreeningPhase.TITLE_ABSTRACT)
        current = title_decision.verdict if title_decision else None

        if current not in PASSING_VERDICTS:
            state = current.value if current else "not screened"
            raise InvalidTransition(
                f"Reference {reference_id} cannot enter full-text screening "
                f"(title/abstract verdict: {state})",
                reference_id, ScreeningPhase.FULL_TEXT
            )

    def get_decision(self, reference_id: int, phase: Union[ScreeningPhase, str]) -> Optional[ScreeningDecision]:
        return self.decisions.get(reference_id, ScreeningPhase(phase))

    def initialize_screening(
        self,
        project_id: int,
        phase: Union[ScreeningPhase, str],
        reference_ids: Optional[Iterable[int]] = None
    ) -> int:
        """
        Create Pending records for references entering a phase

        Full-text screening only admits references whose title/abstract
        verdict is Include or Maybe. Existing records are left untouched.

        Args:
            project_id: Project whose references enter the phase
            phase: Screening phase
            reference_ids: Optional subset, e.g. the primaries after deduplication

        Returns:
            Number of Pending records created
        """
        phase = ScreeningPhase(phase)
        references = self._project_references(project_id, reference_ids)

        created = 0
        for ref in references:
            if self.decisions.get(ref.id, phase) is not None:
                continue

            if phase == ScreeningPhase.FULL_TEXT:
                title_decision = self.decisions.get(ref.id, ScreeningPhase.TITLE_ABSTRACT)
                if title_decision is None or title_decision.verdict not in PASSING_VERDICTS:
                    continue

            self.decisions.upsert(ScreeningDecision(reference_id=ref.id, phase=phase))
            created += 1

        logger.info(f"Initialized {created} pending {phase.value} decisions for project {project_id}")
        return created

    def screening_queue(self, project_id: int, phase: Union[ScreeningPhase, str]) -> List[Reference]:
        """References with a Pending record in the phase, ordered by id"""
        return self.references_by_verdict(project_id, phase, ScreeningVerdict.PENDING)

    def next_for_screening(self, project_id: int, phase: Union[ScreeningPhase, str]) -> Optional[Reference]:
        queue = self.screening_queue(project_id, phase)
        return queue[0] if queue else None

    def references_by_verdict(
        self,
        project_id: int,
        phase: Union[ScreeningPhase, str],
        verdict: Union[ScreeningVerdict, str]
    ) -> List[Reference]:
        phase = ScreeningPhase(phase)
        verdict = ScreeningVerdict(verdict)
        by_id = {ref.id: ref for ref in self.references.list_references(project_id)}

        return [
            by_id[d.reference_id]
            for d in self.decisions.list_for_references(by_id, phase)
            if d.verdict == verdict
        ]

    def get_stats(self, project_id: int, phase: Union[ScreeningPhase, str]) -> ScreeningStats:
        """Verdict counts over the phase's records for a project"""
        phase = ScreeningPhase(phase)
        ids = [ref.id for ref in self.references.list_references(project_id)]
        decisions = self.decisions.list_for_references(ids, phase)

        return ScreeningStats(
            total=len(decisions),
            pending=sum(1 for d in decisions if d.verdict == ScreeningVerdict.PENDING),
            included=sum(1 for d in decisions if d.verdict == ScreeningVerdict.INCLUDE),
            excluded=sum(1 for d in decisions if d.verdict == ScreeningVerdict.EXCLUDE),
            maybe=sum(1 for d in decisions if d.verdict == ScreeningVerdict.MAYBE)
        )

    def _project_references(self, project_id: int, reference_ids: Optional[Iterable[int]]) -> List[Reference]:
        references = self.references.list_references(project_id)
        if reference_ids is None:
            return references
        wanted = set(reference_ids)
        return [ref for ref in references if ref.id in wanted]
