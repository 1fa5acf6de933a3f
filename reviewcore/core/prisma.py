"""
PRISMA Flow Aggregator

Derives PRISMA flow counts from references, duplicate clusters and
screening decisions. Counts are never stored; every call recomputes them
from the current state.

Stages:
- Identification: records identified, duplicates removed, records after duplicates
- Screening: title/abstract screened and excluded
- Eligibility: full texts assessed and excluded
- Inclusion: studies included
"""

from collections import Counter
from typing import Dict, Iterable, Tuple
import logging

from ..models.domain import (
    PASSING_VERDICTS,
    DuplicateCluster,
    EligibilityCounts,
    IdentificationCounts,
    InclusionCounts,
    PrismaFlowCounts,
    Reference,
    ScreeningCounts,
    ScreeningDecision,
    ScreeningPhase,
    ScreeningVerdict
)

logger = logging.getLogger(__name__)

VerdictIndex = Dict[Tuple[int, ScreeningPhase], ScreeningVerdict]


def _index_verdicts(decisions: Iterable[ScreeningDecision]) -> VerdictIndex:
    return {(d.reference_id, d.phase): d.verdict for d in decisions}


def _check_partition(references: Iterable[Reference], clusters: Iterable[DuplicateCluster]) -> None:
    reference_ids = [ref.id for ref in references]
    clustered = [ref_id for cluster in clusters for ref_id in cluster.reference_ids]

    if len(clustered) != len(set(clustered)):
        raise ValueError("Duplicate clusters overlap")
    if set(clustered) != set(reference_ids):
        raise ValueError(
            f"Duplicate clusters cover {len(set(clustered))} ids but {len(set(reference_ids))} references were given"
        )


def compute_flow_counts(
    references: Iterable[Reference],
    clusters: Iterable[DuplicateCluster],
    decisions: Iterable[ScreeningDecision]
) -> PrismaFlowCounts:
    """
    Compute PRISMA flow counts

    Only cluster primaries are counted past identification. A full-text
    verdict counts only while the title/abstract verdict is Include or
    Maybe, which keeps every later stage bounded by the stage before it.

    Args:
        references: All imported references (before deduplication)
        clusters: Duplicate clusters partitioning the references
        decisions: Screening decisions for the references

    Returns:
        PrismaFlowCounts snapshot

    Raises:
        ValueError: clusters do not partition the references
    """
    references = list(references)
    clusters = list(clusters)
    _check_partition(references, clusters)

    verdicts = _index_verdicts(decisions)
    primaries = sorted(cluster.primary_id for cluster in clusters)

    records_identified = len(references)
    duplicates_removed = sum(cluster.size - 1 for cluster in clusters)

    records_screened = 0
    records_excluded = 0
    full_text_assessed = 0
    full_text_excluded = 0
    studies_included = 0

    for ref_id in primaries:
        title_verdict = verdicts.get((ref_id, ScreeningPhase.TITLE_ABSTRACT), ScreeningVerdict.PENDING)
        if title_verdict == ScreeningVerdict.PENDING:
            continue

        records_screened += 1
        if title_verdict == ScreeningVerdict.EXCLUDE:
            records_excluded += 1
        if title_verdict not in PASSING_VERDICTS:
            continue

        full_text_verdict = verdicts.get((ref_id, ScreeningPhase.FULL_TEXT), ScreeningVerdict.PENDING)
        if full_text_verdict == ScreeningVerdict.PENDING:
            continue

        full_text_assessed += 1
        if full_text_verdict == ScreeningVerdict.EXCLUDE:
            full_text_excluded += 1
        elif full_text_verdict == ScreeningVerdict.INCLUDE:
            studies_included += 1

    counts = PrismaFlowCounts(
        identification=IdentificationCounts(
            records_identified=records_identified,
            duplicates_removed=duplicates_removed,
            records_after_duplicates=len(primaries)
        ),
        screening=ScreeningCounts(
            records_screened=records_screened,
            records_excluded=records_excluded
        ),
        eligibility=EligibilityCounts(
            full_text_assessed=full_text_assessed,
            full_text_excluded=full_text_excluded
        ),
        inclusion=InclusionCounts(
            studies_included=studies_included
        )
    )

    logger.debug(f"PRISMA flow: {counts.to_dict()}")
    return counts


def exclusion_reasons(
    clusters: Iterable[DuplicateCluster],
    decisions: Iterable[ScreeningDecision],
    phase: ScreeningPhase
) -> Dict[str, int]:
    """
    Tally exclusion reasons among primaries for one phase

    Reasons are trimmed; identical reasons differing only in case are
    merged under their first spelling.
    """
    primaries = {cluster.primary_id for cluster in clusters}
    phase = ScreeningPhase(phase)

    tally: Counter = Counter()
    spelling: Dict[str, str] = {}
    for d in sorted(decisions, key=lambda d: d.reference_id):
        if d.phase != phase or d.verdict != ScreeningVerdict.EXCLUDE or d.reference_id not in primaries:
            continue
        reason = (d.exclusion_reason or "").strip()
        label = spelling.setdefault(reason.lower(), reason)
        tally[label] += 1

    return dict(tally.most_common())


class PrismaReporter:
    """
    Computes PRISMA counts for a project from its collaborators

    Deduplication runs fresh on every call, so the report always reflects
    the current reference set.
    """

    def __init__(self, references, decisions, deduplicator):
        self.references = references
        self.decisions = decisions
        self.deduplicator = deduplicator

    def flow_counts(self, project_id: int) -> PrismaFlowCounts:
        references = self.references.list_references(project_id)
        clusters = self.deduplicator.deduplicate(references)
        decisions = self.decisions.list_for_references([ref.id for ref in references])

        logger.info(f"Computing PRISMA flow for project {project_id} ({len(references)} references)")
        return compute_flow_counts(references, clusters, decisions)
