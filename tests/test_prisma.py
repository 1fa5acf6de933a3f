import pytest

from reviewcore.core import (
    Deduplicator,
    PrismaReporter,
    ScreeningStateMachine,
    compute_flow_counts,
    exclusion_reasons,
)
from reviewcore.models import DuplicateCluster, ScreeningDecision, ScreeningPhase, ScreeningVerdict
from reviewcore.stores import InMemoryReferenceSource

from tests.conftest import PROJECT_ID, make_ref

TA = ScreeningPhase.TITLE_ABSTRACT
FT = ScreeningPhase.FULL_TEXT


def _singletons(references):
    return [DuplicateCluster(frozenset({ref.id}), ref.id) for ref in references]


def _assert_monotone(counts) -> None:
    assert counts.identification.records_after_duplicates == (
        counts.identification.records_identified - counts.identification.duplicates_removed
    )
    assert counts.screening.records_screened <= counts.identification.records_after_duplicates
    assert counts.screening.records_excluded <= counts.screening.records_screened
    assert counts.eligibility.full_text_assessed <= (
        counts.screening.records_screened - counts.screening.records_excluded
    )
    assert counts.eligibility.full_text_excluded <= counts.eligibility.full_text_assessed
    assert counts.inclusion.studies_included <= (
        counts.eligibility.full_text_assessed - counts.eligibility.full_text_excluded
    )


# --- Identification ---

def test_empty_project_all_zero() -> None:
    counts = compute_flow_counts([], [], [])

    assert counts.to_dict() == {
        'identification': {'records_identified': 0, 'duplicates_removed': 0, 'records_after_duplicates': 0},
        'screening': {'records_screened': 0, 'records_excluded': 0},
        'eligibility': {'full_text_assessed': 0, 'full_text_excluded': 0},
        'inclusion': {'studies_included': 0},
    }


def test_shared_doi_counts_one_duplicate() -> None:
    references = [make_ref(i, doi="10.1/x" if i in (2, 4) else None) for i in range(1, 6)]
    clusters = Deduplicator().deduplicate(references)

    counts = compute_flow_counts(references, clusters, [])

    assert len(clusters) == 4
    assert counts.identification.records_identified == 5
    assert counts.identification.duplicates_removed == 1
    assert counts.identification.records_after_duplicates == 4
    assert counts.screening.records_screened == 0


# --- Screening through inclusion ---

def test_full_flow_counts() -> None:
    references = [make_ref(i) for i in range(1, 5)]
    decisions = [
        ScreeningDecision(1, TA, ScreeningVerdict.EXCLUDE, exclusion_reason="Wrong population"),
        ScreeningDecision(2, TA, ScreeningVerdict.EXCLUDE, exclusion_reason="Not an RCT"),
        ScreeningDecision(3, TA, ScreeningVerdict.INCLUDE),
        ScreeningDecision(4, TA, ScreeningVerdict.MAYBE),
        ScreeningDecision(3, FT, ScreeningVerdict.INCLUDE),
        ScreeningDecision(4, FT, ScreeningVerdict.EXCLUDE, exclusion_reason="No outcome data"),
    ]

    counts = compute_flow_counts(references, _singletons(references), decisions)

    assert counts.screening.records_screened == 4
    assert counts.screening.records_excluded == 2
    assert counts.eligibility.full_text_assessed == 2
    assert counts.eligibility.full_text_excluded == 1
    assert counts.inclusion.studies_included == 1
    _assert_monotone(counts)


def test_pending_title_decisions_not_screened() -> None:
    references = [make_ref(i) for i in range(1, 4)]
    decisions = [
        ScreeningDecision(1, TA),
        ScreeningDecision(2, TA, ScreeningVerdict.INCLUDE),
    ]

    counts = compute_flow_counts(references, _singletons(references), decisions)

    assert counts.screening.records_screened == 1
    assert counts.eligibility.full_text_assessed == 0


def test_full_text_maybe_is_assessed_but_not_included() -> None:
    references = [make_ref(1)]
    decisions = [
        ScreeningDecision(1, TA, ScreeningVerdict.INCLUDE),
        ScreeningDecision(1, FT, ScreeningVerdict.MAYBE),
    ]

    counts = compute_flow_counts(references, _singletons(references), decisions)

    assert counts.eligibility.full_text_assessed == 1
    assert counts.eligibility.full_text_excluded == 0
    assert counts.inclusion.studies_included == 0


def test_full_text_ignored_after_title_changed_to_exclude() -> None:
    """A title verdict later flipped to Exclude drops the full-text verdict from the flow."""
    references = [make_ref(1), make_ref(2)]
    decisions = [
        ScreeningDecision(1, TA, ScreeningVerdict.EXCLUDE, exclusion_reason="Reconsidered"),
        ScreeningDecision(1, FT, ScreeningVerdict.INCLUDE),
        ScreeningDecision(2, TA, ScreeningVerdict.INCLUDE),
        ScreeningDecision(2, FT, ScreeningVerdict.INCLUDE),
    ]

    counts = compute_flow_counts(references, _singletons(references), decisions)

    assert counts.screening.records_excluded == 1
    assert counts.eligibility.full_text_assessed == 1
    assert counts.inclusion.studies_included == 1
    _assert_monotone(counts)


def test_only_primaries_counted_past_identification() -> None:
    references = [make_ref(1, doi="10.1/dup"), make_ref(2, doi="10.1/dup"), make_ref(3)]
    clusters = [DuplicateCluster(frozenset({1, 2}), 1), DuplicateCluster(frozenset({3}), 3)]
    decisions = [
        ScreeningDecision(1, TA, ScreeningVerdict.INCLUDE),
        ScreeningDecision(2, TA, ScreeningVerdict.EXCLUDE, exclusion_reason="Duplicate"),
        ScreeningDecision(3, TA, ScreeningVerdict.INCLUDE),
    ]

    counts = compute_flow_counts(references, clusters, decisions)

    assert counts.identification.duplicates_removed == 1
    assert counts.screening.records_screened == 2
    assert counts.screening.records_excluded == 0
    _assert_monotone(counts)


# --- Input validation ---

def test_clusters_must_cover_every_reference() -> None:
    references = [make_ref(1), make_ref(2)]

    with pytest.raises(ValueError):
        compute_flow_counts(references, [DuplicateCluster(frozenset({1}), 1)], [])


def test_clusters_must_not_overlap() -> None:
    references = [make_ref(1), make_ref(2)]
    clusters = [DuplicateCluster(frozenset({1, 2}), 1), DuplicateCluster(frozenset({2}), 2)]

    with pytest.raises(ValueError, match="overlap"):
        compute_flow_counts(references, clusters, [])


# --- Exclusion reasons ---

def test_exclusion_reasons_tally() -> None:
    references = [make_ref(i) for i in range(1, 6)]
    decisions = [
        ScreeningDecision(1, TA, ScreeningVerdict.EXCLUDE, exclusion_reason="Wrong population"),
        ScreeningDecision(2, TA, ScreeningVerdict.EXCLUDE, exclusion_reason="Not an RCT"),
        ScreeningDecision(3, TA, ScreeningVerdict.EXCLUDE, exclusion_reason=" wrong population"),
        ScreeningDecision(4, TA, ScreeningVerdict.INCLUDE),
        ScreeningDecision(4, FT, ScreeningVerdict.EXCLUDE, exclusion_reason="No full text"),
    ]

    reasons = exclusion_reasons(_singletons(references), decisions, TA)

    assert reasons == {"Wrong population": 2, "Not an RCT": 1}
    assert list(reasons) == ["Wrong population", "Not an RCT"]


def test_exclusion_reasons_skip_non_primaries() -> None:
    clusters = [DuplicateCluster(frozenset({1, 2}), 1)]
    decisions = [ScreeningDecision(2, TA, ScreeningVerdict.EXCLUDE, exclusion_reason="Off topic")]

    assert exclusion_reasons(clusters, decisions, TA) == {}


# --- Reporter ---

def test_reporter_recomputes_from_current_state(decision_store, clock) -> None:
    source = InMemoryReferenceSource([make_ref(i, doi="10.1/x" if i in (2, 4) else None) for i in range(1, 6)])
    reporter = PrismaReporter(source, decision_store, Deduplicator())

    before = reporter.flow_counts(PROJECT_ID)
    decision_store.upsert(ScreeningDecision(2, TA, ScreeningVerdict.INCLUDE, decided_at=clock.now()))
    after = reporter.flow_counts(PROJECT_ID)

    assert before.screening.records_screened == 0
    assert after.identification.records_after_duplicates == 4
    assert after.screening.records_screened == 1
    _assert_monotone(after)


def test_reporter_ignores_other_projects(decision_store) -> None:
    source = InMemoryReferenceSource([make_ref(1), make_ref(2, project_id=PROJECT_ID + 1)])
    reporter = PrismaReporter(source, decision_store, Deduplicator())

    counts = reporter.flow_counts(PROJECT_ID)

    assert counts.identification.records_identified == 1


def test_recorded_decisions_flow_into_counts(decision_store, clock) -> None:
    source = InMemoryReferenceSource([make_ref(i) for i in range(1, 5)])
    machine = ScreeningStateMachine(source, decision_store, clock)
    dedup = Deduplicator()
    reporter = PrismaReporter(source, decision_store, dedup)

    primaries = [c.primary_id for c in dedup.deduplicate(source.list_references(PROJECT_ID))]
    assert machine.initialize_screening(PROJECT_ID, TA, reference_ids=primaries) == 4

    machine.record_decision(1, TA, ScreeningVerdict.EXCLUDE, exclusion_reason="Wrong population")
    machine.record_decision(2, TA, ScreeningVerdict.EXCLUDE, exclusion_reason="Not an RCT")
    machine.record_decision(3, TA, ScreeningVerdict.INCLUDE)
    machine.record_decision(4, TA, ScreeningVerdict.MAYBE)
    assert machine.initialize_screening(PROJECT_ID, FT) == 2
    machine.record_decision(3, FT, ScreeningVerdict.INCLUDE)
    machine.record_decision(4, FT, ScreeningVerdict.EXCLUDE, exclusion_reason="No outcome data")

    counts = reporter.flow_counts(PROJECT_ID)

    assert counts.identification.records_after_duplicates == 4
    assert counts.screening.records_screened == 4
    assert counts.screening.records_excluded == 2
    assert counts.eligibility.full_text_assessed == 2
    assert counts.eligibility.full_text_excluded == 1
    assert counts.inclusion.studies_included == 1
    _assert_monotone(counts)
