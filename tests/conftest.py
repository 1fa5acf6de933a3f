from datetime import datetime, timedelta, timezone

import pytest

from reviewcore.models import Reference
from reviewcore.stores import FixedClock, InMemoryDecisionStore, InMemoryReferenceSource
from reviewcore.core import ScreeningStateMachine

PROJECT_ID = 1
BASE_TIME = datetime(2026, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


# Unrelated titles, so default references never fuzzy-match each other
TOPICS = [
    "Effectiveness of cognitive behavioral therapy for depression",
    "Machine learning approaches to protein folding prediction",
    "Vitamin D supplementation and fracture risk in older adults",
    "Telehealth follow-up after cardiac surgery",
    "School-based physical activity programs for obesity prevention",
    "Antibiotic stewardship interventions in intensive care units",
    "Mindfulness meditation for chronic lower back pain",
    "Air pollution exposure and childhood asthma incidence",
    "Early mobilization after hip replacement",
    "Smartphone applications for smoking cessation",
    "Sodium reduction policies and blood pressure outcomes",
    "Peer support groups for postpartum mental health",
]


def make_ref(ref_id: int, title: str = None, **kwargs) -> Reference:
    """Reference with deterministic import time (BASE_TIME + ref_id minutes)."""
    kwargs.setdefault("imported_at", BASE_TIME + timedelta(minutes=ref_id))
    return Reference(
        id=ref_id,
        project_id=kwargs.pop("project_id", PROJECT_ID),
        title=title if title is not None else TOPICS[(ref_id - 1) % len(TOPICS)],
        **kwargs,
    )


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(BASE_TIME + timedelta(days=1))


@pytest.fixture
def reference_source() -> InMemoryReferenceSource:
    return InMemoryReferenceSource([make_ref(i) for i in range(1, 6)])


@pytest.fixture
def decision_store() -> InMemoryDecisionStore:
    return InMemoryDecisionStore()


@pytest.fixture
def machine(reference_source, decision_store, clock) -> ScreeningStateMachine:
    return ScreeningStateMachine(reference_source, decision_store, clock)
