"""
Domain Models - Immutable snapshots used by the review core

Defines:
- Reference (imported bibliographic record)
- DuplicateCluster (references judged to be the same work)
- ScreeningDecision (verdict per reference per phase)
- PrismaFlowCounts (derived PRISMA report, never persisted)

Entities refer to each other by id only; traversal goes through the
lookup collaborators in reviewcore.stores.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Optional, Tuple
import enum

from .custom_fields import FieldSchema, FieldValue, coerce_field_value


# ===== Enums =====

class ScreeningPhase(str, enum.Enum):
    """Screening phase enumeration"""
    TITLE_ABSTRACT = "title_abstract"
    FULL_TEXT = "full_text"


class ScreeningVerdict(str, enum.Enum):
    """Screening verdict enumeration"""
    PENDING = "pending"
    INCLUDE = "include"
    EXCLUDE = "exclude"
    MAYBE = "maybe"


# Title/abstract verdicts that let a reference enter full-text screening
PASSING_VERDICTS = frozenset({ScreeningVerdict.INCLUDE, ScreeningVerdict.MAYBE})


class DuplicateReason(str, enum.Enum):
    """Why two references were linked"""
    DOI = "doi"
    PMID = "pmid"
    TITLE = "title"


# ===== Models =====

@dataclass(frozen=True)
class Reference:
    """
    Project-scoped bibliographic record

    Created by an import collaborator and never mutated by the core.
    Only title is required; a reference without year or authors is valid.
    """
    id: int
    project_id: int
    title: str
    authors: Tuple[str, ...] = ()
    year: Optional[int] = None
    doi: Optional[str] = None
    pmid: Optional[str] = None
    imported_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    abstract: Optional[str] = None
    journal: Optional[str] = None
    source: Optional[str] = None  # database label, e.g. pubmed, scopus
    custom_fields: Dict[str, FieldValue] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self):
        if not isinstance(self.authors, tuple):
            object.__setattr__(self, "authors", tuple(self.authors or ()))
        object.__setattr__(self, "custom_fields", {
            name: coerce_field_value(name, value)
            for name, value in (self.custom_fields or {}).items()
        })

    def with_custom_fields(self, schema: FieldSchema, raw: Dict[str, Any]) -> "Reference":
        """
        Copy of this reference with raw custom values validated by a schema

        Raises:
            CustomFieldError: a value does not fit its declared column
        """
        return replace(self, custom_fields=schema.validate_values(raw))

    def __repr__(self):
        return f"<Reference(id={self.id}, title={self.title[:40]!r}, year={self.year})>"


@dataclass(frozen=True)
class DuplicateCluster:
    """Set of reference ids representing one underlying work"""
    reference_ids: FrozenSet[int]
    primary_id: int

    def __post_init__(self):
        if not isinstance(self.reference_ids, frozenset):
            object.__setattr__(self, "reference_ids", frozenset(self.reference_ids))
        if self.primary_id not in self.reference_ids:
            raise ValueError(
                f"Primary {self.primary_id} is not a member of cluster {sorted(self.reference_ids)}"
            )

    @property
    def size(self) -> int:
        return len(self.reference_ids)

    @property
    def duplicate_ids(self) -> Tuple[int, ...]:
        """Member ids other than the primary, ascending"""
        return tuple(sorted(self.reference_ids - {self.primary_id}))


@dataclass(frozen=True)
class ScreeningDecision:
    """
    Reviewer verdict for one reference in one phase

    Keyed by (reference_id, phase). decided_at stays None while the
    verdict is Pending.
    """
    reference_id: int
    phase: ScreeningPhase
    verdict: ScreeningVerdict = ScreeningVerdict.PENDING
    exclusion_reason: Optional[str] = None
    notes: Optional[str] = None
    decided_at: Optional[datetime] = None

    @property
    def key(self) -> Tuple[int, ScreeningPhase]:
        return (self.reference_id, self.phase)

    @property
    def is_decided(self) -> bool:
        return self.verdict != ScreeningVerdict.PENDING


@dataclass(frozen=True)
class ScreeningStats:
    """Per-phase verdict counts"""
    total: int = 0
    pending: int = 0
    included: int = 0
    excluded: int = 0
    maybe: int = 0


# ===== PRISMA =====

@dataclass(frozen=True)
class IdentificationCounts:
    records_identified: int = 0
    duplicates_removed: int = 0
    records_after_duplicates: int = 0


@dataclass(frozen=True)
class ScreeningCounts:
    records_screened: int = 0
    records_excluded: int = 0


@dataclass(frozen=True)
class EligibilityCounts:
    full_text_assessed: int = 0
    full_text_excluded: int = 0


@dataclass(frozen=True)
class InclusionCounts:
    studies_included: int = 0


@dataclass(frozen=True)
class PrismaFlowCounts:
    """
    PRISMA flow snapshot

    Always recomputed from references, clusters and decisions.
    """
    identification: IdentificationCounts = field(default_factory=IdentificationCounts)
    screening: ScreeningCounts = field(default_factory=ScreeningCounts)
    eligibility: EligibilityCounts = field(default_factory=EligibilityCounts)
    inclusion: InclusionCounts = field(default_factory=InclusionCounts)

    def to_dict(self) -> Dict[str, Dict[str, int]]:
        """Nested stage mapping for reporting collaborators"""
        return {
            'identification': {
                'records_identified': self.identification.records_identified,
                'duplicates_removed': self.identification.duplicates_removed,
                'records_after_duplicates': self.identification.records_after_duplicates,
            },
            'screening': {
                'records_screened': self.screening.records_screened,
                'records_excluded': self.screening.records_excluded,
            },
            'eligibility': {
                'full_text_assessed': self.eligibility.full_text_assessed,
                'full_text_excluded': self.eligibility.full_text_excluded,
            },
            'inclusion': {
                'studies_included': self.inclusion.studies_included,
            },
        }
