"""
Review Core
===========
Domain logic for systematic literature reviews:
- Deduplication of imported bibliographic records into duplicate clusters
- Two-phase (title/abstract, full-text) screening state machine
- PRISMA flow counts derived from references, clusters and decisions

Importers, persistence, PDF storage and UI are collaborators that feed
references in and read results out.
"""

__version__ = "1.0.0"

from .errors import (
    ReviewCoreError,
    ScreeningError,
    InvalidTransition,
    MissingExclusionReason,
    ReferenceNotFound,
    CustomFieldError
)
from .models import (
    Reference,
    DuplicateCluster,
    ScreeningDecision,
    ScreeningPhase,
    ScreeningVerdict,
    PrismaFlowCounts
)
from .core import (
    Deduplicator,
    ScreeningStateMachine,
    compute_flow_counts
)

__all__ = [
    'ReviewCoreError',
    'ScreeningError',
    'InvalidTransition',
    'MissingExclusionReason',
    'ReferenceNotFound',
    'CustomFieldError',
    'Reference',
    'DuplicateCluster',
    'ScreeningDecision',
    'ScreeningPhase',
    'ScreeningVerdict',
    'PrismaFlowCounts',
    'Deduplicator',
    'ScreeningStateMachine',
    'compute_flow_counts'
]
