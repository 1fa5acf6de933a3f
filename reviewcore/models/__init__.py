"""
Models package initialization

Exports domain snapshots, enums and typed custom fields
"""

from .domain import (
    Reference,
    DuplicateCluster,
    ScreeningDecision,
    ScreeningStats,
    PrismaFlowCounts,
    IdentificationCounts,
    ScreeningCounts,
    EligibilityCounts,
    InclusionCounts,
    ScreeningPhase,
    ScreeningVerdict,
    DuplicateReason,
    PASSING_VERDICTS
)

from .custom_fields import (
    ColumnType,
    FieldColumn,
    FieldSchema,
    FieldValue,
    coerce_field_value
)

__all__ = [
    # Entities
    'Reference',
    'DuplicateCluster',
    'ScreeningDecision',
    'ScreeningStats',

    # PRISMA
    'PrismaFlowCounts',
    'IdentificationCounts',
    'ScreeningCounts',
    'EligibilityCounts',
    'InclusionCounts',

    # Enums
    'ScreeningPhase',
    'ScreeningVerdict',
    'DuplicateReason',
    'PASSING_VERDICTS',

    # Custom fields
    'ColumnType',
    'FieldColumn',
    'FieldSchema',
    'FieldValue',
    'coerce_field_value'
]
