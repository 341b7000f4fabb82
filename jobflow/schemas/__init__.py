"""
Schemas package.

Import all schemas here for easy access.
"""

from jobflow.schemas.actor import Actor
from jobflow.schemas.audit import AuditEntryRead, EnhancedTimeline, StageMetric, TimelineEntry
from jobflow.schemas.conditions import (
    JobTypeExclusion,
    JobTypeIn,
    NumericThreshold,
    PriorResponseEquals,
)
from jobflow.schemas.job import (
    AdvanceRequest,
    JobCreate,
    JobRead,
    OverrideRequest,
    QuestionFlowState,
    TransitionOutcome,
)
from jobflow.schemas.question import QuestionCreate, QuestionRead, QuestionReorder, QuestionUpdate
from jobflow.schemas.response import ResponseRead, ResponseSubmit, SubmissionResult
from jobflow.schemas.stage import (
    ConfigurationReport,
    CopyGlobalRequest,
    CopyGlobalResult,
    EffectiveStagesRead,
    StageBulkUpdate,
    StageCreate,
    StageDeletionResult,
    StageRead,
    StageUpdate,
    StageWithConfigRead,
)
from jobflow.schemas.transition import TransitionCreate, TransitionRead, TransitionUpdate

__all__ = [
    "Actor",
    "AdvanceRequest",
    "AuditEntryRead",
    "ConfigurationReport",
    "CopyGlobalRequest",
    "CopyGlobalResult",
    "EffectiveStagesRead",
    "EnhancedTimeline",
    "JobCreate",
    "JobRead",
    "JobTypeExclusion",
    "JobTypeIn",
    "NumericThreshold",
    "OverrideRequest",
    "PriorResponseEquals",
    "QuestionCreate",
    "QuestionFlowState",
    "QuestionRead",
    "QuestionReorder",
    "QuestionUpdate",
    "ResponseRead",
    "ResponseSubmit",
    "StageBulkUpdate",
    "StageCreate",
    "StageDeletionResult",
    "StageMetric",
    "StageRead",
    "StageUpdate",
    "StageWithConfigRead",
    "SubmissionResult",
    "TimelineEntry",
    "TransitionCreate",
    "TransitionOutcome",
    "TransitionRead",
    "TransitionUpdate",
]
