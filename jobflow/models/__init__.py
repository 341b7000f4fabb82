"""
Models package.

Import all models here so they are registered with SQLAlchemy.
This file also makes it easy to import models from one place.
"""

from jobflow.models.stage import JobStage
from jobflow.models.question import StageQuestion
from jobflow.models.transition import StageTransition
from jobflow.models.job import Job
from jobflow.models.response import JobResponse
from jobflow.models.audit import StageAuditEntry

# Export all models
__all__ = [
    "JobStage",
    "StageQuestion",
    "StageTransition",
    "Job",
    "JobResponse",
    "StageAuditEntry",
]
