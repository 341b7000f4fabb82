"""
Domain enums for the stage progression engine.

Shared by the SQLAlchemy models and the pydantic schemas. Values are stored
as plain strings so the database stays readable.
"""

import enum


class JobStatus(str, enum.Enum):
    """Coarse status each stage maps to for simplified reporting."""

    PLANNING = "planning"
    ACTIVE = "active"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @classmethod
    def terminal_statuses(cls) -> frozenset["JobStatus"]:
        return frozenset({cls.COMPLETED, cls.CANCELLED})


class StageType(str, enum.Enum):
    STANDARD = "standard"
    MILESTONE = "milestone"
    APPROVAL = "approval"


class ResponseType(str, enum.Enum):
    YES_NO = "yes_no"
    NUMBER = "number"
    DATE = "date"
    TEXT = "text"
    FILE_UPLOAD = "file_upload"
    MULTIPLE_CHOICE = "multiple_choice"


class ResponseSource(str, enum.Enum):
    """Where an answer came from. SYSTEM marks persisted skips."""

    WEB_APP = "web_app"
    MOBILE_APP = "mobile_app"
    SMS = "sms"
    EMAIL = "email"
    CLIENT_PORTAL = "client_portal"
    SYSTEM = "system"


class TriggerSource(str, enum.Enum):
    """What caused a realized stage change."""

    QUESTION_RESPONSE = "question_response"
    MANUAL = "manual"
    ADMIN_OVERRIDE = "admin_override"
    SYSTEM_AUTO = "system_auto"
