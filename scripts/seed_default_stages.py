"""
Seed script for the platform default stage set.

Creates the twelve default stages with their questions and transitions.
Companies without their own stages use this set. Does nothing when
platform stages already exist.

Usage:
    python scripts/seed_default_stages.py
"""

import asyncio
import logging
import sys
import uuid
from pathlib import Path

# Add parent directory to path so we can import jobflow modules
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy.ext.asyncio import AsyncSession

from jobflow.core.permissions import Roles
from jobflow.db.session import get_async_session_context
from jobflow.repositories.stage_repository import StageRepository
from jobflow.schemas.actor import Actor
from jobflow.schemas.conditions import NumericThreshold, PriorResponseEquals
from jobflow.schemas.question import QuestionCreate
from jobflow.schemas.stage import StageCreate
from jobflow.schemas.transition import TransitionCreate
from jobflow.services.stage_admin_service import StageAdminService

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = Actor(user_id=uuid.UUID(int=0), role=Roles.SITE_ADMIN)

# (name, description, color, status, stage type, min hours, max hours, questions)
# questions: (text, response type, help text, skip when answer to question N of this stage equals value)
DEFAULT_STAGES = [
    ("1/12 Lead Qualification", "Initial assessment of lead viability and requirements", "#C7D2FE", "planning", "standard", 1, 168, [
        ("Have you qualified this lead as a viable opportunity?", "yes_no", "Consider budget, timeline, and project scope", None),
        ("What is the estimated project value?", "number", "Enter rough estimate in dollars", None),
        ("When does the client want to start?", "date", "Ideal project start date", None),
    ]),
    ("2/12 Initial Client Meeting", "First meeting with client to understand project scope", "#A5B4FC", "planning", "milestone", 2, 72, [
        ("Have you had your initial meeting with the client?", "yes_no", "Face-to-face or video meeting to discuss project", None),
        ("When is the site meeting scheduled?", "date", "Schedule on-site assessment", (1, "Yes")),
        ("Upload meeting notes or photos", "file_upload", "Document important details from the meeting", None),
    ]),
    ("3/12 Quote Preparation", "Prepare detailed project quote and estimates", "#93C5FD", "planning", "standard", 4, 120, [
        ("Have you completed the site assessment?", "yes_no", "Detailed on-site evaluation for accurate quoting", None),
        ("Are all materials and labor costs calculated?", "yes_no", "Ensure comprehensive cost breakdown", None),
        ("What is the total quote amount?", "number", "Final quote amount including all costs and margin", None),
    ]),
    ("4/12 Quote Submission", "Submit quote to client and await response", "#60A5FA", "planning", "milestone", 1, 336, [
        ("Has the quote been submitted to the client?", "yes_no", "Quote formally sent via email or hand-delivered", None),
        ("When do you expect a response?", "date", "Client indicated decision timeline", None),
        ("Upload quote document", "file_upload", "Keep copy of submitted quote", None),
    ]),
    ("5/12 Client Decision", "Client reviews and makes decision on quote", "#38BDF8", "planning", "approval", 1, 168, [
        ("Has the client accepted the quote?", "yes_no", "Client formally agreed to proceed", None),
        ("Are there any requested changes?", "text", "Document any scope or price modifications", (1, "Yes")),
        ("What is the reason for rejection?", "text", "Understand why quote was declined", (1, "Yes")),
    ]),
    ("6/12 Contract & Deposit", "Finalize contract terms and collect deposit", "#34D399", "active", "milestone", 2, 72, [
        ("Has the contract been signed?", "yes_no", "Both parties have signed the agreement", None),
        ("Has the deposit been received?", "yes_no", "Initial payment collected as per contract", None),
        ("Upload signed contract", "file_upload", "Store signed contract documents", None),
    ]),
    ("7/12 Planning & Procurement", "Detailed planning and material procurement", "#4ADE80", "active", "standard", 8, 168, [
        ("Have you ordered materials yet?", "yes_no", "Materials ordered and delivery scheduled", None),
        ("When will materials be delivered?", "date", "Expected delivery date for materials", None),
        ("Is the work schedule finalized?", "yes_no", "Team schedule and project timeline confirmed", None),
    ]),
    ("8/12 On-Site Preparation", "Site preparation and setup for construction", "#FACC15", "active", "standard", 4, 72, [
        ("Is the site prepared for construction?", "yes_no", "Site cleared and ready for work to begin", None),
        ("Are all permits obtained?", "yes_no", "All required building permits and approvals", None),
        ("When will construction begin?", "date", "Actual construction start date", None),
    ]),
    ("9/12 Construction Execution", "Main construction and building phase", "#FB923C", "active", "standard", 40, 2000, [
        ("Are there any variations so far?", "yes_no", "Changes to original scope during construction", None),
        ("What is the current completion percentage?", "number", "Estimated percentage of work completed", None),
        ("Upload progress photos", "file_upload", "Document construction progress", None),
    ]),
    ("10/12 Inspections & Progress Payments", "Quality inspections and progress billing", "#F87171", "active", "milestone", 2, 48, [
        ("Have inspections been passed?", "yes_no", "All required inspections completed successfully", None),
        ("Has progress payment been requested?", "yes_no", "Invoice sent for completed work", None),
        ("Upload inspection certificates", "file_upload", "Store inspection approval documents", None),
    ]),
    ("11/12 Finalisation", "Final touches and completion preparations", "#F472B6", "active", "standard", 8, 120, [
        ("Are all finishing touches complete?", "yes_no", "Final details and cleanup completed", None),
        ("Is the final invoice prepared?", "yes_no", "Final billing ready for client", None),
        ("When is handover scheduled?", "date", "Scheduled date for project handover", None),
    ]),
    ("12/12 Handover & Close", "Final handover and project closure", "#D1D5DB", "completed", "milestone", 1, 24, [
        ("Has the project been handed over to the client?", "yes_no", "Client has accepted completed project", None),
        ("Has final payment been received?", "yes_no", "All payments collected from client", None),
        ("Upload handover documentation", "file_upload", "Warranties, manuals, and completion certificates", None),
    ]),
]

# (from stage, to stage, trigger question of the from stage, trigger response, threshold, automatic)
DEFAULT_TRANSITIONS = [
    (1, 2, 1, "Yes", None, True),
    (1, 12, 1, "No", None, False),
    (2, 3, 1, "Yes", None, True),
    (3, 4, 2, "Yes", None, True),
    (4, 5, 1, "Yes", None, True),
    (5, 6, 1, "Yes", None, True),
    (5, 3, 1, "No", None, False),
    (6, 7, 2, "Yes", None, True),
    (7, 8, 3, "Yes", None, True),
    (8, 9, 2, "Yes", None, True),
    (9, 10, 2, None, (">=", 90), True),
    (10, 11, 1, "Yes", None, True),
    (11, 12, 2, "Yes", None, True),
]


async def seed_default_stages(db: AsyncSession, actor: Actor = SYSTEM_ACTOR) -> bool:
    """Create the platform default stage set. Returns False if one already exists."""
    if await StageRepository(db).count_for_scope(None):
        logger.info("Platform stages already exist, skipping seed")
        return False

    service = StageAdminService(db)
    stage_ids = {}
    question_ids = {}

    for position, (name, description, color, status, stage_type, min_hours, max_hours, questions) in enumerate(
        DEFAULT_STAGES, start=1
    ):
        stage = await service.create_stage(
            StageCreate(
                name=name,
                description=description,
                color=color,
                sequence_order=position,
                maps_to_status=status,
                stage_type=stage_type,
                min_duration_hours=min_hours,
                max_duration_hours=max_hours,
                is_initial=position == 1,
            ),
            actor,
        )
        stage_ids[position] = stage.id

        for order, (text, response_type, help_text, skip) in enumerate(questions, start=1):
            skip_conditions = []
            if skip is not None:
                skip_conditions.append(PriorResponseEquals(question_id=question_ids[(position, skip[0])], value=skip[1]))
            question = await service.add_question(
                stage.id,
                QuestionCreate(
                    question_text=text,
                    response_type=response_type,
                    sequence_order=order,
                    help_text=help_text,
                    skip_conditions=skip_conditions,
                ),
                actor,
            )
            question_ids[(position, order)] = question.id

    for order, (source, target, question, trigger_response, threshold, automatic) in enumerate(DEFAULT_TRANSITIONS):
        conditions = []
        if threshold is not None:
            conditions.append(NumericThreshold(operator=threshold[0], threshold=threshold[1]))
        await service.create_transition(
            TransitionCreate(
                from_stage_id=stage_ids[source],
                to_stage_id=stage_ids[target],
                trigger_question_id=question_ids[(source, question)],
                trigger_response=trigger_response,
                conditions=conditions,
                is_automatic=automatic,
                sequence_order=order,
            ),
            actor,
        )

    logger.info("Seeded %s platform stages and %s transitions", len(stage_ids), len(DEFAULT_TRANSITIONS))
    return True


async def main():
    async with get_async_session_context() as db:
        created = await seed_default_stages(db)
    print("✓ Seeded platform default stages" if created else "✓ Platform stages already present")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
