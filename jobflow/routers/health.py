"""
Health check router.

Reports database reachability, whether jobs can be created on the platform
default workflow, and how the applied migration compares with the newest
one shipped with the code.
"""

import logging
from pathlib import Path
from typing import Optional

from alembic.config import Config
from alembic.script import ScriptDirectory
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from jobflow.core.dependencies import get_db
from jobflow.errors import ConfigurationError
from jobflow.services.stage_config_service import StageConfigService

logger = logging.getLogger(__name__)

router = APIRouter()


def _load_migration_head() -> Optional[str]:
    project_root = Path(__file__).resolve().parents[2]
    cfg_path = project_root / "alembic.ini"
    script_location = project_root / "alembic"
    if not cfg_path.exists() or not script_location.exists():
        return None

    config = Config(str(cfg_path))
    config.set_main_option("script_location", str(script_location))
    return ScriptDirectory.from_config(config).get_current_head()


async def _platform_stage_count(db: AsyncSession) -> Optional[int]:
    """Number of platform stages, or None when there is no usable default workflow."""
    service = StageConfigService(db)
    try:
        stages = await service.resolve_stages(None)
        await service.initial_stage(None)
    except ConfigurationError:
        return None
    return len(stages)


@router.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    """Database, default workflow and migration checks."""

    db_ok = False
    platform_stages: Optional[int] = None
    migration_current: Optional[str] = None
    migration_head: Optional[str] = None

    try:
        await db.execute(text("SELECT 1"))
        db_ok = True
    except SQLAlchemyError:
        logger.exception("Health check: database unreachable")

    if db_ok:
        platform_stages = await _platform_stage_count(db)
        try:
            version_result = await db.execute(text("SELECT version_num FROM alembic_version"))
            migration_current = version_result.scalar_one_or_none()
        except SQLAlchemyError:
            migration_current = None

    try:
        migration_head = _load_migration_head()
    except Exception:
        # A broken migrations directory must not take the endpoint down
        logger.warning("Health check: could not read migration head", exc_info=True)

    return {
        "api_ok": True,
        "db_ok": db_ok,
        "stages_ok": platform_stages is not None,
        "platform_stage_count": platform_stages or 0,
        "alembic_head_ok": bool(migration_current and migration_head and migration_current == migration_head),
        "alembic_current": migration_current,
        "alembic_head": migration_head,
    }
