"""FastAPI dependencies for the task routes."""

from typing import Optional
from fastapi import Depends
from sqlalchemy.orm import Session
from common.db import get_db
from services.cases.repository import CaseRecordRepository
from services.tasks.orchestrator import TaskManagementOrchestrator
import logging

logger = logging.getLogger(__name__)

_orchestrator: Optional[TaskManagementOrchestrator] = None


def get_repository(db: Session = Depends(get_db)) -> CaseRecordRepository:
    return CaseRecordRepository(db)


def get_orchestrator(repository: CaseRecordRepository = Depends(get_repository)) -> TaskManagementOrchestrator:
    """Application-wide orchestrator, loaded from the case records on first use."""
    global _orchestrator
    if _orchestrator is None:
        orchestrator = TaskManagementOrchestrator()
        orchestrator.load_tasks_sync(repository.fetch_case_records)
        _orchestrator = orchestrator
        logger.info("Task orchestrator initialized")
    return _orchestrator


def reset_orchestrator() -> None:
    """Drop the cached orchestrator; the next request reloads from storage."""
    global _orchestrator
    _orchestrator = None
