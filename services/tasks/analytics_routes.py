"""Analytics routes for the task dashboard."""

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import ValidationError
from typing import Dict, List
from services.tasks import schemas
from services.tasks.dependencies import get_orchestrator
from services.tasks.orchestrator import TaskManagementOrchestrator

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/", response_model=schemas.TaskAnalytics)
def get_analytics(orchestrator: TaskManagementOrchestrator = Depends(get_orchestrator)):
    """Aggregate counts over the full task list."""
    return orchestrator.state.analytics


@router.get("/groups", response_model=Dict[str, schemas.TaskGroup])
def get_task_groups(orchestrator: TaskManagementOrchestrator = Depends(get_orchestrator)):
    """Urgency groups over the currently filtered tasks."""
    return orchestrator.state.task_groups


@router.get("/statistics")
def get_task_statistics(orchestrator: TaskManagementOrchestrator = Depends(get_orchestrator)):
    return orchestrator.processor.get_task_statistics(orchestrator.state.tasks)


@router.get("/suggestions", response_model=List[schemas.SmartSuggestion])
def get_smart_suggestions(orchestrator: TaskManagementOrchestrator = Depends(get_orchestrator)):
    return orchestrator.get_smart_suggestions()


@router.get("/bottlenecks")
def get_bottlenecks(orchestrator: TaskManagementOrchestrator = Depends(get_orchestrator)):
    """Per-status counts and time in status, busiest status first."""
    return orchestrator.hub.analyze_bottlenecks(orchestrator.state.tasks)


@router.get("/staff-workload")
def get_staff_workload(orchestrator: TaskManagementOrchestrator = Depends(get_orchestrator)):
    return orchestrator.hub.analyze_staff_workload(orchestrator.state.tasks)


@router.get("/prioritization-config", response_model=schemas.PrioritizationConfig)
def get_prioritization_config(orchestrator: TaskManagementOrchestrator = Depends(get_orchestrator)):
    return orchestrator.hub.get_prioritization_config()


@router.patch("/prioritization-config", response_model=schemas.PrioritizationConfig)
def update_prioritization_config(updates: Dict, orchestrator: TaskManagementOrchestrator = Depends(get_orchestrator)):
    """
    Merge partial weights/thresholds into the scoring config.

    Existing task priorities are left as they are until the tasks are reloaded.
    """
    try:
        return orchestrator.update_prioritization_config(updates)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
