"""FastAPI routes for task management."""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from typing import Dict, List, Optional
from common.enums import GroupBy, HealthPlan, TaskPriority
from services.cases.repository import CaseRecordRepository
from services.tasks import schemas, status_styles
from services.tasks.dependencies import get_orchestrator, get_repository
from services.tasks.orchestrator import TaskManagementOrchestrator, TaskNotFoundError
from services.workflow.engine import WorkflowError
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tasks", tags=["tasks"])


def _get_task_or_404(orchestrator: TaskManagementOrchestrator, task_id: str):
    try:
        return orchestrator.get_task(task_id)
    except TaskNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")


@router.get("/", response_model=List[schemas.UnifiedTask])
def list_tasks(
    status_filter: Optional[List[str]] = Query(None, alias="status"),
    assigned_to: Optional[List[str]] = Query(None),
    health_plan: Optional[List[HealthPlan]] = Query(None),
    priority: Optional[List[TaskPriority]] = Query(None),
    county: Optional[List[str]] = Query(None),
    pathway: Optional[List[str]] = Query(None),
    min_days: Optional[int] = None,
    max_days: Optional[int] = None,
    search: Optional[str] = None,
    orchestrator: TaskManagementOrchestrator = Depends(get_orchestrator),
):
    """List tasks with optional filters and member search. Does not change the session filter."""
    task_filter = schemas.TaskFilter(
        status=status_filter,
        assigned_to=assigned_to,
        health_plan=health_plan,
        priority=priority,
        county=county,
        pathway=pathway,
        days_until_due=schemas.DueDayRange(min=min_days, max=max_days),
    )
    tasks = orchestrator.processor.filter_tasks(orchestrator.state.tasks, task_filter)
    if search:
        tasks = orchestrator.processor.search_tasks(tasks, search)
    return tasks


@router.put("/filter", response_model=List[schemas.UnifiedTask])
def set_filter(task_filter: schemas.TaskFilter, orchestrator: TaskManagementOrchestrator = Depends(get_orchestrator)):
    """Replace the session filter and return the filtered tasks."""
    return orchestrator.set_filter(task_filter)


@router.get("/search", response_model=List[schemas.UnifiedTask])
def search_tasks(q: str = "", orchestrator: TaskManagementOrchestrator = Depends(get_orchestrator)):
    """Search the filtered tasks by member name, MRN or client id."""
    return orchestrator.search_tasks(q)


@router.post("/refresh")
def refresh_tasks(
    repository: CaseRecordRepository = Depends(get_repository),
    orchestrator: TaskManagementOrchestrator = Depends(get_orchestrator),
):
    """Reload every task from the stored case records."""
    state = orchestrator.load_tasks_sync(repository.fetch_case_records)
    return {"total_tasks": len(state.tasks), "error": state.error}


@router.get("/groups", response_model=Dict[str, List[schemas.UnifiedTask]])
def group_tasks(
    group_by: GroupBy = GroupBy.URGENCY,
    orchestrator: TaskManagementOrchestrator = Depends(get_orchestrator),
):
    return orchestrator.processor.group_tasks(orchestrator.state.filtered_tasks, group_by)


@router.get("/user/{identifier}", response_model=List[schemas.UnifiedTask])
def get_tasks_for_user(
    identifier: str,
    name: Optional[str] = None,
    orchestrator: TaskManagementOrchestrator = Depends(get_orchestrator),
):
    """Tasks assigned to a staff email, display name or email local part."""
    return orchestrator.get_tasks_for_user(identifier, name)


@router.get("/workflows/{health_plan}", response_model=schemas.WorkflowConfig)
def get_workflow(health_plan: HealthPlan, orchestrator: TaskManagementOrchestrator = Depends(get_orchestrator)):
    workflow = orchestrator.engine.get_workflow(health_plan)
    if workflow is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No workflow for {health_plan.value}")
    return workflow


@router.get("/automation/rules", response_model=List[schemas.AutomationRule])
def list_automation_rules(orchestrator: TaskManagementOrchestrator = Depends(get_orchestrator)):
    return orchestrator.state.automation_rules


@router.put("/automation/rules", response_model=schemas.AutomationRule)
def upsert_automation_rule(
    rule: schemas.AutomationRule,
    orchestrator: TaskManagementOrchestrator = Depends(get_orchestrator),
):
    return orchestrator.upsert_automation_rule(rule)


@router.put("/automation/enabled")
def toggle_automation(enabled: bool, orchestrator: TaskManagementOrchestrator = Depends(get_orchestrator)):
    return {"automation_enabled": orchestrator.toggle_automation(enabled)}


@router.post("/bulk", response_model=List[schemas.UnifiedTask])
def bulk_update_tasks(
    request: schemas.BulkUpdateRequest,
    repository: CaseRecordRepository = Depends(get_repository),
    orchestrator: TaskManagementOrchestrator = Depends(get_orchestrator),
):
    """Apply the same partial update to several tasks. Unknown ids are skipped."""
    updated = orchestrator.bulk_update_tasks(request.ids, request.updates)
    changes = request.updates.model_dump(exclude_unset=True)
    for task in updated:
        repository.apply_task_updates(task.id, changes)
    return updated


@router.post("/auto-advance")
def auto_advance_eligible_tasks(
    repository: CaseRecordRepository = Depends(get_repository),
    orchestrator: TaskManagementOrchestrator = Depends(get_orchestrator),
):
    """Advance every task whose auto-advance conditions are met."""
    results = orchestrator.auto_advance_eligible_tasks()
    for task_id, result in results.items():
        if result.success:
            repository.apply_task_updates(
                task_id, {"current_status": result.new_status, "due_date": result.due_date}
            )
    return {task_id: result._asdict() for task_id, result in results.items()}


@router.get("/{task_id}", response_model=schemas.UnifiedTask)
def get_task(task_id: str, orchestrator: TaskManagementOrchestrator = Depends(get_orchestrator)):
    return _get_task_or_404(orchestrator, task_id)


@router.patch("/{task_id}", response_model=schemas.UnifiedTask)
def update_task(
    task_id: str,
    updates: schemas.TaskUpdate,
    repository: CaseRecordRepository = Depends(get_repository),
    orchestrator: TaskManagementOrchestrator = Depends(get_orchestrator),
):
    """Partially update a task; derived fields are recomputed."""
    _get_task_or_404(orchestrator, task_id)
    task = orchestrator.update_task(task_id, updates)
    repository.apply_task_updates(task_id, updates.model_dump(exclude_unset=True))
    return task


# change status through the workflow
@router.post("/{task_id}/status", response_model=schemas.UnifiedTask)
def transition_task_status(
    task_id: str,
    transition: schemas.StatusTransitionRequest,
    repository: CaseRecordRepository = Depends(get_repository),
    orchestrator: TaskManagementOrchestrator = Depends(get_orchestrator),
):
    """Move a task to a new status, rejecting transitions the workflow does not allow."""
    _get_task_or_404(orchestrator, task_id)
    try:
        task = orchestrator.transition_task(
            task_id, transition.new_status, transition.update_due_date, transition.add_note
        )
    except WorkflowError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    repository.apply_task_updates(
        task_id,
        {
            "current_status": task.current_status,
            "due_date": task.due_date,
            "notes": task.notes,
            "last_updated": task.last_updated,
        },
    )
    return task


@router.post("/{task_id}/auto-advance", response_model=schemas.UnifiedTask)
def auto_advance_task(
    task_id: str,
    request: Optional[schemas.AutoAdvanceRequest] = None,
    repository: CaseRecordRepository = Depends(get_repository),
    orchestrator: TaskManagementOrchestrator = Depends(get_orchestrator),
):
    """Advance a task one step; uses the task's recorded conditions when none are sent."""
    _get_task_or_404(orchestrator, task_id)
    conditions = request.satisfied_conditions if request and request.satisfied_conditions else None
    result = orchestrator.auto_advance_task(task_id, conditions)
    if not result.success:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.message)

    repository.apply_task_updates(task_id, {"current_status": result.new_status, "due_date": result.due_date})
    return orchestrator.get_task(task_id)


@router.get("/{task_id}/workflow")
def get_task_workflow(task_id: str, orchestrator: TaskManagementOrchestrator = Depends(get_orchestrator)):
    """Where a task sits in its workflow and where it can go next."""
    task = _get_task_or_404(orchestrator, task_id)
    engine = orchestrator.engine
    return {
        "current_status": task.current_status,
        "next_status": engine.get_next_status(task.health_plan, task.current_status),
        "progress": engine.get_workflow_progress(task.health_plan, task.current_status),
        "valid_transitions": engine.get_valid_transitions(task.health_plan, task.current_status),
        "required_actions": engine.get_required_actions(task.health_plan, task.current_status),
        "recommended_due_date": engine.get_recommended_due_date(task.health_plan, task.current_status),
        "can_auto_advance": task.can_auto_advance,
    }


@router.get("/{task_id}/automation-rules", response_model=List[schemas.AutomationRule])
def get_matching_automation_rules(task_id: str, orchestrator: TaskManagementOrchestrator = Depends(get_orchestrator)):
    _get_task_or_404(orchestrator, task_id)
    return orchestrator.process_automation_rules(task_id)


@router.get("/{task_id}/priority", response_model=schemas.PriorityRecommendation)
def get_priority_recommendation(task_id: str, orchestrator: TaskManagementOrchestrator = Depends(get_orchestrator)):
    task = _get_task_or_404(orchestrator, task_id)
    return orchestrator.hub.get_priority_recommendation(task, orchestrator.context)


@router.post("/{task_id}/assignment", response_model=schemas.AssignmentRecommendation)
def recommend_assignment(
    task_id: str,
    request: schemas.AssignmentRequest,
    orchestrator: TaskManagementOrchestrator = Depends(get_orchestrator),
):
    """Recommend the least-loaded staff member among the candidates."""
    _get_task_or_404(orchestrator, task_id)
    return orchestrator.get_assignment_recommendation(task_id, request.candidate_staff)


@router.get("/{task_id}/style")
def get_task_style(task_id: str, orchestrator: TaskManagementOrchestrator = Depends(get_orchestrator)):
    """Display styles for the task's status, priority and urgency."""
    task = _get_task_or_404(orchestrator, task_id)
    return {
        "status": status_styles.get_status_style(task.current_status, task.health_plan)._asdict(),
        "priority": status_styles.get_priority_style(task.priority)._asdict(),
        "urgency": status_styles.get_urgency_style(task)._asdict(),
    }
