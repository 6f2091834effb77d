"""Task management orchestrator.

``task_management_reducer`` is a pure transition from (state, action) to a
new state; filtered tasks, urgency groups and analytics are recomputed inside
it on every action that touches tasks or the filter. ``TaskManagementOrchestrator``
owns one state per session and wraps the reducer with the read/write helpers
the HTTP layer and jobs use.
"""

from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, NamedTuple, Optional, Union
from pydantic import BaseModel, ConfigDict, Field
from common.enums import ActionType
from services.tasks.dates import utcnow
from services.tasks.prioritizer import SmartTaskHub
from services.tasks.processor import TaskProcessor
from services.tasks.schemas import (
    AssignmentRecommendation,
    AutomationRule,
    BaseTask,
    PrioritizationConfig,
    PriorityContext,
    SmartSuggestion,
    TaskAnalytics,
    TaskFilter,
    TaskGroup,
    TaskUpdate,
    UnifiedTask,
)
from services.workflow.engine import AutoAdvanceResult, WorkflowAutomationEngine
import inspect
import logging
import threading

logger = logging.getLogger(__name__)

RecordFetcher = Callable[[], Any]


class TaskNotFoundError(KeyError):
    """Raised when a task id is not in the current task list."""

    pass


class TaskManagementState(BaseModel):
    """Canonical task list plus every view derived from it."""

    tasks: List[UnifiedTask] = Field(default_factory=list)
    filtered_tasks: List[UnifiedTask] = Field(default_factory=list)
    task_groups: Dict[str, TaskGroup] = Field(default_factory=dict)
    current_filter: TaskFilter = Field(default_factory=TaskFilter)
    analytics: TaskAnalytics = Field(default_factory=TaskAnalytics)
    is_loading: bool = False
    error: Optional[str] = None

    automation_rules: List[AutomationRule] = Field(default_factory=list)
    automation_enabled: bool = True

    prioritization_config: PrioritizationConfig = Field(default_factory=PrioritizationConfig)
    smart_sort_enabled: bool = True

    model_config = ConfigDict(frozen=True)


class TaskAction(NamedTuple):
    type: ActionType
    payload: Any = None


def _as_update(updates: Union[TaskUpdate, Dict[str, Any]]) -> Dict[str, Any]:
    if isinstance(updates, dict):
        updates = TaskUpdate.model_validate(updates)
    return updates.model_dump(exclude_unset=True)


def _with_tasks(
    state: TaskManagementState,
    tasks: List[BaseTask],
    hub: SmartTaskHub,
    now: Optional[datetime],
) -> TaskManagementState:
    filtered = TaskProcessor.filter_tasks(tasks, state.current_filter)
    return state.model_copy(
        update={
            "tasks": tasks,
            "filtered_tasks": filtered,
            "task_groups": hub.group_tasks_intelligently(filtered),
            "analytics": hub.generate_analytics(tasks, now),
        }
    )


def task_management_reducer(
    state: TaskManagementState,
    action: TaskAction,
    processor: TaskProcessor,
    context: Optional[PriorityContext] = None,
    today: Optional[date] = None,
    now: Optional[datetime] = None,
) -> TaskManagementState:
    """
    Apply one action and return the new state. ``state`` is never modified.

    Actions that reference unknown task ids leave the task list unchanged.
    """
    hub = processor.hub
    action_type = ActionType(action.type)
    payload = action.payload

    if action_type == ActionType.SET_TASKS:
        return _with_tasks(state, list(payload), hub, now)

    if action_type == ActionType.UPDATE_TASK:
        task_id, changes = payload["id"], _as_update(payload["updates"])
        tasks = [
            processor.refresh_derived_fields(task.model_copy(update=changes), context, today)
            if task.id == task_id else task
            for task in state.tasks
        ]
        return _with_tasks(state, tasks, hub, now)

    if action_type == ActionType.SET_FILTER:
        task_filter = payload if isinstance(payload, TaskFilter) else TaskFilter.model_validate(payload or {})
        filtered = processor.filter_tasks(state.tasks, task_filter)
        return state.model_copy(
            update={
                "current_filter": task_filter,
                "filtered_tasks": filtered,
                "task_groups": hub.group_tasks_intelligently(filtered),
            }
        )

    if action_type == ActionType.SET_LOADING:
        return state.model_copy(update={"is_loading": bool(payload)})

    if action_type == ActionType.SET_ERROR:
        return state.model_copy(update={"error": payload, "is_loading": False})

    if action_type == ActionType.TOGGLE_AUTOMATION:
        return state.model_copy(update={"automation_enabled": bool(payload)})

    if action_type == ActionType.UPDATE_AUTOMATION_RULE:
        rule = payload if isinstance(payload, AutomationRule) else AutomationRule.model_validate(payload)
        rules = list(state.automation_rules)
        for index, existing in enumerate(rules):
            if existing.id == rule.id:
                rules[index] = rule
                break
        else:
            rules.append(rule)
        return state.model_copy(update={"automation_rules": rules})

    if action_type == ActionType.BULK_UPDATE_TASKS:
        tasks = processor.bulk_update_tasks(state.tasks, payload["updates"], payload["ids"], context, today)
        return _with_tasks(state, tasks, hub, now)

    if action_type == ActionType.AUTO_ADVANCE_WORKFLOW:
        task_id, new_status = payload["task_id"], payload["new_status"]
        tasks = []
        for task in state.tasks:
            if task.id == task_id:
                due_date = payload.get("due_date") or processor.engine.get_recommended_due_date(
                    task.health_plan, new_status, today
                )
                advanced = task.model_copy(
                    update={
                        "current_status": new_status,
                        "due_date": due_date,
                        "last_updated": now or utcnow(),
                        "satisfied_conditions": [],
                    }
                )
                task = processor.refresh_derived_fields(advanced, context, today)
            tasks.append(task)
        return _with_tasks(state, tasks, hub, now)

    return state


class TaskManagementOrchestrator:
    """
    Session-scoped state container.

    Collaborators are injected; anything not supplied is built with defaults.
    ``fetch_records`` is a zero-argument callable returning raw case records
    (plain or awaitable).
    """

    def __init__(
        self,
        fetch_records: Optional[RecordFetcher] = None,
        engine: Optional[WorkflowAutomationEngine] = None,
        hub: Optional[SmartTaskHub] = None,
        processor: Optional[TaskProcessor] = None,
        context: Optional[PriorityContext] = None,
    ):
        self.engine = engine or WorkflowAutomationEngine()
        self.hub = hub or SmartTaskHub()
        self.processor = processor or TaskProcessor(self.engine, self.hub)
        self.fetch_records = fetch_records
        self.context = context
        self._lock = threading.Lock()
        self.state = TaskManagementState(
            automation_rules=self.engine.get_automation_rules(),
            prioritization_config=self.hub.get_prioritization_config(),
        )

    def dispatch(self, action_type: ActionType, payload: Any = None) -> TaskManagementState:
        # request handlers run in a threadpool
        with self._lock:
            self.state = task_management_reducer(
                self.state, TaskAction(action_type, payload), self.processor, self.context
            )
            return self.state

    # --- Loading ---

    def _begin_load(self) -> None:
        self.dispatch(ActionType.SET_ERROR, None)
        self.dispatch(ActionType.SET_LOADING, True)

    def _apply_records(self, records: Iterable[Dict[str, Any]]) -> None:
        tasks = self.processor.process_tasks(
            records,
            enable_workflow_analysis=True,
            enable_smart_prioritization=self.state.smart_sort_enabled,
            context=self.context,
        )
        self.dispatch(ActionType.SET_TASKS, tasks)
        logger.info(f"Loaded {len(tasks)} tasks")

    def _fail_load(self, error: Exception) -> None:
        # previous tasks stay in place
        logger.error(f"Error loading tasks: {str(error)}", exc_info=True)
        self.dispatch(ActionType.SET_ERROR, str(error) or error.__class__.__name__)

    def _resolve_fetch(self, fetch: Optional[RecordFetcher]) -> RecordFetcher:
        fetch = fetch or self.fetch_records
        if fetch is None:
            raise ValueError("No case record source configured")
        return fetch

    async def load_tasks(self, fetch: Optional[RecordFetcher] = None) -> TaskManagementState:
        """Fetch raw records and replace the task list. Failures end up in ``state.error``."""
        self._begin_load()
        try:
            records = self._resolve_fetch(fetch)()
            if inspect.isawaitable(records):
                records = await records
            self._apply_records(records)
        except Exception as e:
            self._fail_load(e)
        finally:
            self.dispatch(ActionType.SET_LOADING, False)
        return self.state

    def load_tasks_sync(self, fetch: Optional[RecordFetcher] = None) -> TaskManagementState:
        """Blocking variant of ``load_tasks`` for synchronous record sources."""
        self._begin_load()
        try:
            records = self._resolve_fetch(fetch)()
            if inspect.isawaitable(records):
                raise TypeError("load_tasks_sync needs a synchronous record source")
            self._apply_records(records)
        except Exception as e:
            self._fail_load(e)
        finally:
            self.dispatch(ActionType.SET_LOADING, False)
        return self.state

    async def refresh_tasks(self) -> TaskManagementState:
        return await self.load_tasks()

    def set_tasks(self, tasks: List[BaseTask]) -> TaskManagementState:
        return self.dispatch(ActionType.SET_TASKS, tasks)

    # --- Reads ---

    def get_task(self, task_id: str) -> BaseTask:
        for task in self.state.tasks:
            if task.id == task_id:
                return task
        raise TaskNotFoundError(task_id)

    def search_tasks(self, term: str) -> List[BaseTask]:
        """Search within the currently filtered tasks."""
        return self.processor.search_tasks(self.state.filtered_tasks, term)

    def get_tasks_for_user(self, identifier: str, name: Optional[str] = None) -> List[BaseTask]:
        return self.processor.get_tasks_for_user(self.state.tasks, identifier, name)

    def get_staff_workload(self) -> Dict[str, int]:
        return dict(self.state.analytics.staff_workload_distribution)

    def get_smart_suggestions(self) -> List[SmartSuggestion]:
        return self.hub.get_smart_suggestions(self.state.tasks)

    def get_assignment_recommendation(self, task_id: str, candidate_staff: List[str]) -> AssignmentRecommendation:
        task = self.get_task(task_id)
        return self.hub.recommend_task_assignment(task, candidate_staff, self.get_staff_workload())

    # --- Writes ---

    def update_task(self, task_id: str, updates: Union[TaskUpdate, Dict[str, Any]]) -> BaseTask:
        self.get_task(task_id)
        self.dispatch(ActionType.UPDATE_TASK, {"id": task_id, "updates": updates})
        return self.get_task(task_id)

    def update_task_status(
        self,
        task_id: str,
        new_status: str,
        update_due_date: bool = False,
        add_note: Optional[str] = None,
    ) -> BaseTask:
        """Set a new status; optionally move the due date to the new step's SLA and append a note."""
        task = self.get_task(task_id)
        updates: Dict[str, Any] = {"current_status": new_status, "last_updated": utcnow()}
        if update_due_date:
            updates["due_date"] = self.engine.get_recommended_due_date(task.health_plan, new_status)
        if add_note:
            updates["notes"] = f"{task.notes}\n{add_note}".strip()
        return self.update_task(task_id, updates)

    def transition_task(
        self,
        task_id: str,
        new_status: str,
        update_due_date: bool = False,
        add_note: Optional[str] = None,
    ) -> BaseTask:
        """Like ``update_task_status`` but rejects transitions the workflow forbids (WorkflowError)."""
        task = self.get_task(task_id)
        self.engine.validate_transition(task.health_plan, task.current_status, new_status)
        updated = self.update_task_status(task_id, new_status, update_due_date, add_note)
        logger.info(f"Task {task_id} transitioned from {task.current_status} to {new_status}")
        return updated

    def assign_task(self, task_id: str, staff: str) -> BaseTask:
        return self.update_task(task_id, {"assigned_to": staff, "last_updated": utcnow()})

    def bulk_update_tasks(self, task_ids: List[str], updates: Union[TaskUpdate, Dict[str, Any]]) -> List[BaseTask]:
        """Update every listed task; unknown ids are skipped. Returns the updated tasks."""
        known = {task.id for task in self.state.tasks}
        targets = [task_id for task_id in task_ids if task_id in known]
        self.dispatch(ActionType.BULK_UPDATE_TASKS, {"ids": targets, "updates": updates})
        logger.info(f"Bulk updated {len(targets)} of {len(task_ids)} requested tasks")
        return [self.get_task(task_id) for task_id in targets]

    def set_filter(self, task_filter: Union[TaskFilter, Dict[str, Any]]) -> List[BaseTask]:
        self.dispatch(ActionType.SET_FILTER, task_filter)
        return list(self.state.filtered_tasks)

    # --- Automation ---

    def auto_advance_task(self, task_id: str, satisfied_conditions: Optional[List[str]] = None) -> AutoAdvanceResult:
        """
        Advance a task one step when its conditions are satisfied.

        Uses the conditions recorded on the task when none are passed.
        """
        task = self.get_task(task_id)
        conditions = task.satisfied_conditions if satisfied_conditions is None else satisfied_conditions
        result = self.engine.auto_advance_task(task, conditions)

        if not result.success:
            logger.warning(f"Auto-advance rejected for task {task_id}: {result.message}")
            return result

        self.dispatch(
            ActionType.AUTO_ADVANCE_WORKFLOW,
            {"task_id": task_id, "new_status": result.new_status, "due_date": result.due_date},
        )
        logger.info(f"Task {task_id}: {result.message}")
        return result

    def auto_advance_eligible_tasks(self) -> Dict[str, AutoAdvanceResult]:
        """Advance every task flagged ``can_auto_advance``. Does nothing while automation is off."""
        if not self.state.automation_enabled:
            logger.info("Automation disabled, skipping auto-advance")
            return {}
        eligible = [task.id for task in self.state.tasks if task.can_auto_advance]
        return {task_id: self.auto_advance_task(task_id) for task_id in eligible}

    def process_automation_rules(self, task_id: str) -> List[AutomationRule]:
        task = self.get_task(task_id)
        if not self.state.automation_enabled:
            return []
        return self.engine.process_automation_rules(task)

    def toggle_automation(self, enabled: bool) -> bool:
        self.dispatch(ActionType.TOGGLE_AUTOMATION, enabled)
        logger.info(f"Automation {'enabled' if enabled else 'disabled'}")
        return self.state.automation_enabled

    def upsert_automation_rule(self, rule: Union[AutomationRule, Dict[str, Any]]) -> AutomationRule:
        """Add or replace a rule in both the engine and the state."""
        rule = rule if isinstance(rule, AutomationRule) else AutomationRule.model_validate(rule)
        if not self.engine.update_automation_rule(rule.id, rule.model_dump()):
            self.engine.add_automation_rule(rule)
        self.dispatch(ActionType.UPDATE_AUTOMATION_RULE, rule)
        return rule

    # --- Configuration ---

    def update_prioritization_config(self, updates: Dict[str, Any]) -> PrioritizationConfig:
        """Merge weight/threshold changes and re-score every task with the new config."""
        config = self.hub.update_prioritization_config(updates)
        with self._lock:
            self.state = self.state.model_copy(update={"prioritization_config": config})
        if self.state.smart_sort_enabled:
            self.dispatch(ActionType.SET_TASKS, self.hub.prioritize_tasks(self.state.tasks, self.context))
        logger.info(f"Re-scored {len(self.state.tasks)} tasks with updated prioritization config")
        return config
