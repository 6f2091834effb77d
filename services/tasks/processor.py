"""Task processor - raw case records to unified tasks, plus set-level operations.

Every code path that changes a task's status or due date ends in
``refresh_derived_fields`` so derived fields are never stale.
"""

from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Union
from common.enums import GroupBy, HealthPlan, TaskStatus
from services.tasks.dates import DateCalculationResult, calculate_task_dates, parse_date, parse_datetime, utcnow
from services.tasks.prioritizer import SmartTaskHub, is_completed_status, urgency_bucket
from services.tasks.schemas import (
    BaseTask,
    HealthNetTask,
    KaiserTask,
    OtherTask,
    PriorityContext,
    TaskFilter,
    TaskUpdate,
)
from services.workflow.definitions import get_status_profile
from services.workflow.engine import WorkflowAutomationEngine
import logging

logger = logging.getLogger(__name__)

URGENCY_LABELS = {
    "overdue": "Overdue",
    "dueToday": "Due Today",
    "dueSoon": "Due Soon",
    "dueThisWeek": "Due This Week",
    "future": "Future",
}


def normalize_health_plan(value: Optional[str]) -> HealthPlan:
    """Case-insensitive substring match on a free-text plan name."""
    if not value:
        return HealthPlan.OTHER
    normalized = str(value).lower()
    if "kaiser" in normalized:
        return HealthPlan.KAISER
    if "health net" in normalized or "healthnet" in normalized:
        return HealthPlan.HEALTH_NET
    logger.warning(f"Unrecognized health plan {value!r}, treating as Other")
    return HealthPlan.OTHER


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _conditions(value: Any) -> List[str]:
    """Condition keys from a list or a comma-separated string."""
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value]
    if value:
        logger.warning(f"Ignoring satisfied conditions of type {type(value).__name__}")
    return []


class TaskProcessor:
    """Normalizes raw records and runs filter/group/search/update over task lists."""

    def __init__(self, engine: WorkflowAutomationEngine, hub: SmartTaskHub):
        self.engine = engine
        self.hub = hub

    # --- Normalization ---

    def determine_task_status(self, task: BaseTask, dates: DateCalculationResult) -> TaskStatus:
        """Completion and holds win over dates; mid-chain statuses like 'RN Visit Complete' do not count."""
        status = task.current_status
        if (
            self.engine.is_completion_status(task.health_plan, status)
            or status == "Complete"
            or "(Complete)" in status
        ):
            return TaskStatus.COMPLETED
        if status == "On-Hold":
            return TaskStatus.ON_HOLD
        if dates.is_overdue:
            return TaskStatus.OVERDUE
        if dates.is_today:
            return TaskStatus.DUE_TODAY
        if dates.is_due_soon:
            return TaskStatus.DUE_SOON
        return TaskStatus.FUTURE

    def _status_fields(self, task: BaseTask, today: Optional[date]) -> Dict[str, Any]:
        """Date- and status-derived fields (everything except workflow and priority)."""
        dates = calculate_task_dates(task.due_date, today)
        profile = get_status_profile(task.current_status, task.health_plan)
        return {
            "days_until_due": dates.days_until_due,
            "has_due_date": dates.has_due_date,
            "is_overdue": dates.is_overdue,
            "task_status": self.determine_task_status(task, dates),
            "next_action": profile.next_action,
            "estimated_completion_days": profile.estimated_days,
        }

    def _workflow_fields(self, task: BaseTask) -> Dict[str, Any]:
        return {
            "next_status": self.engine.get_next_status(task.health_plan, task.current_status),
            "can_auto_advance": self.engine.can_auto_advance(task, task.satisfied_conditions),
            "workflow_progress": self.engine.get_workflow_progress(task.health_plan, task.current_status),
        }

    def process_raw_task_data(self, record: Dict[str, Any], today: Optional[date] = None) -> BaseTask:
        """
        Map one loosely-typed case record onto the unified task model.

        Kaiser and Health Net sources use different field names; the first
        non-empty candidate wins. Priority is left at its default until the
        hub scores the task.
        """
        now = utcnow()
        health_plan = normalize_health_plan(record.get("healthPlan"))
        current_status = _text(record.get("Kaiser_Status") or record.get("healthNetStatus") or record.get("status"))

        task_id = _text(record.get("id") or record.get("client_ID2"))
        if not task_id:
            logger.warning("Case record has neither id nor client_ID2")

        raw_due = record.get("next_steps_date") or record.get("Next_Step_Due_Date")

        payload = {
            "id": task_id,
            "client_id": _text(record.get("client_ID2")),
            "member_first_name": _text(record.get("memberFirstName")),
            "member_last_name": _text(record.get("memberLastName")),
            "member_mrn": _text(record.get("memberMrn")),
            "member_county": _text(record.get("memberCounty")),
            "pathway": _text(record.get("pathway")),
            "health_plan": health_plan,
            "current_status": current_status,
            "workflow_step": _text(record.get("workflow_step")),
            "due_date": parse_date(raw_due),
            "last_updated": parse_datetime(record.get("last_updated"), default=now),
            "created_date": parse_datetime(record.get("created_at") or record.get("createdDate"), default=now),
            "assigned_to": _text(
                record.get("kaiser_user_assignment") or record.get("Staff_Assigned") or record.get("assignedTo")
            ),
            "notes": _text(record.get("workflow_notes") or record.get("notes")),
            "satisfied_conditions": _conditions(
                record.get("satisfied_conditions") or record.get("satisfiedConditions")
            ),
        }

        if health_plan == HealthPlan.KAISER:
            task = KaiserTask.model_validate(
                {
                    **payload,
                    "kaiser_status": _text(record.get("Kaiser_Status")),
                    "calaim_status": _text(record.get("CalAIM_Status")),
                    "kaiser_user_assignment": _text(record.get("kaiser_user_assignment")),
                    "t2038_status": record.get("t2038Status"),
                    "rn_visit_status": record.get("rnVisitStatus"),
                    "tier_level_status": record.get("tierLevelStatus"),
                    "rcfe_status": record.get("rcfeStatus"),
                    "ils_status": record.get("ilsStatus"),
                }
            )
        elif health_plan == HealthPlan.HEALTH_NET:
            task = HealthNetTask.model_validate(
                {
                    **payload,
                    "health_net_status": _text(record.get("healthNetStatus") or record.get("status")),
                    "isp_status": record.get("ispStatus"),
                    "authorization_status": record.get("authorizationStatus"),
                }
            )
        else:
            task = OtherTask.model_validate(payload)

        return task.model_copy(update=self._status_fields(task, today))

    def refresh_derived_fields(
        self,
        task: BaseTask,
        context: Optional[PriorityContext] = None,
        today: Optional[date] = None,
    ) -> BaseTask:
        """Recompute every derived field, workflow annotation and the priority of a task."""
        refreshed = task.model_copy(update={**self._status_fields(task, today), **self._workflow_fields(task)})
        return self.hub.score_task(refreshed, context)

    def process_tasks(
        self,
        records: Iterable[Dict[str, Any]],
        enable_workflow_analysis: bool = True,
        enable_smart_prioritization: bool = True,
        context: Optional[PriorityContext] = None,
        today: Optional[date] = None,
    ) -> List[BaseTask]:
        """
        Normalize a batch of records.

        Workflow annotation runs before prioritization; with prioritization
        enabled the result is sorted by the hub.
        """
        tasks = [self.process_raw_task_data(record, today) for record in records]

        if enable_workflow_analysis:
            tasks = [task.model_copy(update=self._workflow_fields(task)) for task in tasks]

        if enable_smart_prioritization:
            tasks = self.hub.prioritize_tasks(tasks, context)

        logger.info(f"Processed {len(tasks)} case records into tasks")
        return tasks

    # --- Set operations ---

    @staticmethod
    def filter_tasks(tasks: Iterable[BaseTask], task_filter: Optional[TaskFilter]) -> List[BaseTask]:
        """
        Conjunctive filter. Empty or omitted dimensions pass everything.

        Tasks without a due date never satisfy a days-until-due range.
        """
        if task_filter is None:
            return list(tasks)

        def matches(task: BaseTask) -> bool:
            if task_filter.status and task.current_status not in task_filter.status:
                return False
            if task_filter.assigned_to and task.assigned_to not in task_filter.assigned_to:
                return False
            if task_filter.health_plan and task.health_plan not in task_filter.health_plan:
                return False
            if task_filter.priority and task.priority not in task_filter.priority:
                return False
            due_range = task_filter.days_until_due
            if due_range is not None and (due_range.min is not None or due_range.max is not None):
                if not task.has_due_date:
                    return False
                if due_range.min is not None and task.days_until_due < due_range.min:
                    return False
                if due_range.max is not None and task.days_until_due > due_range.max:
                    return False
            if task_filter.county and task.member_county not in task_filter.county:
                return False
            if task_filter.pathway and task.pathway not in task_filter.pathway:
                return False
            return True

        return [task for task in tasks if matches(task)]

    @staticmethod
    def get_tasks_for_user(
        tasks: Iterable[BaseTask], identifier: str, name: Optional[str] = None
    ) -> List[BaseTask]:
        """Exact match on the email, the display name, or the email's local part."""
        candidates = {identifier, identifier.split("@")[0]}
        if name:
            candidates.add(name)
        return [task for task in tasks if task.assigned_to and task.assigned_to in candidates]

    @staticmethod
    def group_tasks(tasks: Iterable[BaseTask], group_by: Union[GroupBy, str]) -> Dict[str, List[BaseTask]]:
        group_by = GroupBy(group_by)
        groups: Dict[str, List[BaseTask]] = {}

        for task in tasks:
            if group_by == GroupBy.STATUS:
                key = task.current_status
            elif group_by == GroupBy.ASSIGNED_TO:
                key = task.assigned_to or "Unassigned"
            elif group_by == GroupBy.HEALTH_PLAN:
                key = task.health_plan.value
            elif group_by == GroupBy.PRIORITY:
                key = task.priority.value
            else:
                key = URGENCY_LABELS[urgency_bucket(task)]
            groups.setdefault(key, []).append(task)

        return groups

    def bulk_update_tasks(
        self,
        tasks: Iterable[BaseTask],
        updates: Union[TaskUpdate, Dict[str, Any]],
        task_ids: Iterable[str],
        context: Optional[PriorityContext] = None,
        today: Optional[date] = None,
    ) -> List[BaseTask]:
        """Apply a partial update to the targeted tasks; returns a new list."""
        if isinstance(updates, dict):
            updates = TaskUpdate.model_validate(updates)
        changes = updates.model_dump(exclude_unset=True)
        targets = set(task_ids)

        result = []
        for task in tasks:
            if task.id in targets:
                task = self.refresh_derived_fields(task.model_copy(update=changes), context, today)
            result.append(task)
        return result

    @staticmethod
    def search_tasks(tasks: Iterable[BaseTask], term: str) -> List[BaseTask]:
        """Case-insensitive substring search over member names, MRN and client id."""
        tasks = list(tasks)
        if not term or not term.strip():
            return tasks

        needle = term.strip().lower()
        return [
            task for task in tasks
            if any(
                needle in field.lower()
                for field in (
                    task.member_first_name,
                    task.member_last_name,
                    task.member_mrn,
                    task.client_id,
                    f"{task.member_first_name} {task.member_last_name}",
                )
            )
        ]

    @staticmethod
    def get_task_statistics(tasks: Iterable[BaseTask]) -> Dict[str, Any]:
        tasks = list(tasks)
        dated = [task for task in tasks if task.has_due_date]

        by_health_plan: Dict[str, int] = {}
        by_priority: Dict[str, int] = {}
        by_assignee: Dict[str, int] = {}
        for task in tasks:
            by_health_plan[task.health_plan.value] = by_health_plan.get(task.health_plan.value, 0) + 1
            by_priority[task.priority.value] = by_priority.get(task.priority.value, 0) + 1
            assignee = task.assigned_to or "Unassigned"
            by_assignee[assignee] = by_assignee.get(assignee, 0) + 1

        return {
            "total": len(tasks),
            "overdue": sum(1 for task in dated if task.is_overdue),
            "due_today": sum(1 for task in dated if task.days_until_due == 0),
            "due_soon": sum(1 for task in dated if 0 < task.days_until_due <= 3),
            "completed": sum(1 for task in tasks if is_completed_status(task.current_status)),
            "by_health_plan": by_health_plan,
            "by_priority": by_priority,
            "by_assignee": by_assignee,
        }
