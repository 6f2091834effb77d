"""Workflow automation engine.

Answers traversal and automation queries against the per-plan workflow
definitions. The engine never mutates tasks; callers apply its results.
"""

from datetime import date, datetime
from typing import Dict, Iterable, List, NamedTuple, Optional
from common.enums import HealthPlan
from services.tasks.dates import add_business_days, utcnow
from services.tasks.schemas import AutomationRule, BaseTask, WorkflowConfig, WorkflowStep
from services.workflow.definitions import DEFAULT_RECOMMENDED_DAYS, WORKFLOWS, default_automation_rules
import logging

logger = logging.getLogger(__name__)


class WorkflowError(Exception):
    """Raised when a caller forces a transition the workflow does not allow."""

    pass


class AutoAdvanceResult(NamedTuple):
    """Outcome of an auto-advance attempt."""

    success: bool
    message: str
    new_status: Optional[str] = None
    due_date: Optional[date] = None


class WorkflowAutomationEngine:
    """Owns the workflow definitions and automation rules for every health plan."""

    def __init__(
        self,
        workflows: Optional[Dict[HealthPlan, WorkflowConfig]] = None,
        automation_rules: Optional[Iterable[AutomationRule]] = None,
    ):
        self._workflows = dict(WORKFLOWS if workflows is None else workflows)
        self._automation_rules: List[AutomationRule] = list(
            default_automation_rules() if automation_rules is None else automation_rules
        )

    # --- Definitions ---

    def get_workflow(self, health_plan: HealthPlan) -> Optional[WorkflowConfig]:
        return self._workflows.get(health_plan)

    def _find_step(self, health_plan: HealthPlan, status: str) -> Optional[WorkflowStep]:
        workflow = self.get_workflow(health_plan)
        if workflow is None:
            return None
        for step in workflow.steps:
            if step.status == status:
                return step
        return None

    def get_all_statuses(self, health_plan: HealthPlan) -> List[str]:
        workflow = self.get_workflow(health_plan)
        return [step.status for step in workflow.steps] if workflow else []

    def get_required_actions(self, health_plan: HealthPlan, current_status: str) -> List[str]:
        step = self._find_step(health_plan, current_status)
        return list(step.required_actions) if step else []

    def is_completion_status(self, health_plan: HealthPlan, status: str) -> bool:
        workflow = self.get_workflow(health_plan)
        return bool(workflow) and status in workflow.completion_criteria

    # --- Traversal ---

    def get_next_status(self, health_plan: HealthPlan, current_status: str) -> Optional[str]:
        """Next status in the chain, or None for unknown or terminal statuses."""
        if self.is_completion_status(health_plan, current_status):
            return None
        step = self._find_step(health_plan, current_status)
        return step.next_status if step else None

    def get_recommended_due_date(
        self,
        health_plan: HealthPlan,
        current_status: str,
        from_date: Optional[date] = None,
    ) -> date:
        """
        Due date for finishing ``current_status``.

        Adds the step's recommended days as business days to ``from_date``
        (default today). Unknown plans or statuses use a 7-day SLA.
        """
        step = self._find_step(health_plan, current_status)
        recommended_days = step.recommended_days if step else DEFAULT_RECOMMENDED_DAYS
        return add_business_days(from_date or date.today(), recommended_days)

    def get_workflow_progress(self, health_plan: HealthPlan, current_status: str) -> int:
        """Percent of the chain reached (0 when the status is not part of it)."""
        workflow = self.get_workflow(health_plan)
        if workflow is None:
            return 0
        statuses = [step.status for step in workflow.steps]
        if current_status not in statuses:
            return 0
        return round((statuses.index(current_status) + 1) / len(statuses) * 100)

    def is_valid_transition(self, health_plan: HealthPlan, from_status: str, to_status: str) -> bool:
        """True if ``to_status`` is the defined next status or the step may be skipped."""
        step = self._find_step(health_plan, from_status)
        if step is None:
            return False
        return step.next_status == to_status or step.can_skip

    def get_valid_transitions(self, health_plan: HealthPlan, from_status: str) -> List[str]:
        """All statuses reachable from ``from_status`` in one transition."""
        step = self._find_step(health_plan, from_status)
        if step is None:
            return []
        if step.can_skip:
            statuses = self.get_all_statuses(health_plan)
            return statuses[statuses.index(from_status) + 1:]
        return [step.next_status] if step.next_status else []

    def validate_transition(self, health_plan: HealthPlan, from_status: str, to_status: str) -> None:
        """
        Guard for explicit status changes.

        Statuses outside the chain (holds, appeals, plans without a workflow)
        are not enforced. Raises WorkflowError otherwise.
        """
        if from_status == to_status:
            return
        if self._find_step(health_plan, from_status) is None:
            return
        if not self.is_valid_transition(health_plan, from_status, to_status):
            raise WorkflowError(
                f"Cannot transition from {from_status} to {to_status}. "
                f"Valid next states: {self.get_valid_transitions(health_plan, from_status)}"
            )

    # --- Automation ---

    def can_auto_advance(self, task: BaseTask, satisfied_conditions: Iterable[str] = ()) -> bool:
        """
        True only when the current step declares auto-advance conditions and
        every one of them has been satisfied. Steps without conditions always
        require a human.
        """
        step = self._find_step(task.health_plan, task.current_status)
        if step is None or not step.auto_advance_conditions:
            return False
        satisfied = set(satisfied_conditions)
        return all(condition in satisfied for condition in step.auto_advance_conditions)

    def auto_advance_task(
        self,
        task: BaseTask,
        satisfied_conditions: Iterable[str] = (),
        today: Optional[date] = None,
    ) -> AutoAdvanceResult:
        """Compute the auto-advance for a task. Never raises; never mutates the task."""
        if not self.can_auto_advance(task, satisfied_conditions):
            return AutoAdvanceResult(
                success=False,
                message="Task does not meet auto-advance conditions",
            )

        next_status = self.get_next_status(task.health_plan, task.current_status)
        if not next_status:
            return AutoAdvanceResult(
                success=False,
                message="No next status available in workflow",
            )

        due_date = self.get_recommended_due_date(task.health_plan, next_status, today)
        return AutoAdvanceResult(
            success=True,
            message=f"Auto-advanced from {task.current_status} to {next_status}",
            new_status=next_status,
            due_date=due_date,
        )

    @staticmethod
    def days_in_status(task: BaseTask, now: Optional[datetime] = None) -> int:
        """Whole days since the task was last updated."""
        reference = now or utcnow()
        return (reference - task.last_updated).days

    def process_automation_rules(self, task: BaseTask, now: Optional[datetime] = None) -> List[AutomationRule]:
        """
        Rules that currently match a task.

        Positive ``days_in_status`` thresholds compare against days since the
        last update; negative thresholds compare against how many days the
        task is overdue. Applying the rule actions is up to the caller.
        """
        matched = []
        for rule in self._automation_rules:
            if not rule.enabled:
                continue
            if rule.health_plan is not None and rule.health_plan != task.health_plan:
                continue
            if rule.conditions.status != "*" and rule.conditions.status != task.current_status:
                continue

            threshold = rule.conditions.days_in_status
            if threshold > 0 and self.days_in_status(task, now) < threshold:
                continue
            if threshold < 0:
                days_overdue = -task.days_until_due if task.has_due_date and task.is_overdue else 0
                if days_overdue < abs(threshold):
                    continue

            matched.append(rule)
        return matched

    def add_automation_rule(self, rule: AutomationRule) -> None:
        self._automation_rules.append(rule)

    def update_automation_rule(self, rule_id: str, updates: Dict) -> bool:
        for index, rule in enumerate(self._automation_rules):
            if rule.id == rule_id:
                self._automation_rules[index] = AutomationRule.model_validate(
                    {**rule.model_dump(), **updates}
                )
                return True
        return False

    def get_automation_rules(self) -> List[AutomationRule]:
        return list(self._automation_rules)
