"""Display styles for statuses, priorities and urgency.

Status styles are read from the status registry so a new status only needs
one entry in services.workflow.definitions.
"""

from typing import NamedTuple, Optional
from common.enums import HealthPlan, TaskPriority
from services.tasks.schemas import BaseTask
from services.workflow.definitions import DEFAULT_PROFILE, get_status_profile


class StatusStyle(NamedTuple):
    color: str
    background_color: str
    border_color: str
    text_color: str
    icon: str


def _style(palette: str, icon: str, shade: int = 50, text_shade: int = 700, border_shade: int = 200) -> StatusStyle:
    return StatusStyle(
        color=f"bg-{palette}-{shade} text-{palette}-{text_shade} border-{palette}-{border_shade}",
        background_color=f"bg-{palette}-{shade}",
        border_color=f"border-{palette}-{border_shade}",
        text_color=f"text-{palette}-{text_shade}",
        icon=icon,
    )


NEUTRAL_STYLE = _style("gray", "Clock")

PRIORITY_STYLES = {
    TaskPriority.CRITICAL: _style("red", "AlertTriangle", 100, 800, 300),
    TaskPriority.HIGH: _style("orange", "Clock", 100, 800, 300),
    TaskPriority.MEDIUM: _style("yellow", "Target", 100, 800, 300),
    TaskPriority.LOW: _style("green", "CheckCircle", 100, 800, 300),
}


def get_status_style(status: str, health_plan: Optional[HealthPlan] = None) -> StatusStyle:
    profile = get_status_profile(status, health_plan)
    if profile is DEFAULT_PROFILE:
        return NEUTRAL_STYLE
    return _style(profile.palette, profile.icon)


def get_status_color(status: str, health_plan: Optional[HealthPlan] = None) -> str:
    return get_status_style(status, health_plan).color


def get_priority_style(priority: TaskPriority) -> StatusStyle:
    return PRIORITY_STYLES.get(priority, PRIORITY_STYLES[TaskPriority.MEDIUM])


def get_urgency_style(task: BaseTask) -> StatusStyle:
    """Red when overdue or due today, orange for tomorrow, yellow within 3 days."""
    if not task.has_due_date:
        return _style("green", "CheckCircle", 100, 800)
    if task.is_overdue or task.days_until_due <= 0:
        return _style("red", "AlertTriangle", 100, 800)
    if task.days_until_due <= 1:
        return _style("orange", "Clock", 100, 800)
    if task.days_until_due <= 3:
        return _style("yellow", "Clock", 100, 800)
    return _style("green", "CheckCircle", 100, 800)
