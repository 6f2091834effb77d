"""Enumerations for CalAIM task workflow states and types."""

from enum import Enum


# health plans with their own workflow definition
class HealthPlan(str, Enum):
    """Health plan a member's case belongs to."""

    KAISER = "Kaiser"
    HEALTH_NET = "Health Net"
    OTHER = "Other"


class TaskPriority(str, Enum):
    """Priority tiers, highest first."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class TaskStatus(str, Enum):
    """Urgency classification derived from the due date and workflow position."""

    OVERDUE = "overdue"
    DUE_TODAY = "due-today"
    DUE_SOON = "due-soon"  # 1-3 days out
    FUTURE = "future"
    COMPLETED = "completed"
    ON_HOLD = "on-hold"


class GroupBy(str, Enum):
    """Dimensions tasks can be bucketed on."""

    STATUS = "status"
    ASSIGNED_TO = "assignedTo"
    HEALTH_PLAN = "healthPlan"
    PRIORITY = "priority"
    URGENCY = "urgency"


class Criticality(str, Enum):
    """Pathway criticality class of a workflow status."""

    CRITICAL = "CRITICAL"
    IMPORTANT = "IMPORTANT"
    COMPLETION = "COMPLETION"
    STANDARD = "STANDARD"


class SuggestionType(str, Enum):
    """Kinds of smart suggestions surfaced on the dashboard."""

    WORKFLOW = "workflow"
    ASSIGNMENT = "assignment"
    PRIORITY = "priority"
    BOTTLENECK = "bottleneck"


class ActionType(str, Enum):
    """Actions accepted by the task management reducer."""

    SET_TASKS = "SET_TASKS"
    UPDATE_TASK = "UPDATE_TASK"
    SET_FILTER = "SET_FILTER"
    SET_LOADING = "SET_LOADING"
    SET_ERROR = "SET_ERROR"
    TOGGLE_AUTOMATION = "TOGGLE_AUTOMATION"
    UPDATE_AUTOMATION_RULE = "UPDATE_AUTOMATION_RULE"
    BULK_UPDATE_TASKS = "BULK_UPDATE_TASKS"
    AUTO_ADVANCE_WORKFLOW = "AUTO_ADVANCE_WORKFLOW"
