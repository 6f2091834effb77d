"""Pydantic schemas for the unified task model and its configuration."""

from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator
from datetime import date, datetime, timezone
from typing import Annotated, Dict, List, Literal, Optional, Union
from common.enums import HealthPlan, TaskPriority, TaskStatus, SuggestionType
import logging

logger = logging.getLogger(__name__)

# Days-until-due value carried by tasks that have no usable due date.
# Always check ``has_due_date`` before comparing against it.
NO_DUE_DATE = 999


def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Timestamps are stored and compared as naive UTC."""
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class BaseTask(BaseModel):
    """Fields shared by every health plan's task variant."""

    id: str
    client_id: str = ""
    member_first_name: str = ""
    member_last_name: str = ""
    member_mrn: str = ""
    member_county: str = ""
    pathway: str = ""
    health_plan: HealthPlan

    # Status & workflow
    current_status: str = ""
    next_status: Optional[str] = None
    workflow_step: str = ""
    workflow_progress: int = 0

    # Dates & timing
    due_date: Optional[date] = None
    last_updated: datetime
    created_date: datetime

    # Assignment & notes
    assigned_to: str = ""
    notes: str = ""

    # Derived fields, kept in sync by TaskProcessor.refresh_derived_fields
    days_until_due: int = NO_DUE_DATE
    has_due_date: bool = False
    is_overdue: bool = False
    priority: TaskPriority = TaskPriority.MEDIUM
    priority_score: Optional[float] = None
    task_status: TaskStatus = TaskStatus.FUTURE
    next_action: str = ""
    estimated_completion_days: int = 14

    # Workflow automation
    can_auto_advance: bool = False
    satisfied_conditions: List[str] = Field(default_factory=list)

    model_config = ConfigDict(use_enum_values=False)

    @field_validator("last_updated", "created_date")
    @classmethod
    def timestamps_as_naive_utc(cls, value: datetime) -> datetime:
        return as_naive_utc(value)

    @property
    def member_name(self) -> str:
        return f"{self.member_first_name} {self.member_last_name}".strip()


class KaiserTask(BaseTask):
    """Kaiser case with its T2038 / RN visit / tier level / RCFE / ILS sub-statuses."""

    health_plan: Literal[HealthPlan.KAISER] = HealthPlan.KAISER
    kaiser_status: str = ""
    calaim_status: str = ""
    kaiser_user_assignment: str = ""
    t2038_status: Optional[str] = None
    rn_visit_status: Optional[str] = None
    tier_level_status: Optional[str] = None
    rcfe_status: Optional[str] = None
    ils_status: Optional[str] = None


class HealthNetTask(BaseTask):
    """Health Net case with ISP and authorization sub-statuses."""

    health_plan: Literal[HealthPlan.HEALTH_NET] = HealthPlan.HEALTH_NET
    health_net_status: str = ""
    isp_status: Optional[str] = None
    authorization_status: Optional[str] = None


class OtherTask(BaseTask):
    """Case from a plan without a dedicated workflow."""

    health_plan: Literal[HealthPlan.OTHER] = HealthPlan.OTHER


UnifiedTask = Annotated[
    Union[KaiserTask, HealthNetTask, OtherTask], Field(discriminator="health_plan")
]


# due_date is the only update field that may be cleared with an explicit null
NON_NULLABLE_UPDATE_FIELDS = (
    "current_status",
    "assigned_to",
    "notes",
    "workflow_step",
    "pathway",
    "last_updated",
    "satisfied_conditions",
)


class TaskUpdate(BaseModel):
    """Partial update applied to one or more tasks (only set fields are applied)."""

    current_status: Optional[str] = None
    due_date: Optional[date] = None
    assigned_to: Optional[str] = None
    notes: Optional[str] = None
    workflow_step: Optional[str] = None
    pathway: Optional[str] = None
    last_updated: Optional[datetime] = None
    satisfied_conditions: Optional[List[str]] = None

    model_config = ConfigDict(extra="forbid")

    @field_validator("last_updated")
    @classmethod
    def last_updated_as_naive_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_naive_utc(value)

    @model_validator(mode="after")
    def reject_explicit_nulls(self) -> "TaskUpdate":
        nulled = [
            name for name in NON_NULLABLE_UPDATE_FIELDS
            if name in self.model_fields_set and getattr(self, name) is None
        ]
        if nulled:
            raise ValueError(f"Fields cannot be null: {', '.join(nulled)}")
        return self


class DueDayRange(BaseModel):
    """Inclusive bounds on days until due."""

    min: Optional[int] = None
    max: Optional[int] = None


class TaskFilter(BaseModel):
    """Conjunctive task filter; omitted dimensions pass everything."""

    status: Optional[List[str]] = None
    assigned_to: Optional[List[str]] = None
    health_plan: Optional[List[HealthPlan]] = None
    priority: Optional[List[TaskPriority]] = None
    days_until_due: Optional[DueDayRange] = None
    county: Optional[List[str]] = None
    pathway: Optional[List[str]] = None


class TaskGroup(BaseModel):
    """Non-persistent bucket of tasks for dashboards."""

    name: str
    tasks: List[UnifiedTask] = Field(default_factory=list)
    count: int = 0
    priority: TaskPriority
    color: str
    icon: str


class TaskAnalytics(BaseModel):
    """Aggregate snapshot recomputed from the full task list."""

    total_tasks: int = 0
    overdue_tasks: int = 0
    completed_this_week: int = 0
    average_completion_time: float = 0
    bottleneck_statuses: List[str] = Field(default_factory=list)
    staff_workload_distribution: Dict[str, int] = Field(default_factory=dict)
    priority_distribution: Dict[TaskPriority, int] = Field(
        default_factory=lambda: {priority: 0 for priority in TaskPriority}
    )
    health_plan_distribution: Dict[HealthPlan, int] = Field(
        default_factory=lambda: {plan: 0 for plan in HealthPlan}
    )


# Workflow configuration


class WorkflowStep(BaseModel):
    """One state in a health plan's linear workflow."""

    status: str
    next_status: Optional[str] = None
    recommended_days: int
    required_actions: List[str] = Field(default_factory=list)
    auto_advance_conditions: List[str] = Field(default_factory=list)
    can_skip: bool = False
    description: str = ""

    model_config = ConfigDict(frozen=True)


class WorkflowConfig(BaseModel):
    """Ordered step list for one health plan."""

    name: str
    health_plan: HealthPlan
    steps: List[WorkflowStep]
    completion_criteria: List[str]

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def check_unique_statuses(self) -> "WorkflowConfig":
        statuses = [step.status for step in self.steps]
        if len(statuses) != len(set(statuses)):
            raise ValueError(f"Duplicate step status in workflow {self.name}")
        return self


class RuleConditions(BaseModel):
    """Trigger conditions of an automation rule."""

    status: str  # exact status or '*'
    # >0: at least N days since last update; <0: at least N days overdue
    days_in_status: int = 0
    required_documents: Optional[List[str]] = None
    custom_conditions: Optional[List[str]] = None


class RuleActions(BaseModel):
    """Actions an automation rule recommends; applied by the caller."""

    new_status: str = ""
    assign_to: Optional[str] = None
    add_note: Optional[str] = None
    send_notification: bool = False
    schedule_reminder: Optional[int] = None  # days


class AutomationRule(BaseModel):
    """Declarative automation trigger."""

    id: str
    name: str
    description: str = ""
    conditions: RuleConditions
    actions: RuleActions
    enabled: bool = True
    health_plan: Optional[HealthPlan] = None


# Prioritization configuration


class PriorityWeights(BaseModel):
    """Weights of the five priority factors."""

    days_overdue: float = Field(0.40, ge=0)
    member_complexity: float = Field(0.20, ge=0)
    staff_workload: float = Field(0.15, ge=0)
    pathway_criticality: float = Field(0.15, ge=0)
    historical_delay: float = Field(0.10, ge=0)

    @property
    def total(self) -> float:
        return (
            self.days_overdue
            + self.member_complexity
            + self.staff_workload
            + self.pathway_criticality
            + self.historical_delay
        )

    @model_validator(mode="after")
    def warn_when_over_one(self) -> "PriorityWeights":
        if self.total > 1.0 + 1e-9:
            logger.warning(
                f"Priority weights sum to {self.total:.2f}; scores above 100 will be clamped"
            )
        return self


class PriorityThresholds(BaseModel):
    """Score cut-offs for the priority tiers."""

    critical: float = 85
    high: float = 65
    medium: float = 35

    @model_validator(mode="after")
    def check_decreasing(self) -> "PriorityThresholds":
        if not (self.critical > self.high > self.medium):
            raise ValueError("Priority thresholds must be strictly decreasing: critical > high > medium")
        return self


class PrioritizationConfig(BaseModel):
    """Weights and thresholds for smart prioritization."""

    weights: PriorityWeights = Field(default_factory=PriorityWeights)
    thresholds: PriorityThresholds = Field(default_factory=PriorityThresholds)


class PriorityContext(BaseModel):
    """External signals fed into priority scoring."""

    staff_workloads: Optional[Dict[str, int]] = None
    historical_delays: Optional[Dict[str, int]] = None
    member_complexity_scores: Optional[Dict[str, float]] = None


class SmartSuggestion(BaseModel):
    """Actionable suggestion bundling the affected tasks."""

    type: SuggestionType
    title: str
    description: str
    action: str
    task_ids: List[str]


class AssignmentRecommendation(BaseModel):
    """Workload-balancing assignment recommendation."""

    staff: str
    reason: str
    confidence: float


class PriorityRecommendation(BaseModel):
    """Current versus recomputed priority of a task."""

    current_priority: TaskPriority
    recommended_priority: TaskPriority
    score: float
    should_update: bool


class BulkUpdateRequest(BaseModel):
    """Schema for bulk task updates."""

    ids: List[str] = Field(..., min_length=1)
    updates: TaskUpdate


class AutoAdvanceRequest(BaseModel):
    """Schema for requesting an auto-advance."""

    satisfied_conditions: List[str] = Field(default_factory=list)


class StatusTransitionRequest(BaseModel):
    """Schema for a manual status change."""

    new_status: str = Field(..., min_length=1)
    update_due_date: bool = False
    add_note: Optional[str] = None


class AssignmentRequest(BaseModel):
    """Schema for requesting an assignment recommendation."""

    candidate_staff: List[str] = Field(..., min_length=1)
