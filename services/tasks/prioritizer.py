"""Smart task hub - priority scoring, urgency grouping and dashboard analytics.

Each task gets a composite 0-100 score from five independently computed
factors (each already on a 0-100 scale):

- days overdue        how late (or how close) the task is
- member complexity   plan, pathway and status driven, or supplied externally
- staff workload      open task count of the assignee (busier staff bump priority)
- pathway criticality how urgent the current workflow step is
- historical delay    how often this status has stalled before

Workload and delay history are external signals. When a task has no such
signal, that factor's weight is spread proportionally over the factors that
do have one, so missing data neither inflates nor deflates the score.
"""

from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple
from common.enums import Criticality, HealthPlan, SuggestionType, TaskPriority
from services.tasks.dates import utcnow
from services.tasks.schemas import (
    AssignmentRecommendation,
    BaseTask,
    PrioritizationConfig,
    PriorityContext,
    PriorityRecommendation,
    SmartSuggestion,
    TaskAnalytics,
    TaskGroup,
)
from services.workflow.definitions import get_status_profile
import logging

logger = logging.getLogger(__name__)

NEUTRAL_FACTOR = 50.0

CRITICALITY_SCORES = {
    Criticality.CRITICAL: 80.0,
    Criticality.IMPORTANT: 60.0,
    Criticality.COMPLETION: 90.0,  # finishing a case is urgent too
    Criticality.STANDARD: 40.0,
}

PRIORITY_RANK = {
    TaskPriority.CRITICAL: 4,
    TaskPriority.HIGH: 3,
    TaskPriority.MEDIUM: 2,
    TaskPriority.LOW: 1,
}

# (key, display name, priority, color classes, icon) in dashboard order
URGENCY_GROUPS = [
    ("overdue", "Overdue", TaskPriority.CRITICAL, "bg-red-100 text-red-800 border-red-200", "AlertTriangle"),
    ("dueToday", "Due Today", TaskPriority.HIGH, "bg-orange-100 text-orange-800 border-orange-200", "Clock"),
    ("dueSoon", "Due Soon (1-3 days)", TaskPriority.MEDIUM, "bg-yellow-100 text-yellow-800 border-yellow-200", "Clock"),
    ("dueThisWeek", "Due This Week", TaskPriority.MEDIUM, "bg-blue-100 text-blue-800 border-blue-200", "Calendar"),
    ("future", "Future", TaskPriority.LOW, "bg-green-100 text-green-800 border-green-200", "CheckCircle"),
]


def urgency_bucket(task: BaseTask) -> str:
    """
    Urgency group key of a task.

    Every task maps to exactly one key; tasks without a due date are Future.
    """
    if not task.has_due_date:
        return "future"
    if task.is_overdue or task.days_until_due < 0:
        return "overdue"
    if task.days_until_due == 0:
        return "dueToday"
    if task.days_until_due <= 3:
        return "dueSoon"
    if task.days_until_due <= 7:
        return "dueThisWeek"
    return "future"


def is_completed_status(status: str) -> bool:
    return "Complete" in (status or "")


class SmartTaskHub:
    """Computes priorities, groups and analytics over a task list."""

    def __init__(self, config: Optional[PrioritizationConfig] = None):
        self._config = config or PrioritizationConfig()

    # --- Configuration ---

    def get_prioritization_config(self) -> PrioritizationConfig:
        return self._config.model_copy(deep=True)

    def update_prioritization_config(self, updates: Dict) -> PrioritizationConfig:
        """Merge partial weight/threshold updates; the merged config is re-validated."""
        current = self._config.model_dump()
        for section in ("weights", "thresholds"):
            if section in updates:
                current[section] = {**current[section], **updates[section]}
        self._config = PrioritizationConfig.model_validate(current)
        logger.info(f"Prioritization config updated: {self._config.model_dump()}")
        return self.get_prioritization_config()

    # --- Factors ---

    @staticmethod
    def days_overdue_factor(task: BaseTask) -> float:
        """Lateness factor; monotonically increasing with days overdue."""
        if not task.has_due_date:
            return 10.0

        if not task.is_overdue:
            if task.days_until_due <= 1:
                return 75.0
            if task.days_until_due <= 3:
                return 50.0
            if task.days_until_due <= 7:
                return 25.0
            return 10.0

        days_overdue = abs(task.days_until_due)
        if days_overdue >= 7:
            return 100.0
        if days_overdue >= 3:
            return 90.0
        if days_overdue >= 1:
            return 80.0
        return 70.0

    @staticmethod
    def complexity_factor(task: BaseTask, complexity_scores: Optional[Dict[str, float]] = None) -> float:
        if complexity_scores and task.id in complexity_scores:
            return float(min(100.0, max(0.0, complexity_scores[task.id])))

        complexity = 50.0
        if task.health_plan == HealthPlan.KAISER:
            complexity += 20
        if task.pathway == "SNF Diversion":
            complexity += 15
        if get_status_profile(task.current_status, task.health_plan).is_complex:
            complexity += 25
        return min(100.0, complexity)

    @staticmethod
    def workload_factor(task: BaseTask, staff_workloads: Optional[Dict[str, int]] = None) -> Optional[float]:
        """Assignee workload factor, or None when there is no workload data for the assignee."""
        if not staff_workloads or task.assigned_to not in staff_workloads:
            return None

        workload = staff_workloads[task.assigned_to]
        if workload >= 20:
            return 90.0
        if workload >= 15:
            return 70.0
        if workload >= 10:
            return 50.0
        if workload >= 5:
            return 30.0
        return 10.0

    @staticmethod
    def pathway_criticality_factor(task: BaseTask) -> float:
        criticality = get_status_profile(task.current_status, task.health_plan).criticality
        return CRITICALITY_SCORES[criticality]

    @staticmethod
    def historical_delay_factor(task: BaseTask, historical_delays: Optional[Dict[str, int]] = None) -> Optional[float]:
        """Delay-history factor, or None when the status has no history."""
        if not historical_delays or task.current_status not in historical_delays:
            return None

        delays = historical_delays[task.current_status]
        if delays >= 10:
            return 90.0
        if delays >= 5:
            return 70.0
        if delays >= 2:
            return 50.0
        return 30.0

    def factor_breakdown(self, task: BaseTask, context: Optional[PriorityContext] = None) -> Dict[str, float]:
        """Every factor value, with absent signals reported as the neutral 50."""
        context = context or PriorityContext()
        workload = self.workload_factor(task, context.staff_workloads)
        delay = self.historical_delay_factor(task, context.historical_delays)
        return {
            "days_overdue": self.days_overdue_factor(task),
            "member_complexity": self.complexity_factor(task, context.member_complexity_scores),
            "staff_workload": NEUTRAL_FACTOR if workload is None else workload,
            "pathway_criticality": self.pathway_criticality_factor(task),
            "historical_delay": NEUTRAL_FACTOR if delay is None else delay,
        }

    # --- Scoring ---

    def calculate_priority_score(self, task: BaseTask, context: Optional[PriorityContext] = None) -> float:
        """Weighted composite of the five factors, clamped to [0, 100]."""
        context = context or PriorityContext()
        weights = self._config.weights

        factors: List[Tuple[float, Optional[float]]] = [
            (weights.days_overdue, self.days_overdue_factor(task)),
            (weights.member_complexity, self.complexity_factor(task, context.member_complexity_scores)),
            (weights.staff_workload, self.workload_factor(task, context.staff_workloads)),
            (weights.pathway_criticality, self.pathway_criticality_factor(task)),
            (weights.historical_delay, self.historical_delay_factor(task, context.historical_delays)),
        ]

        known_weight = sum(weight for weight, value in factors if value is not None)
        if known_weight <= 0:
            return 0.0

        weighted = sum(weight * value for weight, value in factors if value is not None)
        score = weighted * (weights.total / known_weight)
        return min(100.0, max(0.0, score))

    def get_priority_level(self, score: float) -> TaskPriority:
        thresholds = self._config.thresholds
        if score >= thresholds.critical:
            return TaskPriority.CRITICAL
        if score >= thresholds.high:
            return TaskPriority.HIGH
        if score >= thresholds.medium:
            return TaskPriority.MEDIUM
        return TaskPriority.LOW

    def score_task(self, task: BaseTask, context: Optional[PriorityContext] = None) -> BaseTask:
        """Copy of ``task`` with a fresh score and tier."""
        score = self.calculate_priority_score(task, context)
        return task.model_copy(update={"priority_score": score, "priority": self.get_priority_level(score)})

    def prioritize_tasks(self, tasks: Iterable[BaseTask], context: Optional[PriorityContext] = None) -> List[BaseTask]:
        """
        Score every task and sort by urgency.

        Order: score descending, then overdue before not overdue, then fewest
        days until due. Tasks without a due date sort last among equal scores.
        """
        scored = [self.score_task(task, context) for task in tasks]
        return sorted(
            scored,
            key=lambda task: (-task.priority_score, not task.is_overdue, task.days_until_due),
        )

    def get_priority_recommendation(
        self, task: BaseTask, context: Optional[PriorityContext] = None
    ) -> PriorityRecommendation:
        score = self.calculate_priority_score(task, context)
        recommended = self.get_priority_level(score)
        return PriorityRecommendation(
            current_priority=task.priority,
            recommended_priority=recommended,
            score=score,
            should_update=task.priority != recommended,
        )

    # --- Grouping & analytics ---

    def group_tasks_intelligently(self, tasks: Iterable[BaseTask]) -> Dict[str, TaskGroup]:
        """Partition tasks into the five urgency groups (each task lands in exactly one)."""
        buckets: Dict[str, List[BaseTask]] = {key: [] for key, *_ in URGENCY_GROUPS}
        for task in tasks:
            buckets[urgency_bucket(task)].append(task)

        return {
            key: TaskGroup(
                name=name,
                tasks=buckets[key],
                count=len(buckets[key]),
                priority=priority,
                color=color,
                icon=icon,
            )
            for key, name, priority, color, icon in URGENCY_GROUPS
        }

    def generate_analytics(self, tasks: List[BaseTask], now: Optional[datetime] = None) -> TaskAnalytics:
        reference = now or utcnow()
        week_ago = reference - timedelta(days=7)

        completed = [task for task in tasks if is_completed_status(task.current_status)]
        completed_this_week = sum(1 for task in completed if task.last_updated >= week_ago)

        status_counts = Counter(task.current_status for task in tasks)
        bottleneck_statuses = [status for status, _ in status_counts.most_common(3)]

        workload = Counter(task.assigned_to or "Unassigned" for task in tasks)

        priority_distribution = {priority: 0 for priority in TaskPriority}
        health_plan_distribution = {plan: 0 for plan in HealthPlan}
        for task in tasks:
            priority_distribution[task.priority] += 1
            health_plan_distribution[task.health_plan] += 1

        return TaskAnalytics(
            total_tasks=len(tasks),
            overdue_tasks=sum(1 for task in tasks if task.has_due_date and task.is_overdue),
            completed_this_week=completed_this_week,
            average_completion_time=self._average_completion_time(completed),
            bottleneck_statuses=bottleneck_statuses,
            staff_workload_distribution=dict(workload),
            priority_distribution=priority_distribution,
            health_plan_distribution=health_plan_distribution,
        )

    @staticmethod
    def _average_completion_time(completed: List[BaseTask]) -> float:
        """Mean whole days from creation to last update over completed tasks."""
        if not completed:
            return 0
        total_days = sum((task.last_updated - task.created_date).days for task in completed)
        return round(total_days / len(completed), 1)

    def analyze_bottlenecks(self, tasks: List[BaseTask], now: Optional[datetime] = None) -> List[Dict]:
        """Per-status counts, average days in status and overdue counts, busiest first."""
        reference = now or utcnow()
        by_status: Dict[str, List[BaseTask]] = defaultdict(list)
        for task in tasks:
            by_status[task.current_status].append(task)

        analysis = [
            {
                "status": status,
                "count": len(status_tasks),
                "average_days_in_status": round(
                    sum((reference - task.last_updated).days for task in status_tasks) / len(status_tasks), 1
                ),
                "overdue_count": sum(1 for task in status_tasks if task.has_due_date and task.is_overdue),
            }
            for status, status_tasks in by_status.items()
        ]
        return sorted(analysis, key=lambda row: row["count"], reverse=True)

    def analyze_staff_workload(self, tasks: List[BaseTask]) -> List[Dict]:
        """Per-assignee totals, overdue/critical counts and mean priority rank (4=critical)."""
        by_staff: Dict[str, List[BaseTask]] = defaultdict(list)
        for task in tasks:
            by_staff[task.assigned_to or "Unassigned"].append(task)

        analysis = [
            {
                "staff": staff,
                "total_tasks": len(staff_tasks),
                "overdue_tasks": sum(1 for task in staff_tasks if task.has_due_date and task.is_overdue),
                "critical_tasks": sum(1 for task in staff_tasks if task.priority == TaskPriority.CRITICAL),
                "average_priority": round(
                    sum(PRIORITY_RANK[task.priority] for task in staff_tasks) / len(staff_tasks), 2
                ),
            }
            for staff, staff_tasks in by_staff.items()
        ]
        return sorted(analysis, key=lambda row: row["total_tasks"], reverse=True)

    # --- Recommendations ---

    def recommend_task_assignment(
        self,
        task: BaseTask,
        candidate_staff: List[str],
        staff_workloads: Dict[str, int],
    ) -> AssignmentRecommendation:
        """Pick the least-loaded candidate; confidence grows with the workload gap."""
        if not candidate_staff:
            raise ValueError("At least one candidate staff member is required")

        ranked = sorted(
            ((staff, staff_workloads.get(staff, 0)) for staff in candidate_staff),
            key=lambda pair: pair[1],
        )
        staff, workload = ranked[0]
        gap = ranked[-1][1] - workload

        return AssignmentRecommendation(
            staff=staff,
            reason=f"Lowest current workload ({workload} tasks)",
            confidence=min(95.0, 60.0 + gap * 5),
        )

    def get_smart_suggestions(self, tasks: List[BaseTask]) -> List[SmartSuggestion]:
        suggestions = []

        auto_advanceable = [task for task in tasks if task.can_auto_advance]
        if auto_advanceable:
            suggestions.append(
                SmartSuggestion(
                    type=SuggestionType.WORKFLOW,
                    title="Auto-Advance Ready",
                    description=f"{len(auto_advanceable)} tasks can be automatically advanced",
                    action="Auto-advance eligible tasks",
                    task_ids=[task.id for task in auto_advanceable],
                )
            )

        critical_overdue = [
            task for task in tasks
            if task.has_due_date and task.is_overdue and abs(task.days_until_due) >= 5
        ]
        if critical_overdue:
            suggestions.append(
                SmartSuggestion(
                    type=SuggestionType.PRIORITY,
                    title="Critical Overdue Tasks",
                    description=f"{len(critical_overdue)} tasks are 5+ days overdue",
                    action="Review and prioritize overdue tasks",
                    task_ids=[task.id for task in critical_overdue],
                )
            )

        return suggestions
