"""Unit tests for the smart task hub."""

import pytest
from datetime import datetime, timedelta
from pydantic import ValidationError
from common.enums import HealthPlan, SuggestionType, TaskPriority
from services.tasks.prioritizer import SmartTaskHub
from services.tasks.schemas import PrioritizationConfig, PriorityContext, PriorityThresholds, PriorityWeights

NOW = datetime(2026, 3, 10, 12, 0)


class TestFactors:
    """Test the individual scoring factors."""

    @pytest.mark.parametrize(
        "days,expected",
        [(20, 10), (7, 25), (4, 25), (3, 50), (2, 50), (1, 75), (0, 75), (-1, 80), (-3, 90), (-7, 100), (-30, 100)],
    )
    def test_days_overdue_factor(self, make_task, days, expected):
        assert SmartTaskHub.days_overdue_factor(make_task(due_in_days=days)) == expected

    def test_days_overdue_factor_without_due_date(self, make_task):
        assert SmartTaskHub.days_overdue_factor(make_task(due_in_days=None)) == 10

    def test_complexity_factor(self, make_task):
        assert SmartTaskHub.complexity_factor(make_task(health_plan=HealthPlan.OTHER, status="Active")) == 50
        assert SmartTaskHub.complexity_factor(make_task(status="RN Visit Needed")) == 70
        assert SmartTaskHub.complexity_factor(make_task(status="RN Visit Needed", pathway="SNF Diversion")) == 85
        # capped at 100
        assert SmartTaskHub.complexity_factor(make_task(status="Tier Level Appeal", pathway="SNF Diversion")) == 100

    def test_external_complexity_overrides(self, make_task):
        task = make_task(task_id="T-1", status="Tier Level Appeal")
        assert SmartTaskHub.complexity_factor(task, {"T-1": 12}) == 12
        assert SmartTaskHub.complexity_factor(task, {"T-2": 12}) == 95

    @pytest.mark.parametrize("count,expected", [(25, 90), (15, 70), (10, 50), (5, 30), (0, 10)])
    def test_workload_factor(self, make_task, count, expected):
        task = make_task(assigned_to="ann")
        assert SmartTaskHub.workload_factor(task, {"ann": count}) == expected

    def test_workload_factor_absent(self, make_task):
        task = make_task(assigned_to="ann")
        assert SmartTaskHub.workload_factor(task, None) is None
        assert SmartTaskHub.workload_factor(task, {"bob": 30}) is None

    @pytest.mark.parametrize(
        "status,plan,expected",
        [
            ("T2038 Requested", HealthPlan.KAISER, 80),
            ("Scheduling ISP", HealthPlan.HEALTH_NET, 60),
            ("ILS Contracted and Member Moved In", HealthPlan.KAISER, 90),
            ("Pre-T2038, Compiling Docs", HealthPlan.KAISER, 40),
            ("Something Else", HealthPlan.OTHER, 40),
        ],
    )
    def test_pathway_criticality_factor(self, make_task, status, plan, expected):
        assert SmartTaskHub.pathway_criticality_factor(make_task(status=status, health_plan=plan)) == expected

    @pytest.mark.parametrize("delays,expected", [(12, 90), (5, 70), (2, 50), (1, 30)])
    def test_historical_delay_factor(self, make_task, delays, expected):
        task = make_task(status="RN Visit Needed")
        assert SmartTaskHub.historical_delay_factor(task, {"RN Visit Needed": delays}) == expected

    def test_factor_breakdown_reports_neutral_defaults(self, hub, make_task):
        breakdown = hub.factor_breakdown(make_task(status="RN Visit Needed"))
        assert breakdown["staff_workload"] == 50
        assert breakdown["historical_delay"] == 50


class TestPriorityScore:
    """Test the composite score and tiers."""

    def test_overdue_completion_status_is_critical(self, hub, make_task):
        """Test a long-overdue case at its final step."""
        task = make_task(status="ILS Contracted and Member Moved In", due_in_days=-10)
        score = hub.calculate_priority_score(task)
        assert score == pytest.approx(90.0)
        assert hub.get_priority_level(score) == TaskPriority.CRITICAL

    def test_early_step_far_from_due_is_low(self, hub, make_task):
        task = make_task(status="Pre-T2038, Compiling Docs", due_in_days=20)
        score = hub.calculate_priority_score(task)
        assert score == pytest.approx(32.0)
        assert hub.get_priority_level(score) == TaskPriority.LOW

    def test_overdue_appeal_is_high(self, hub, make_task):
        task = make_task(status="Tier Level Appeal", due_in_days=-1)
        score = hub.calculate_priority_score(task)
        assert score == pytest.approx(84.0)
        assert hub.get_priority_level(score) == TaskPriority.HIGH

    def test_full_context_is_plain_weighted_sum(self, hub, make_task):
        """Test that with every signal present no weight is redistributed."""
        task = make_task(status="Tier Level Appeal", due_in_days=-1, assigned_to="ann")
        context = PriorityContext(staff_workloads={"ann": 20}, historical_delays={"Tier Level Appeal": 10})
        # 0.4*80 + 0.2*95 + 0.15*90 + 0.15*80 + 0.1*90
        assert hub.calculate_priority_score(task, context) == pytest.approx(85.5)

    def test_score_is_monotonic_in_lateness(self, hub, make_task):
        scores = [
            hub.calculate_priority_score(make_task(status="RN Visit Needed", due_in_days=days))
            for days in range(15, -16, -1)
        ]
        assert scores == sorted(scores)

    def test_score_is_clamped(self, make_task):
        """Test that weights summing above one cannot push the score past 100."""
        weights = PriorityWeights(
            days_overdue=1, member_complexity=1, staff_workload=1, pathway_criticality=1, historical_delay=1
        )
        hub = SmartTaskHub(PrioritizationConfig(weights=weights))
        task = make_task(status="ILS Contracted and Member Moved In", due_in_days=-10)
        assert hub.calculate_priority_score(task) == 100

    def test_zero_weights_score_zero(self, make_task):
        weights = PriorityWeights(
            days_overdue=0, member_complexity=0, staff_workload=0, pathway_criticality=0, historical_delay=0
        )
        hub = SmartTaskHub(PrioritizationConfig(weights=weights))
        assert hub.calculate_priority_score(make_task()) == 0

    @pytest.mark.parametrize(
        "score,expected",
        [
            (100, TaskPriority.CRITICAL),
            (85, TaskPriority.CRITICAL),
            (84.9, TaskPriority.HIGH),
            (65, TaskPriority.HIGH),
            (35, TaskPriority.MEDIUM),
            (34.9, TaskPriority.LOW),
            (0, TaskPriority.LOW),
        ],
    )
    def test_priority_level(self, hub, score, expected):
        assert hub.get_priority_level(score) == expected


class TestPrioritizationConfig:
    """Test configuration validation."""

    def test_negative_weight_rejected(self):
        with pytest.raises(ValidationError):
            PriorityWeights(days_overdue=-0.1)

    def test_thresholds_must_decrease(self):
        with pytest.raises(ValidationError):
            PriorityThresholds(critical=60, high=65, medium=35)

    def test_update_merges_partial_changes(self, hub):
        config = hub.update_prioritization_config({"thresholds": {"critical": 90}})
        assert config.thresholds.critical == 90
        assert config.thresholds.high == 65
        assert config.weights.days_overdue == 0.40

    def test_invalid_update_keeps_previous_config(self, hub):
        with pytest.raises(ValidationError):
            hub.update_prioritization_config({"thresholds": {"critical": 10}})
        assert hub.get_prioritization_config().thresholds.critical == 85

    def test_custom_thresholds_change_tiers(self, make_task):
        hub = SmartTaskHub(PrioritizationConfig(thresholds=PriorityThresholds(critical=95, high=80, medium=20)))
        task = make_task(status="ILS Contracted and Member Moved In", due_in_days=-10)
        assert hub.score_task(task).priority == TaskPriority.HIGH


class TestPrioritizeTasks:
    """Test scoring and ordering of a task list."""

    def test_sorted_by_score(self, hub, make_task):
        low = make_task(status="Pre-T2038, Compiling Docs", due_in_days=20)
        critical = make_task(status="ILS Contracted and Member Moved In", due_in_days=-10)
        high = make_task(status="Tier Level Appeal", due_in_days=-1)

        ordered = hub.prioritize_tasks([low, critical, high])

        assert [task.id for task in ordered] == [critical.id, high.id, low.id]
        assert [task.priority for task in ordered] == [TaskPriority.CRITICAL, TaskPriority.HIGH, TaskPriority.LOW]
        # inputs are not modified
        assert low.priority_score is None

    def test_overdue_breaks_ties(self, hub, make_task):
        """Test that an overdue task sorts ahead of an equal-score task that is not."""
        overdue = make_task(task_id="late", status="RN Visit Needed", due_in_days=-3)
        upcoming = make_task(task_id="soon", status="RN Visit Needed", due_in_days=1)
        context = PriorityContext(member_complexity_scores={"late": 50, "soon": 80})

        ordered = hub.prioritize_tasks([upcoming, overdue], context)

        assert ordered[0].priority_score == pytest.approx(ordered[1].priority_score)
        assert [task.id for task in ordered] == ["late", "soon"]

    def test_days_until_due_breaks_remaining_ties(self, hub, make_task):
        later = make_task(task_id="six", due_in_days=6)
        sooner = make_task(task_id="five", due_in_days=5)
        undated = make_task(task_id="none", due_in_days=None)
        far = make_task(task_id="twenty", due_in_days=20)

        ordered = hub.prioritize_tasks([undated, far, later, sooner])

        assert [task.id for task in ordered] == ["five", "six", "twenty", "none"]

    def test_priority_recommendation(self, hub, make_task):
        task = make_task(status="ILS Contracted and Member Moved In", due_in_days=-10)
        recommendation = hub.get_priority_recommendation(task)
        assert recommendation.current_priority == TaskPriority.MEDIUM
        assert recommendation.recommended_priority == TaskPriority.CRITICAL
        assert recommendation.should_update


class TestGrouping:
    """Test urgency partitioning."""

    def test_partition_counts(self, hub, make_task):
        days = [-5, -2, -1, 0, 0, 2, 5, 30, 30, 30]
        groups = hub.group_tasks_intelligently([make_task(due_in_days=d) for d in days])

        assert {key: group.count for key, group in groups.items()} == {
            "overdue": 3,
            "dueToday": 2,
            "dueSoon": 1,
            "dueThisWeek": 1,
            "future": 3,
        }
        assert groups["overdue"].priority == TaskPriority.CRITICAL
        assert groups["overdue"].name == "Overdue"

    def test_partition_is_complete_and_exclusive(self, hub, make_task):
        tasks = [make_task(due_in_days=d) for d in range(-10, 12)] + [make_task(due_in_days=None)]
        groups = hub.group_tasks_intelligently(tasks)

        grouped_ids = [task.id for group in groups.values() for task in group.tasks]
        assert len(grouped_ids) == len(tasks)
        assert sorted(grouped_ids) == sorted(task.id for task in tasks)

    def test_undated_tasks_are_future(self, hub, make_task):
        groups = hub.group_tasks_intelligently([make_task(due_in_days=None)])
        assert groups["future"].count == 1
        assert groups["overdue"].count == 0


class TestAnalytics:
    """Test dashboard analytics."""

    def test_generate_analytics(self, hub, make_task):
        tasks = [
            make_task(
                status="ILS Contracted (Complete)",
                assigned_to="ann",
                last_updated=NOW - timedelta(days=2),
                created_date=NOW - timedelta(days=32),
            ),
            make_task(
                status="RN Visit Complete",
                assigned_to="ann",
                last_updated=NOW - timedelta(days=10),
                created_date=NOW - timedelta(days=20),
                priority=TaskPriority.HIGH,
            ),
            make_task(status="T2038 Requested", due_in_days=-2, last_updated=NOW - timedelta(days=1)),
            make_task(status="T2038 Requested", last_updated=NOW - timedelta(days=1)),
            make_task(status="Scheduling ISP", health_plan=HealthPlan.HEALTH_NET, last_updated=NOW),
        ]

        analytics = hub.generate_analytics(tasks, now=NOW)

        assert analytics.total_tasks == 5
        assert analytics.overdue_tasks == 1
        assert analytics.completed_this_week == 1
        assert analytics.average_completion_time == 20
        assert analytics.bottleneck_statuses[0] == "T2038 Requested"
        assert len(analytics.bottleneck_statuses) == 3
        assert analytics.staff_workload_distribution == {"ann": 2, "Unassigned": 3}
        assert analytics.priority_distribution[TaskPriority.HIGH] == 1
        assert analytics.priority_distribution[TaskPriority.MEDIUM] == 4
        assert analytics.priority_distribution[TaskPriority.CRITICAL] == 0
        assert analytics.health_plan_distribution[HealthPlan.KAISER] == 4
        assert analytics.health_plan_distribution[HealthPlan.OTHER] == 0

    def test_empty_analytics(self, hub):
        analytics = hub.generate_analytics([], now=NOW)
        assert analytics.total_tasks == 0
        assert analytics.average_completion_time == 0
        assert analytics.bottleneck_statuses == []

    def test_analyze_bottlenecks(self, hub, make_task):
        tasks = [
            make_task(status="RN Visit Needed", due_in_days=-1, last_updated=NOW - timedelta(days=4)),
            make_task(status="RN Visit Needed", last_updated=NOW - timedelta(days=2)),
            make_task(status="R&B Requested", last_updated=NOW - timedelta(days=9)),
        ]
        rows = hub.analyze_bottlenecks(tasks, now=NOW)
        assert rows[0] == {
            "status": "RN Visit Needed",
            "count": 2,
            "average_days_in_status": 3.0,
            "overdue_count": 1,
        }
        assert rows[1]["status"] == "R&B Requested"

    def test_analyze_staff_workload(self, hub, make_task):
        tasks = [
            make_task(assigned_to="ann", priority=TaskPriority.CRITICAL, due_in_days=-2),
            make_task(assigned_to="ann", priority=TaskPriority.LOW),
            make_task(assigned_to="bob"),
        ]
        rows = hub.analyze_staff_workload(tasks)
        assert rows[0]["staff"] == "ann"
        assert rows[0]["total_tasks"] == 2
        assert rows[0]["overdue_tasks"] == 1
        assert rows[0]["critical_tasks"] == 1
        assert rows[0]["average_priority"] == 2.5


class TestRecommendations:
    """Test assignment recommendations and suggestions."""

    def test_least_loaded_candidate(self, hub, make_task):
        recommendation = hub.recommend_task_assignment(make_task(), ["ann", "bob", "cy"], {"ann": 10, "bob": 4, "cy": 7})
        assert recommendation.staff == "bob"
        assert recommendation.confidence == 90
        assert "4" in recommendation.reason

    def test_confidence_is_capped(self, hub, make_task):
        recommendation = hub.recommend_task_assignment(make_task(), ["ann", "bob"], {"ann": 40})
        assert recommendation.staff == "bob"
        assert recommendation.confidence == 95

    def test_single_candidate(self, hub, make_task):
        recommendation = hub.recommend_task_assignment(make_task(), ["ann"], {"ann": 3})
        assert recommendation.staff == "ann"
        assert recommendation.confidence == 60

    def test_no_candidates(self, hub, make_task):
        with pytest.raises(ValueError):
            hub.recommend_task_assignment(make_task(), [], {})

    def test_smart_suggestions(self, hub, make_task):
        ready = make_task(task_id="ready", can_auto_advance=True)
        late = make_task(task_id="late", due_in_days=-5)
        slightly_late = make_task(task_id="slightly", due_in_days=-4)
        undated = make_task(task_id="undated", due_in_days=None)

        suggestions = hub.get_smart_suggestions([ready, late, slightly_late, undated])

        assert [s.type for s in suggestions] == [SuggestionType.WORKFLOW, SuggestionType.PRIORITY]
        assert suggestions[0].task_ids == ["ready"]
        assert suggestions[1].task_ids == ["late"]

    def test_no_suggestions(self, hub, make_task):
        assert hub.get_smart_suggestions([make_task()]) == []
