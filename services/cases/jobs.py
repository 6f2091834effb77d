"""Celery jobs for on-demand case processing."""

from common.celery_app import celery_app
from common.db import SessionLocal
from services.cases.repository import CaseRecordRepository
from services.tasks.orchestrator import TaskManagementOrchestrator
import logging

logger = logging.getLogger(__name__)


def _load_orchestrator(db) -> TaskManagementOrchestrator:
    orchestrator = TaskManagementOrchestrator(fetch_records=CaseRecordRepository(db).fetch_case_records)
    state = orchestrator.load_tasks_sync()
    if state.error:
        raise RuntimeError(state.error)
    return orchestrator


@celery_app.task(name="refresh_case_tasks")
def refresh_case_tasks():
    """
    Load every stored case record through the task pipeline.

    Returns a summary of the resulting task list.
    """
    db = SessionLocal()
    try:
        orchestrator = _load_orchestrator(db)
        analytics = orchestrator.state.analytics
        suggestions = orchestrator.get_smart_suggestions()

        logger.info(f"Refreshed {analytics.total_tasks} case tasks")
        return {
            "status": "success",
            "total_tasks": analytics.total_tasks,
            "overdue_tasks": analytics.overdue_tasks,
            "priority_distribution": {
                priority.value: count for priority, count in analytics.priority_distribution.items()
            },
            "bottleneck_statuses": analytics.bottleneck_statuses,
            "suggestions": [suggestion.title for suggestion in suggestions],
        }

    except Exception as e:
        logger.error(f"Error refreshing case tasks: {str(e)}", exc_info=True)
        return {"status": "error", "message": str(e)}
    finally:
        db.close()


@celery_app.task(name="evaluate_automation_rules")
def evaluate_automation_rules():
    """
    Match automation rules against every task.

    Rule actions are not applied here; the result lists rule ids per task.
    """
    db = SessionLocal()
    try:
        orchestrator = _load_orchestrator(db)

        matches = {}
        for task in orchestrator.state.tasks:
            rules = orchestrator.process_automation_rules(task.id)
            if rules:
                matches[task.id] = [rule.id for rule in rules]

        logger.info(f"Automation rules matched {len(matches)} tasks")
        return {"status": "success", "matches": matches}

    except Exception as e:
        logger.error(f"Error evaluating automation rules: {str(e)}", exc_info=True)
        return {"status": "error", "message": str(e)}
    finally:
        db.close()
