"""Case record storage adapters.

The task pipeline never touches the database. It receives
``fetch_case_records`` as its record source, and the HTTP layer calls
``apply_task_updates`` after the orchestrator has accepted a change.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from services.cases.models import CaseRecord
import logging

logger = logging.getLogger(__name__)

# unified task field -> candidate source field names, first one present in the payload wins
SOURCE_FIELDS = {
    "current_status": ("Kaiser_Status", "healthNetStatus", "status"),
    "due_date": ("next_steps_date", "Next_Step_Due_Date"),
    "assigned_to": ("kaiser_user_assignment", "Staff_Assigned", "assignedTo"),
    "notes": ("workflow_notes", "notes"),
    "workflow_step": ("workflow_step",),
    "pathway": ("pathway",),
    "last_updated": ("last_updated",),
    "satisfied_conditions": ("satisfied_conditions",),
}

# source field used when the payload has none of the candidates yet
DEFAULT_STATUS_FIELD = {"kaiser": "Kaiser_Status", "health net": "healthNetStatus", "healthnet": "healthNetStatus"}


def _serialize(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


class CaseRecordRepository:
    """Reads and writes raw case payloads."""

    def __init__(self, db: Session):
        self.db = db

    def fetch_case_records(self) -> List[Dict[str, Any]]:
        records = self.db.query(CaseRecord).order_by(CaseRecord.id).all()
        return [dict(record.payload) for record in records]

    def get_case_record(self, record_id: str) -> Optional[CaseRecord]:
        return self.db.query(CaseRecord).filter(CaseRecord.record_id == record_id).first()

    def upsert_case_record(self, payload: Dict[str, Any]) -> CaseRecord:
        """Store a raw payload, replacing any record with the same id."""
        record_id = str(payload.get("id") or payload.get("client_ID2") or "")
        if not record_id:
            raise ValueError("Case record payload needs an id or client_ID2")

        record = self.get_case_record(record_id)
        if record is None:
            record = CaseRecord(record_id=record_id)
            self.db.add(record)

        record.health_plan = payload.get("healthPlan")
        record.payload = dict(payload)
        self.db.commit()
        self.db.refresh(record)
        return record

    def _source_field(self, record: CaseRecord, field: str) -> str:
        candidates = SOURCE_FIELDS[field]
        for name in candidates:
            if name in record.payload:
                return name
        if field == "current_status":
            plan = (record.health_plan or "").lower()
            for key, name in DEFAULT_STATUS_FIELD.items():
                if key in plan:
                    return name
            return "status"
        return candidates[0]

    def apply_task_updates(self, task_id: str, updates: Dict[str, Any]) -> Optional[CaseRecord]:
        """
        Merge unified task field changes into the stored payload.

        Returns None when no record matches ``task_id``. Fields with no
        source counterpart are ignored.
        """
        record = self.get_case_record(task_id)
        if record is None:
            logger.warning(f"No case record for task {task_id}, updates not persisted")
            return None

        payload = dict(record.payload)
        for field, value in updates.items():
            if field not in SOURCE_FIELDS:
                continue
            payload[self._source_field(record, field)] = _serialize(value)

        # JSON columns only persist on reassignment
        record.payload = payload
        self.db.commit()
        self.db.refresh(record)
        logger.info(f"Persisted {len(updates)} field update(s) for case {task_id}")
        return record
