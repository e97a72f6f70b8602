from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


# ── Scheduler ─────────────────────────────────────────────────────────
class StatusUpdateResult(BaseModel):
    """Outcome of one reconciliation pass."""
    started_at: datetime
    finished_at: Optional[datetime] = None
    source: str = "manual"             # manual / timer / startup

    candidates: int = 0
    updated: int = 0
    upcoming: int = 0
    ongoing: int = 0
    completed: int = 0
    failed: int = 0
    failed_event_ids: List[int] = Field(default_factory=list)

    status_counts: Dict[str, int] = Field(default_factory=dict)

    # set when the pass itself could not run (e.g. database unreachable)
    error: Optional[str] = None
    # True when this caller joined a pass that was already in flight
    joined: bool = False


class SchedulerStatus(BaseModel):
    is_running: bool
    enabled: bool
    update_interval: str
    last_run: Optional[datetime] = None
    next_run: Optional[datetime] = None


# ── Admin responses ───────────────────────────────────────────────────
class ManualUpdateData(BaseModel):
    triggered_at: datetime
    result: StatusUpdateResult
    service_status: SchedulerStatus


class ManualUpdateResponse(BaseModel):
    status: str = "success"
    message: str
    data: ManualUpdateData


class StatusServiceData(BaseModel):
    service: SchedulerStatus
    event_summary: Dict[str, int]
    total_events: int


class StatusServiceResponse(BaseModel):
    status: str = "success"
    data: StatusServiceData


class PendingEventOut(BaseModel):
    id: int
    title: Optional[str] = None
    scheduled_at: datetime
    status: str
    last_status_update: Optional[datetime] = None


class PendingUpdatesData(BaseModel):
    events: List[PendingEventOut]
    last_update_threshold: datetime


class PendingUpdatesResponse(BaseModel):
    status: str = "success"
    results: int
    data: PendingUpdatesData


class EventCancelOut(BaseModel):
    id: int
    title: Optional[str] = None
    status: str
    completed_at: Optional[datetime] = None
    last_status_update: Optional[datetime] = None
    status_update_count: int

    model_config = {"from_attributes": True}
