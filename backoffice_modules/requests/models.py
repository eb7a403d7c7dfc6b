"""Service request status vocabulary."""

from __future__ import annotations

from enum import Enum


class RequestStatus(str, Enum):
    NEW = "New"
    ACKNOWLEDGED = "Acknowledged"
    IN_PROGRESS = "In Progress"
    WAITING_ON_CLIENT = "Waiting on Client"
    ON_HOLD = "On Hold"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


CLOSED_STATUSES = (RequestStatus.COMPLETED, RequestStatus.CANCELLED)

# Open, past triage.
IN_PROGRESS_STATUSES = (
    RequestStatus.ACKNOWLEDGED,
    RequestStatus.IN_PROGRESS,
    RequestStatus.WAITING_ON_CLIENT,
    RequestStatus.ON_HOLD,
)

# Sort order of open requests on the workbench.
STATUS_ORDER = {
    RequestStatus.NEW.value: 1,
    RequestStatus.ACKNOWLEDGED.value: 2,
    RequestStatus.IN_PROGRESS.value: 3,
    RequestStatus.WAITING_ON_CLIENT.value: 4,
    RequestStatus.ON_HOLD.value: 5,
}
