"""Service requests: hour rollups and open-request lists."""

from backoffice_modules.requests.models import RequestStatus
from backoffice_modules.requests.service import ServiceRequestService

__all__ = ["RequestStatus", "ServiceRequestService"]
