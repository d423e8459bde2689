"""In-process pending-request store.

Outstanding approval requests live only as long as the process; a restart
drops them and any late button click is answered with "not found".
"""

from __future__ import annotations

from janitor_store.base import BasePendingStore
from janitor_store.models import DeletionStatus, PendingDeletion


class InMemoryPendingStore(BasePendingStore):
    def __init__(self):
        self._requests: dict[str, PendingDeletion] = {}

    def get(self, request_id: str) -> PendingDeletion | None:
        return self._requests.get(request_id)

    def put(self, pending: PendingDeletion) -> None:
        if pending.id in self._requests:
            raise KeyError(f"Duplicate request id: {pending.id}")
        self._requests[pending.id] = pending

    def update_if_pending(self, request_id: str, status: DeletionStatus) -> bool:
        pending = self._requests.get(request_id)
        if pending is None or pending.status is not DeletionStatus.PENDING:
            return False
        pending.status = status
        return True

    def list(self) -> list[PendingDeletion]:
        return list(self._requests.values())
