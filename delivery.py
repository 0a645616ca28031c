from dataclasses import dataclass
from typing import Union

from models import JobStatus
from store import JobStore


@dataclass(frozen=True)
class Ready:
    path: str


@dataclass(frozen=True)
class NotReady:
    status: JobStatus


@dataclass(frozen=True)
class Unknown:
    job_id: int


Resolution = Union[Ready, NotReady, Unknown]


class DeliveryGate:
    """Read-only check deciding whether a job's artifact may be served."""

    def __init__(self, store: JobStore):
        self.store = store

    def resolve(self, job_id: int) -> Resolution:
        found = self.store.get_delivery(job_id)
        if found is None:
            return Unknown(job_id)
        path, status = found
        if status != JobStatus.ENCODED or not path:
            return NotReady(status)
        return Ready(path)
