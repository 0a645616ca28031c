import pytest

from delivery import DeliveryGate, NotReady, Ready, Unknown
from errors import StoreError
from models import JobStatus


@pytest.fixture
def gate(store):
    return DeliveryGate(store)


def create_job(store):
    return store.create(title="t", privacy="public", original_name="clip.mp4")


def test_unknown_id(gate):
    assert gate.resolve(404) == Unknown(404)


def test_processing_is_not_ready(gate, store):
    job_id = create_job(store)

    assert gate.resolve(job_id) == NotReady(JobStatus.PROCESSING)


def test_failed_is_not_ready(gate, store):
    job_id = create_job(store)
    store.set_status(job_id, JobStatus.FAILED)

    assert gate.resolve(job_id) == NotReady(JobStatus.FAILED)


def test_encoded_is_ready(gate, store):
    job_id = create_job(store)
    store.set_status_and_artifact(job_id, JobStatus.ENCODED, "/out/video.webm")

    assert gate.resolve(job_id) == Ready("/out/video.webm")


def test_unknown_is_distinct_from_not_ready(gate, store):
    job_id = create_job(store)

    assert not isinstance(gate.resolve(job_id + 1), NotReady)
    assert not isinstance(gate.resolve(job_id), Unknown)


def test_lookup_failure_propagates():
    class DownStore:
        def get_delivery(self, job_id):
            raise StoreError("database unavailable")

    with pytest.raises(StoreError):
        DeliveryGate(DownStore()).resolve(1)
