"""Tests for the job store's create/update/lookup contract."""

import pytest
from sqlalchemy import text

from database import init_db, make_engine, make_session_factory
from errors import StoreError
from models import JobStatus
from store import JobStore


def create_job(store, title="t"):
    return store.create(title=title, privacy="public", original_name="clip.mp4")


@pytest.fixture
def broken_store(tmp_path):
    # SQLite cannot open a database inside a directory that does not exist
    engine = make_engine(f"sqlite:///{tmp_path / 'missing' / 'videos.db'}")
    return JobStore(make_session_factory(engine))


class TestCreate:
    def test_new_job_starts_processing(self, store):
        job_id = create_job(store)

        assert store.get_delivery(job_id) == (None, JobStatus.PROCESSING)

    def test_ids_are_never_reused(self, store):
        ids = [create_job(store, title=f"video {i}") for i in range(5)]

        assert len(set(ids)) == 5
        assert ids == sorted(ids)

    def test_metadata_is_persisted(self, store):
        job_id = store.create(
            title="Holiday",
            privacy="unlisted",
            original_name="beach.mov",
            description="Sunset",
            keywords="sea,sun",
        )
        video = store.get(job_id)

        assert video.title == "Holiday"
        assert video.privacy == "unlisted"
        assert video.original_name == "beach.mov"
        assert video.description == "Sunset"
        assert video.keywords == "sea,sun"
        assert video.encoded_path is None
        assert video.created_at is not None

    def test_create_failure_raises_store_error(self, broken_store):
        with pytest.raises(StoreError):
            create_job(broken_store)


class TestTransitions:
    def test_processing_to_encoded_records_artifact(self, store):
        job_id = create_job(store)

        assert store.set_status_and_artifact(job_id, JobStatus.ENCODED, "/out/video_1.webm")
        assert store.get_delivery(job_id) == ("/out/video_1.webm", JobStatus.ENCODED)

    def test_processing_to_failed(self, store):
        job_id = create_job(store)

        assert store.set_status(job_id, JobStatus.FAILED)
        assert store.get_delivery(job_id) == (None, JobStatus.FAILED)

    def test_restating_processing_is_idempotent(self, store):
        job_id = create_job(store)

        assert store.set_status(job_id, JobStatus.PROCESSING)
        assert store.get_delivery(job_id) == (None, JobStatus.PROCESSING)

    @pytest.mark.parametrize("terminal", [JobStatus.ENCODED, JobStatus.FAILED])
    def test_terminal_state_never_changes(self, store, terminal):
        job_id = create_job(store)
        if terminal == JobStatus.ENCODED:
            store.set_status_and_artifact(job_id, terminal, "/out/a.webm")
        else:
            store.set_status(job_id, terminal)
        before = store.get_delivery(job_id)

        assert not store.set_status(job_id, JobStatus.PROCESSING)
        assert not store.set_status(job_id, JobStatus.FAILED)
        assert not store.set_status_and_artifact(job_id, JobStatus.ENCODED, "/out/other.webm")
        assert store.get_delivery(job_id) == before

    def test_update_failure_is_reported_not_raised(self, broken_store):
        assert broken_store.set_status(1, JobStatus.FAILED) is False
        assert broken_store.set_status_and_artifact(1, JobStatus.ENCODED, "/x.webm") is False


class TestLookup:
    def test_unknown_id_returns_none(self, store):
        assert store.get_delivery(999) is None
        assert store.get(999) is None

    def test_lookup_failure_raises_store_error(self, broken_store):
        with pytest.raises(StoreError):
            broken_store.get_delivery(1)

    def test_list_filters_and_paginates(self, store):
        ids = [create_job(store, title=f"v{i}") for i in range(4)]
        store.set_status(ids[0], JobStatus.FAILED)

        items, total = store.list_jobs(page=1, size=2)
        assert total == 4
        assert len(items) == 2

        failed, failed_total = store.list_jobs(status=JobStatus.FAILED)
        assert failed_total == 1
        assert failed[0].id == ids[0]

    def test_fail_orphaned_moves_only_processing_rows(self, store):
        done = create_job(store)
        store.set_status_and_artifact(done, JobStatus.ENCODED, "/out/done.webm")
        orphan = create_job(store)

        assert store.fail_orphaned() == 1
        assert store.get_delivery(orphan) == (None, JobStatus.FAILED)
        assert store.get_delivery(done) == ("/out/done.webm", JobStatus.ENCODED)

    def test_ping(self, store, broken_store):
        assert store.ping() is True
        assert broken_store.ping() is False


def test_schema_bootstrap_is_idempotent(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'twice.db'}")
    init_db(engine)
    init_db(engine)
    store = JobStore(make_session_factory(engine))

    assert create_job(store) == 1


def test_status_column_stores_lowercase_values(store, session_factory):
    processing = create_job(store)
    encoded = create_job(store)
    store.set_status_and_artifact(encoded, JobStatus.ENCODED, "/out/video.webm")

    db = session_factory()
    try:
        rows = dict(db.execute(text("SELECT id, status FROM videos")).all())
    finally:
        db.close()

    assert rows == {processing: "processing", encoded: "encoded"}
