import os

import pytest

from database import init_db, make_engine, make_session_factory
from staging import ArtifactStager
from store import JobStore
from tests.fakes import write_script


@pytest.fixture
def session_factory(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'videos.db'}")
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return JobStore(session_factory)


@pytest.fixture
def stager(tmp_path):
    return ArtifactStager(
        input_dir=str(tmp_path / "inputs"),
        output_dir=str(tmp_path / "outputs"),
        max_upload_bytes=1024 * 1024,
    )


@pytest.fixture
def staged_file(stager):
    """Factory writing a fake staged input straight into the scratch area."""
    counter = {"n": 0}

    def make(data: bytes = b"raw video bytes") -> str:
        counter["n"] += 1
        path = os.path.join(stager.input_dir, f"staged_{counter['n']}.mp4")
        with open(path, "wb") as f:
            f.write(data)
        return path

    return make


@pytest.fixture
def fake_ffmpeg(tmp_path):
    """Shell script that writes bytes to its last argument, like ffmpeg's output path."""
    return write_script(
        tmp_path / "ffmpeg-ok",
        'for last in "$@"; do :; done\nprintf "webm-bytes" > "$last"\n',
    )
