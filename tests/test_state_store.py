import json
import logging

from tubetoolkit.models.job import Job, JobState, ProgressSample
from tubetoolkit.storage.state_store import SchedulerSnapshot, StateStore


def make_snapshot():
    running = Job(url="https://example.com/watch?v=1", title="Running")
    running.mark_processing()
    running.progress = ProgressSample(percent=42.0, rate="1.2MiB/s", eta="00:30")
    waiting = Job(url="https://example.com/watch?v=2")
    done = Job(url="https://example.com/watch?v=3", variant="mp4", quality="720p")
    done.mark_processing()
    done.mark_completed()
    broken = Job(url="https://example.com/watch?v=4", max_attempts=1)
    broken.mark_processing()
    broken.attempts = 1
    broken.mark_failed("Video unavailable")
    return SchedulerSnapshot(
        queue=[running, waiting],
        completed=[done],
        failed=[broken],
        start_time=1_700_000_000.0,
    )


def test_crash_resume_requeues_processing_jobs(tmp_path):
    store = StateStore(tmp_path / "queue_state.json")
    assert store.save(make_snapshot())

    snapshot = store.load()
    assert [job.state for job in snapshot.queue] == [JobState.QUEUED, JobState.QUEUED]
    assert snapshot.queue[0].title == "Running"
    assert snapshot.queue[0].progress is None
    assert snapshot.queue[0].started_at is None
    assert snapshot.completed[0].quality == "720p"
    assert snapshot.completed[0].state is JobState.COMPLETED
    assert snapshot.failed[0].error == "Video unavailable"
    assert snapshot.start_time == 1_700_000_000.0
    assert snapshot.last_saved is not None


def test_saved_file_layout(tmp_path):
    path = tmp_path / "queue_state.json"
    StateStore(path).save(make_snapshot())

    data = json.loads(path.read_text(encoding="utf-8"))
    assert set(data) == {"queue", "completed", "failed", "startTime", "lastSaved"}
    assert data["startTime"] == 1_700_000_000_000
    assert data["queue"][0]["state"] == "processing"
    assert not (tmp_path / "queue_state.json.tmp").exists()


def test_missing_file_is_a_cold_start(tmp_path):
    snapshot = StateStore(tmp_path / "missing.json").load()
    assert snapshot.is_empty
    assert snapshot.start_time is None


def test_corrupt_file_is_a_cold_start(tmp_path, caplog):
    path = tmp_path / "queue_state.json"
    path.write_text("{not json", encoding="utf-8")
    with caplog.at_level(logging.WARNING):
        snapshot = StateStore(path).load()
    assert snapshot.is_empty
    assert "unreadable" in caplog.text


def test_non_object_state_is_a_cold_start(tmp_path):
    path = tmp_path / "queue_state.json"
    path.write_text("[1, 2, 3]", encoding="utf-8")
    assert StateStore(path).load().is_empty


def test_save_failure_is_logged_not_raised(tmp_path, caplog):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("", encoding="utf-8")
    store = StateStore(blocker / "queue_state.json")
    with caplog.at_level(logging.WARNING):
        assert store.save(make_snapshot()) is False
    assert "Could not save queue state" in caplog.text


def test_clear_removes_state_file(tmp_path):
    path = tmp_path / "queue_state.json"
    store = StateStore(path)
    store.save(make_snapshot())
    assert store.clear()
    assert not path.exists()
    assert store.clear()
