import json

from tubetoolkit.models.events import EventBus, EventType, QueueEvent
from tubetoolkit.models.job import Job
from tubetoolkit.utils.structured_logger import QueueEventLogger, StructuredLogger


def read_entries(logger):
    return [
        json.loads(line)
        for line in logger.path.read_text(encoding="utf-8").splitlines()
    ]


def test_writes_json_lines_with_session_context(tmp_path):
    with StructuredLogger(tmp_path / "logs") as logger:
        logger.set_session_context(max_concurrent=2)
        logger.info("session_started", urls=3)
        logger.error("job_failed", job_id="abc", error="boom")

    entries = read_entries(logger)
    assert [e["event"] for e in entries] == ["session_started", "job_failed"]
    assert entries[0]["urls"] == 3
    assert entries[0]["max_concurrent"] == 2
    assert entries[1]["level"] == "ERROR"
    assert entries[0]["session_id"] == entries[1]["session_id"]
    assert not logger.enabled


def test_disabled_without_directory():
    logger = StructuredLogger()
    logger.info("anything", value=1)
    assert logger.path is None
    assert not logger.enabled


def test_queue_event_logger_journals_lifecycle(tmp_path):
    bus = EventBus()
    logger = StructuredLogger(tmp_path)
    journal = QueueEventLogger(logger)
    journal.attach(bus)

    job = Job(url="https://youtu.be/abc", title="Intro")
    job.mark_processing()
    bus.emit(QueueEvent(EventType.JOB_STARTED, job=job))
    bus.emit(QueueEvent(EventType.QUEUE_CHANGED, status={"queue": 0}))
    job.attempts = 1
    bus.emit(QueueEvent(EventType.JOB_RETRY, job=job, error="HTTP Error 500"))
    job.requeue("HTTP Error 500")
    job.mark_processing()
    job.size_bytes = 1024
    job.mark_completed()
    bus.emit(QueueEvent(EventType.JOB_COMPLETED, job=job))

    journal.detach()
    bus.emit(QueueEvent(EventType.JOB_FAILED, job=job, error="late"))
    logger.close()

    entries = read_entries(logger)
    assert [e["event"] for e in entries] == ["job_started", "job_retry", "job_completed"]
    assert entries[1]["error"] == "HTTP Error 500"
    assert entries[1]["level"] == "WARNING"
    assert entries[2]["size_bytes"] == 1024
    assert entries[2]["job_id"] == job.id
