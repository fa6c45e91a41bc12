import pytest
from typer.testing import CliRunner

from tubetoolkit import __version__
from tubetoolkit.cli import app as app_module
from tubetoolkit.models.job import Job
from tubetoolkit.storage.state_store import SchedulerSnapshot, StateStore

runner = CliRunner()


@pytest.fixture
def config_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(app_module, "CONFIG_FILE", tmp_path / "config.ini")
    return tmp_path


def save_state(config_dir, *urls):
    store = StateStore(config_dir / "queue_state.json")
    store.save(SchedulerSnapshot(queue=[Job(url=u) for u in urls]))
    return store


def test_version():
    result = runner.invoke(app_module.app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_show_config_reads_ini_values(config_dir):
    (config_dir / "config.ini").write_text(
        "[DEFAULT]\nmax_concurrent = 4\n", encoding="utf-8"
    )
    result = runner.invoke(app_module.app, ["--show-config"])
    assert result.exit_code == 0
    assert "max_concurrent = 4" in result.output


def test_status_without_state(config_dir):
    result = runner.invoke(app_module.app, ["status"])
    assert result.exit_code == 0
    assert "No queue state found" in result.output


def test_status_shows_saved_queue(config_dir):
    save_state(config_dir, "https://youtu.be/a", "https://youtu.be/b")
    result = runner.invoke(app_module.app, ["status"])
    assert result.exit_code == 0
    assert "Queue Status" in result.output
    assert "MP3" in result.output


def test_clear_drops_queued_jobs(config_dir):
    store = save_state(config_dir, "https://youtu.be/a", "https://youtu.be/b")
    result = runner.invoke(app_module.app, ["clear", "--force"])
    assert result.exit_code == 0
    assert "Removed 2 queued download(s)" in result.output
    assert store.load().queue == []


def test_clear_all_deletes_state(config_dir):
    store = save_state(config_dir, "https://youtu.be/a")
    result = runner.invoke(app_module.app, ["clear", "--all", "--force"])
    assert result.exit_code == 0
    assert not store.path.exists()


def test_download_rejects_bad_quality(config_dir):
    result = runner.invoke(
        app_module.app, ["download", "https://youtu.be/a", "-f", "mp4", "-q", "4k"]
    )
    assert result.exit_code == 1
    assert "ConfigurationError" in result.output


def test_download_without_urls(config_dir):
    result = runner.invoke(app_module.app, ["download"])
    assert result.exit_code == 1
    assert "No URLs provided" in result.output


def test_resume_with_empty_queue(config_dir):
    result = runner.invoke(app_module.app, ["resume"])
    assert result.exit_code == 0
    assert "Nothing to resume" in result.output


def test_expand_sources_reads_files_and_dedupes(tmp_path):
    url_file = tmp_path / "urls.txt"
    url_file.write_text(
        "# weekend playlist\nhttps://youtu.be/a\n\nhttps://youtu.be/b\n",
        encoding="utf-8",
    )
    urls = app_module.expand_sources(
        ["https://youtu.be/b", str(url_file), "https://youtu.be/a"]
    )
    assert urls == ["https://youtu.be/b", "https://youtu.be/a"]
