import logging
from pathlib import Path

import pytest

from tubetoolkit.exceptions import (
    ConfigurationError,
    InvalidFormatError,
    InvalidQualityError,
)
from tubetoolkit.models.config import QueueConfig, get_quality_preset
from tubetoolkit.storage.config_manager import ConfigManager


def write_ini(tmp_path: Path, body: str) -> Path:
    path = tmp_path / "config.ini"
    path.write_text("[DEFAULT]\n" + body, encoding="utf-8")
    return path


def test_missing_file_uses_defaults(tmp_path):
    config = ConfigManager(tmp_path / "config.ini").load_config()
    assert config.max_concurrent == 2
    assert config.max_attempts == 3
    assert config.output_dir == "./downloads"
    assert config.attempt_timeout is None
    assert config.proxies == []
    assert config.state_file == str(tmp_path / "queue_state.json")


def test_reads_ini_values(tmp_path):
    path = write_ini(
        tmp_path,
        "max_concurrent = 4\n"
        "retry_delay = 2.5\n"
        "attempt_timeout = 600\n"
        "proxies = http://10.0.0.1:8080, socks5://10.0.0.2:1080\n"
        "default_format = MP4\n"
        "default_quality = 720p\n"
        "state_file = /var/lib/tubetoolkit/state.json\n",
    )
    config = ConfigManager(path).load_config()
    assert config.max_concurrent == 4
    assert config.retry_delay == 2.5
    assert config.attempt_timeout == 600
    assert config.proxies == ["http://10.0.0.1:8080", "socks5://10.0.0.2:1080"]
    assert config.default_format == "mp4"
    assert config.default_quality == "720p"
    assert config.state_file == "/var/lib/tubetoolkit/state.json"


def test_cli_options_override_file(tmp_path):
    path = write_ini(tmp_path, "max_concurrent = 4\nmax_attempts = 5\n")
    config = ConfigManager(path).load_config({"max_concurrent": 1})
    assert config.max_concurrent == 1
    assert config.max_attempts == 5


def test_out_of_range_value_is_rejected(tmp_path):
    path = write_ini(tmp_path, "max_concurrent = 0\n")
    with pytest.raises(ConfigurationError, match="validation failed"):
        ConfigManager(path).load_config()


def test_non_numeric_value_is_rejected(tmp_path):
    path = write_ini(tmp_path, "max_attempts = lots\n")
    with pytest.raises(ConfigurationError, match="max_attempts"):
        ConfigManager(path).load_config()


def test_unknown_keys_are_reported(tmp_path, caplog):
    path = write_ini(tmp_path, "colour = blue\n")
    with caplog.at_level(logging.WARNING):
        ConfigManager(path).load_config()
    assert "colour" in caplog.text


def test_proxy_requires_scheme():
    with pytest.raises(ValueError, match="Invalid proxy"):
        QueueConfig(proxies=["10.0.0.1:8080"])
    assert QueueConfig(proxies=[" https://p:1 ", ""]).proxies == ["https://p:1"]


def test_default_quality_must_match_format():
    with pytest.raises(ValueError, match="not valid"):
        QueueConfig(default_format="mp3", default_quality="720p")
    assert QueueConfig(default_format="file").default_quality == "best"


def test_non_positive_timeout_disables_it():
    assert QueueConfig(attempt_timeout=0).attempt_timeout is None
    assert QueueConfig(attempt_timeout=-5).attempt_timeout is None


def test_quality_presets():
    assert get_quality_preset("mp3", "good")["arg"] == "2"
    assert "height<=1080" in get_quality_preset("mp4", "1080p")["arg"]
    with pytest.raises(InvalidFormatError):
        get_quality_preset("flac", "best")
    with pytest.raises(InvalidQualityError):
        get_quality_preset("mp3", "1080p")
