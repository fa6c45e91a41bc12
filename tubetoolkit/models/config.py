"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

from pydantic import BaseModel, Field, field_validator, model_validator

from tubetoolkit.exceptions import InvalidFormatError, InvalidQualityError

SUPPORTED_FORMATS = ("mp3", "mp4", "file")
DEFAULT_FORMAT = "mp3"
DEFAULT_QUALITY = "best"

# Preset name -> yt-dlp --audio-quality value (VBR scale, 0 is best)
MP3_QUALITY_PRESETS = {
    "best": {"name": "Best (~320 kbps)", "arg": "0"},
    "good": {"name": "Good (~190 kbps)", "arg": "2"},
    "medium": {"name": "Medium (~128 kbps)", "arg": "5"},
    "low": {"name": "Low (~64 kbps)", "arg": "7"},
}

# Preset name -> yt-dlp --format selector
MP4_QUALITY_PRESETS = {
    "best": {"name": "Best available", "arg": "bestvideo+bestaudio/best"},
    "1080p": {
        "name": "Full HD (1080p)",
        "arg": "bestvideo[height<=1080]+bestaudio/best[height<=1080]",
    },
    "720p": {
        "name": "HD (720p)",
        "arg": "bestvideo[height<=720]+bestaudio/best[height<=720]",
    },
    "480p": {
        "name": "Standard (480p)",
        "arg": "bestvideo[height<=480]+bestaudio/best[height<=480]",
    },
    "360p": {
        "name": "Low (360p)",
        "arg": "bestvideo[height<=360]+bestaudio/best[height<=360]",
    },
}

# Direct file downloads are fetched as-is
FILE_QUALITY_PRESETS = {
    "best": {"name": "Original file", "arg": ""},
}

QUALITY_PRESETS = {
    "mp3": MP3_QUALITY_PRESETS,
    "mp4": MP4_QUALITY_PRESETS,
    "file": FILE_QUALITY_PRESETS,
}

PROXY_SCHEMES = ("http", "https", "socks4", "socks5")


def get_quality_preset(fmt: str, quality: str) -> dict[str, str]:
    """
    Looks up a quality preset for a format.

    Raises:
        InvalidFormatError: If the format is not supported.
        InvalidQualityError: If the preset does not exist for the format.
    """
    presets = QUALITY_PRESETS.get(fmt)
    if presets is None:
        raise InvalidFormatError(
            f"Unsupported format: '{fmt}'. Supported: {', '.join(SUPPORTED_FORMATS)}"
        )
    if quality not in presets:
        raise InvalidQualityError(
            f"Invalid quality '{quality}' for {fmt.upper()}. "
            f"Valid options: {', '.join(presets)}"
        )
    return presets[quality]


class QueueConfig(BaseModel):
    """A validated configuration model for the download queue."""

    # Storage
    output_dir: str = "./downloads"
    state_file: str = "queue_state.json"

    # Scheduling
    max_concurrent: int = 2
    max_attempts: int = 3
    retry_delay: float = 1.0
    save_interval: float = 30.0
    attempt_timeout: float | None = None

    # Egress
    proxies: list[str] = Field(default_factory=list)

    # Defaults for new jobs
    default_format: str = DEFAULT_FORMAT
    default_quality: str = DEFAULT_QUALITY

    # External tool
    ytdlp_binary: str = "yt-dlp"
    cookies_file: str = ""

    class Config:
        """Pydantic model configuration."""

        validate_assignment = True
        str_strip_whitespace = True

    @field_validator("max_concurrent")
    @classmethod
    def validate_concurrency(cls, v: int) -> int:
        """Ensures a reasonable number of simultaneous downloads."""
        if v < 1 or v > 16:
            raise ValueError("Max concurrent downloads must be between 1 and 16.")
        return v

    @field_validator("max_attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        if v < 1 or v > 10:
            raise ValueError("Max attempts must be between 1 and 10.")
        return v

    @field_validator("retry_delay")
    @classmethod
    def validate_retry_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Retry delay cannot be negative.")
        return v

    @field_validator("save_interval")
    @classmethod
    def validate_save_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Save interval must be greater than zero.")
        return v

    @field_validator("attempt_timeout")
    @classmethod
    def validate_attempt_timeout(cls, v: float | None) -> float | None:
        """A timeout of zero or less disables it."""
        if v is not None and v <= 0:
            return None
        return v

    @field_validator("proxies")
    @classmethod
    def validate_proxies(cls, v: list[str]) -> list[str]:
        """Each proxy needs an explicit scheme, e.g. 'http://ip:port'."""
        cleaned = []
        for proxy in v:
            proxy = proxy.strip()
            if not proxy:
                continue
            scheme = proxy.split("://", 1)[0].lower() if "://" in proxy else ""
            if scheme not in PROXY_SCHEMES:
                raise ValueError(
                    f"Invalid proxy '{proxy}'. Use http://ip:port or socks5://ip:port."
                )
            cleaned.append(proxy)
        return cleaned

    @field_validator("default_format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        v = v.lower()
        if v not in SUPPORTED_FORMATS:
            raise ValueError(
                f"Format must be one of: {', '.join(SUPPORTED_FORMATS)}."
            )
        return v

    @model_validator(mode="after")
    def validate_default_quality(self) -> "QueueConfig":
        """Checks that the default quality exists for the default format."""
        if self.default_quality not in QUALITY_PRESETS[self.default_format]:
            raise ValueError(
                f"Quality '{self.default_quality}' is not valid for "
                f"{self.default_format.upper()}."
            )
        return self

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that may appear in the INI file."""
        return set(cls.model_fields)
