"""Settings via pydantic-settings with WABRIDGE_ env prefix.

Timing values are in milliseconds. The completion timeouts are the only
signal that a Meta AI reply is finished: the channel never says "done", so
a reply that pauses longer than the timeout is finalized early. Raise
edit_timeout_ms if long answers get cut off.
"""

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="WABRIDGE_", env_file=".env")

    # Runtime
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "info"
    completion_model: str = "meta-ai-whatsapp"

    # Bridge process driving WhatsApp Web
    bridge_url: str = "http://localhost:3100"
    bridge_token: str = ""  # shared secret for the webhook, empty = no check
    bridge_timeout: int = 10  # seconds
    status_poll_interval: int = 15  # seconds

    # Completion detection
    debounce_ms: int = 3000
    creation_timeout_ms: int | None = None  # default 2x debounce_ms
    edit_timeout_ms: int | None = None  # default debounce_ms

    # Correlation
    poll_interval_ms: int = 100
    poll_attempts: int = 50

    # Event intake
    event_queue_size: int = 1000

    # Rate limiting (per client address, fixed window)
    rate_limit_requests: int = 100
    rate_limit_window: int = 900  # seconds

    @model_validator(mode="after")
    def _validate_timing(self) -> "Settings":
        if self.debounce_ms <= 0:
            raise ValueError("debounce_ms must be > 0")
        if self.creation_timeout_ms is not None and self.creation_timeout_ms <= 0:
            raise ValueError("creation_timeout_ms must be > 0")
        if self.edit_timeout_ms is not None and self.edit_timeout_ms <= 0:
            raise ValueError("edit_timeout_ms must be > 0")
        if self.poll_interval_ms <= 0 or self.poll_attempts <= 0:
            raise ValueError("poll_interval_ms and poll_attempts must be > 0")
        return self

    @property
    def creation_timeout(self) -> float:
        """Silence after a reply is created before it is finalized, in seconds."""
        ms = self.creation_timeout_ms if self.creation_timeout_ms is not None else 2 * self.debounce_ms
        return ms / 1000

    @property
    def edit_timeout(self) -> float:
        """Silence after an edit before the reply is finalized, in seconds."""
        ms = self.edit_timeout_ms if self.edit_timeout_ms is not None else self.debounce_ms
        return ms / 1000
