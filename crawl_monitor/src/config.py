"""Application configuration management."""
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Monitor settings loaded from environment variables."""

    # Control API Configuration
    api_base_url: str = "http://localhost:8080/api"
    request_timeout: float = 30.0  # seconds, applies to every control call

    # Event Channel Configuration
    ws_url: str = "ws://localhost:8080/ws/websocket"
    channel_protocol: Literal["stomp", "json"] = "stomp"
    topic_template: str = "/topic/crawler/{session_id}/progress"
    reconnect_max_attempts: int = 5
    reconnect_base_delay: float = 1.0
    reconnect_max_delay: float = 30.0

    # Aggregate State Configuration
    log_buffer_capacity: int = 100
    activity_log: bool = True  # one log line per page/flow/extraction/download

    # Logging Configuration
    log_level: str = "INFO"

    # Model Configuration
    model_config = SettingsConfigDict(
        env_prefix="CRAWL_MONITOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    def channel_url(self, session_id: str, protocol: Optional[str] = None) -> str:
        """Get the WebSocket URL for a session.

        In ``json`` mode the server pushes bare envelopes on a per-session path,
        so ``{session_id}`` in ``ws_url`` is substituted. In ``stomp`` mode the
        session is selected by the subscription topic instead.
        """
        if "{session_id}" in self.ws_url:
            return self.ws_url.format(session_id=session_id)
        if (protocol or self.channel_protocol) == "json":
            return f"{self.ws_url.rstrip('/')}/{session_id}"
        return self.ws_url

    def topic(self, session_id: str) -> str:
        """Get the STOMP destination carrying a session's progress updates."""
        return self.topic_template.format(session_id=session_id)


# Global settings instance
settings = Settings()
