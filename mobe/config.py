"""Configuration objects for the matchmaking server runtime."""

from __future__ import annotations

from typing import Annotated, Optional, Tuple

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode


DEFAULT_ALLOWED_ORIGINS: Tuple[str, ...] = (
    "http://localhost:7700",
    "https://www.mobe-game.rf.gd",
)


class ServerConfig(BaseSettings):
    """Static configuration shared by every component of a server instance.

    Every field can be set from a ``MOBE_``-prefixed environment variable
    (``MOBE_CONFIRMATION_TIMEOUT=10``).  The port also honours a plain
    ``PORT``.  ``MOBE_ALLOWED_ORIGINS`` is comma separated.

    Attributes
    ----------
    player_idle_timeout:
        Seconds without a heartbeat or action before a session is
        force-disconnected by the cleanup sweep.
    queue_stale_timeout:
        Seconds a player may wait unmatched before being evicted from the
        queue.  Evicted players read as ``expired`` when polling.
    confirmation_timeout:
        Seconds both players have to accept a proposed match.
    match_idle_timeout:
        Seconds a game session may go without an action before teardown.
    finished_match_retention:
        How long confirmed-then-finished and cancelled matches stay
        queryable so that retries observe the terminal status.
    pairing_interval:
        Period of the pairing cycle.
    sweep_interval:
        Period of the cleanup sweep (sessions, queue, matches, games).
    count_reconnects:
        When true a ``connect`` for an already connected player bumps the
        connected-player counter again.  When false reconnects leave the
        counter untouched.
    world_width, world_height, obstacle_count, starting_health:
        Shape of the world generated for every game session.
    allowed_origins:
        Origins accepted by the CORS middleware.
    """

    player_idle_timeout: float = 60.0
    queue_stale_timeout: float = 120.0
    confirmation_timeout: float = 15.0
    match_idle_timeout: float = 300.0
    finished_match_retention: float = 60.0
    pairing_interval: float = 1.0
    sweep_interval: float = 5.0
    count_reconnects: bool = True
    world_width: int = 800
    world_height: int = 600
    obstacle_count: int = 10
    starting_health: int = 100
    allowed_origins: Annotated[Tuple[str, ...], NoDecode] = DEFAULT_ALLOWED_ORIGINS
    host: str = "0.0.0.0"
    port: int = Field(default=3000, validation_alias=AliasChoices("MOBE_PORT", "PORT", "port"))
    log_level: str = "INFO"
    error_log_path: Optional[str] = None

    model_config = {
        "env_prefix": "MOBE_",
        "case_sensitive": False,
        "extra": "ignore",
        "frozen": True,
        "populate_by_name": True,
    }

    @field_validator(
        "player_idle_timeout",
        "queue_stale_timeout",
        "confirmation_timeout",
        "match_idle_timeout",
        "pairing_interval",
        "sweep_interval",
    )
    @classmethod
    def validate_positive_duration(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Timeouts and intervals must be positive")
        return v

    @field_validator("finished_match_retention", "obstacle_count")
    @classmethod
    def validate_not_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Value cannot be negative")
        return v

    @field_validator("world_width", "world_height", "starting_health")
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("World dimensions and starting health must be positive")
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not 0 < v < 65536:
            raise ValueError("Port must be between 1 and 65535")
        return v

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def parse_allowed_origins(cls, value: object) -> object:
        """Accept a comma-separated string as well as a sequence."""
        if isinstance(value, str):
            return tuple(origin.strip() for origin in value.split(",") if origin.strip())
        return value

    @field_validator("error_log_path", mode="before")
    @classmethod
    def blank_path_is_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value
