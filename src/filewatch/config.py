"""Configuration for the filewatch package."""

import os
from dataclasses import dataclass
from typing import Mapping, Optional


ENV_PREFIX = "FILEWATCH_"


@dataclass
class WatchdogConfig:
    """
    Configuration options for the file watchdog.

    Attributes:
        debounce_ms: Minimum milliseconds between two notifications for the same file
        health_check_interval_ms: Interval for probing native watches (0 disables)
        observer_join_timeout: Seconds to wait for an observer thread on release
        channel_maxsize: Default capacity of a change channel
        fault_history: Number of recent faults kept by the diagnostics
    """
    debounce_ms: int = 150
    health_check_interval_ms: int = 1000
    observer_join_timeout: float = 5.0
    channel_maxsize: int = 1000
    fault_history: int = 100

    def __post_init__(self):
        if self.debounce_ms < 0:
            raise ValueError(f"debounce_ms must be >= 0: {self.debounce_ms}")
        if self.health_check_interval_ms < 0:
            raise ValueError(
                f"health_check_interval_ms must be >= 0: {self.health_check_interval_ms}"
            )
        if self.observer_join_timeout < 0:
            raise ValueError(
                f"observer_join_timeout must be >= 0: {self.observer_join_timeout}"
            )
        if self.channel_maxsize < 0:
            raise ValueError(f"channel_maxsize must be >= 0: {self.channel_maxsize}")

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000.0

    @property
    def health_check_seconds(self) -> float:
        return self.health_check_interval_ms / 1000.0

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "WatchdogConfig":
        """
        Build a configuration from FILEWATCH_* environment variables.

        Args:
            environ: Mapping to read instead of os.environ

        Returns:
            Configuration with defaults for unset variables

        Raises:
            ValueError: If a variable is set to an invalid value
        """
        env = os.environ if environ is None else environ
        kwargs = {}

        def read(name: str, field_name: str, convert) -> None:
            raw = env.get(ENV_PREFIX + name)
            if raw is None or not raw.strip():
                return
            try:
                kwargs[field_name] = convert(raw.strip())
            except ValueError:
                raise ValueError(f"Invalid value for {ENV_PREFIX}{name}: {raw!r}")

        read("DEBOUNCE_MS", "debounce_ms", int)
        read("HEALTH_CHECK_MS", "health_check_interval_ms", int)
        read("JOIN_TIMEOUT", "observer_join_timeout", float)
        read("CHANNEL_MAXSIZE", "channel_maxsize", int)
        read("FAULT_HISTORY", "fault_history", int)

        return cls(**kwargs)
