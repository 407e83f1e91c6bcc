"""
Engine configuration.

Values come from environment variables (a local .env file is loaded when
present) and fall back to the defaults below.
"""
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).parent.parent / '.env'
if env_path.exists():
    load_dotenv(env_path)


def _get_int_env(key: str, default: int) -> int:
    """Get an int value from environment variable or use default."""
    value = os.environ.get(key)
    if value is not None:
        try:
            return int(value)
        except ValueError:
            pass
    return default


def _get_bool_env(key: str, default: bool) -> bool:
    """Get a boolean flag from environment variable or use default."""
    value = os.environ.get(key)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass(frozen=True)
class EngineSettings:
    """
    Tunable engine parameters.

    - cache_size: capacity of the diagnostics cache (oldest entry evicted first)
    - window_hours: length of the sampled tide curve after the query time
    - step_minutes: sampling resolution of the curve
    - max_window_retries: how many times the window doubles when no next
      high/low event is found
    - log_level: level applied to the ``tide_engine`` logger by the HTTP app
    - trace_memory: start tracemalloc so diagnostics can report memory deltas
    """
    cache_size: int = 20
    window_hours: int = 24
    step_minutes: int = 10
    max_window_retries: int = 3
    log_level: str = "INFO"
    trace_memory: bool = False

    def __post_init__(self):
        if self.cache_size < 1:
            raise ValueError("cache_size must be at least 1")
        if self.window_hours < 1:
            raise ValueError("window_hours must be at least 1")
        if not 1 <= self.step_minutes <= 60:
            raise ValueError("step_minutes must be between 1 and 60")
        if self.max_window_retries < 0:
            raise ValueError("max_window_retries must not be negative")
        if not isinstance(logging.getLevelName(self.log_level), int):
            raise ValueError(f"Unknown log level: {self.log_level}")

    @classmethod
    def from_env(cls) -> "EngineSettings":
        """Build settings from TIDE_* environment variables, ignoring invalid values."""
        defaults = cls()
        candidate = dict(
            cache_size=_get_int_env('TIDE_CACHE_SIZE', defaults.cache_size),
            window_hours=_get_int_env('TIDE_WINDOW_HOURS', defaults.window_hours),
            step_minutes=_get_int_env('TIDE_STEP_MINUTES', defaults.step_minutes),
            max_window_retries=_get_int_env('TIDE_MAX_WINDOW_RETRIES', defaults.max_window_retries),
            log_level=os.environ.get('TIDE_LOG_LEVEL', defaults.log_level).upper(),
            trace_memory=_get_bool_env('TIDE_TRACE_MEMORY', defaults.trace_memory),
        )
        try:
            return cls(**candidate)
        except ValueError:
            return defaults
