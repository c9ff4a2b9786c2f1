"""Settings package for Storyboard Factory.

- _paths.py: Path constant for the settings file
- _types.py: Shared constants (log levels, unavailable policies, env overrides)
- _validation.py: Settings validation
- _env.py: Environment variable overrides
- _settings.py: Main Settings dataclass
"""

from storyboard.settings._env import apply_env_overrides
from storyboard.settings._paths import SETTINGS_FILE
from storyboard.settings._settings import Settings
from storyboard.settings._types import (
    ENV_OVERRIDES,
    LOG_LEVELS,
    UNAVAILABLE_POLICIES,
    UnavailablePolicy,
)

__all__ = [
    "ENV_OVERRIDES",
    "LOG_LEVELS",
    "SETTINGS_FILE",
    "UNAVAILABLE_POLICIES",
    "Settings",
    "UnavailablePolicy",
    "apply_env_overrides",
]
