"""Runtime configuration.

Defaults live in module constants; each can be overridden through an
environment variable so tests and automation never touch ~/.strongbox.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from .crypto import MEM_LIMIT, OPS_LIMIT, validate_kdf_limits
from .errors import ValidationFailure
from .ranking import MIN_SCORE_THRESHOLD

# Constants
DEFAULT_HOME = Path.home() / ".strongbox"
DB_FILENAME = "strongbox.db"
LOG_FILENAME = "access.log"
ACCESS_RESET_THRESHOLD = 500
LOG_RETENTION_DAYS = 30

# Environment variables
ENV_HOME = "STRONGBOX_HOME"
ENV_PASSWORD = "STRONGBOX_PASSWORD"
ENV_OPSLIMIT = "STRONGBOX_KDF_OPSLIMIT"
ENV_MEMLIMIT = "STRONGBOX_KDF_MEMLIMIT"
ENV_SEARCH_THRESHOLD = "STRONGBOX_SEARCH_THRESHOLD"
ENV_ACCESS_RESET_THRESHOLD = "STRONGBOX_ACCESS_RESET_THRESHOLD"


@dataclass
class Settings:
    """Resolved configuration for one invocation."""

    home: Path = DEFAULT_HOME
    opslimit: int = OPS_LIMIT
    memlimit: int = MEM_LIMIT
    search_threshold: float = MIN_SCORE_THRESHOLD
    access_reset_threshold: int = ACCESS_RESET_THRESHOLD    # 0 disables the reset
    log_retention_days: int = LOG_RETENTION_DAYS

    def __post_init__(self):
        self.home = Path(self.home)
        validate_kdf_limits(self.opslimit, self.memlimit)
        if self.access_reset_threshold < 0:
            raise ValidationFailure("Access reset threshold must not be negative")

    @property
    def db_path(self) -> Path:
        return self.home / DB_FILENAME

    @property
    def log_path(self) -> Path:
        return self.home / LOG_FILENAME

    @classmethod
    def from_env(cls, home: Optional[str] = None,
                 environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from environment variables.

        Args:
            home: Explicit home directory (e.g. from --home), wins over the env
            environ: Mapping to read instead of os.environ

        Raises:
            ValidationFailure: If a numeric variable cannot be parsed

        """
        env = os.environ if environ is None else environ

        return cls(
            home=Path(home or env.get(ENV_HOME) or DEFAULT_HOME).expanduser(),
            opslimit=_read_number(env, ENV_OPSLIMIT, int, OPS_LIMIT),
            memlimit=_read_number(env, ENV_MEMLIMIT, int, MEM_LIMIT),
            search_threshold=_read_number(env, ENV_SEARCH_THRESHOLD, float, MIN_SCORE_THRESHOLD),
            access_reset_threshold=_read_number(
                env, ENV_ACCESS_RESET_THRESHOLD, int, ACCESS_RESET_THRESHOLD
            ),
        )


def _read_number(env: Mapping[str, str], name: str, kind, default):
    raw = env.get(name)
    if not raw:
        return default
    try:
        return kind(raw)
    except ValueError as e:
        raise ValidationFailure(f"{name} must be a number, got {raw!r}") from e
