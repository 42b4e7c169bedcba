"""Tests for environment-driven settings."""

from pathlib import Path

import pytest

from strongbox.config import (
    ACCESS_RESET_THRESHOLD,
    DEFAULT_HOME,
    Settings,
)
from strongbox.crypto import MEM_LIMIT, MEM_LIMIT_MIN, OPS_LIMIT, OPS_LIMIT_MIN
from strongbox.errors import ValidationFailure
from strongbox.ranking import MIN_SCORE_THRESHOLD


class TestFromEnv:
    """Tests for Settings.from_env."""

    def test_defaults(self):
        settings = Settings.from_env(environ={})

        assert settings.home == DEFAULT_HOME
        assert settings.opslimit == OPS_LIMIT
        assert settings.memlimit == MEM_LIMIT
        assert settings.search_threshold == MIN_SCORE_THRESHOLD
        assert settings.access_reset_threshold == ACCESS_RESET_THRESHOLD

    def test_overrides(self, temp_vault_dir):
        settings = Settings.from_env(environ={
            "STRONGBOX_HOME": str(temp_vault_dir),
            "STRONGBOX_KDF_OPSLIMIT": str(OPS_LIMIT_MIN),
            "STRONGBOX_KDF_MEMLIMIT": str(MEM_LIMIT_MIN),
            "STRONGBOX_SEARCH_THRESHOLD": "0.5",
            "STRONGBOX_ACCESS_RESET_THRESHOLD": "0",
        })

        assert settings.home == temp_vault_dir
        assert settings.db_path == temp_vault_dir / "strongbox.db"
        assert settings.log_path == temp_vault_dir / "access.log"
        assert settings.opslimit == OPS_LIMIT_MIN
        assert settings.search_threshold == 0.5
        assert settings.access_reset_threshold == 0

    def test_explicit_home_wins(self, temp_vault_dir):
        settings = Settings.from_env(
            home=str(temp_vault_dir / "flag"),
            environ={"STRONGBOX_HOME": str(temp_vault_dir / "env")}
        )
        assert settings.home == temp_vault_dir / "flag"

    def test_home_expands_user(self):
        settings = Settings.from_env(environ={"STRONGBOX_HOME": "~/vaults"})
        assert settings.home == Path.home() / "vaults"

    @pytest.mark.parametrize("name", [
        "STRONGBOX_KDF_OPSLIMIT",
        "STRONGBOX_SEARCH_THRESHOLD",
        "STRONGBOX_ACCESS_RESET_THRESHOLD",
    ])
    def test_not_a_number(self, name):
        with pytest.raises(ValidationFailure, match=name):
            Settings.from_env(environ={name: "lots"})

    def test_kdf_limits_below_minimum(self):
        with pytest.raises(ValidationFailure):
            Settings.from_env(environ={"STRONGBOX_KDF_MEMLIMIT": "1024"})

    def test_negative_reset_threshold(self):
        with pytest.raises(ValidationFailure):
            Settings(access_reset_threshold=-1)
