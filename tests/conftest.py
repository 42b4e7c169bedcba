"""Pytest fixtures and utilities for strongbox tests."""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from strongbox.audit import AuditLogger
from strongbox.config import Settings
from strongbox.crypto import MEM_LIMIT_MIN, OPS_LIMIT_MIN
from strongbox.service import VaultService
from strongbox.storage import VaultStore

PASSWORD = b"correct-horse"


@pytest.fixture
def temp_vault_dir():
    """Create a temporary directory for vault files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def settings(temp_vault_dir):
    """Settings with the cheapest Argon2id limits so tests stay fast."""
    return Settings(
        home=temp_vault_dir / ".strongbox",
        opslimit=OPS_LIMIT_MIN,
        memlimit=MEM_LIMIT_MIN,
        access_reset_threshold=0
    )


@pytest.fixture
def store(settings):
    return VaultStore(settings.db_path, settings.access_reset_threshold)


@pytest.fixture
def audit_logger(settings):
    """Create an audit logger with temp log path."""
    return AuditLogger(settings.log_path)


@pytest.fixture
def service(store, audit_logger, settings):
    return VaultService(store, audit_logger, settings)


@pytest.fixture
def test_vault(service):
    """An initialized vault with a few credentials."""
    service.init(PASSWORD, PASSWORD)

    entries = [
        ("github", "alice", b"s3cr3t"),
        ("gitlab", "alice", b"gl-token"),
        ("email", "bob", b"mail-pass"),
        ("bank", "carol", b"pin-1234"),
    ]
    for label, user, secret in entries:
        service.add(label, user, secret, PASSWORD)

    return {
        "service": service,
        "password": PASSWORD,
        "entries": {(label, user): secret for label, user, secret in entries},
    }


@pytest.fixture
def cli_env(settings, monkeypatch):
    """Point the CLI at the temp home with fast KDF limits and a fixed password."""
    monkeypatch.setenv("STRONGBOX_HOME", str(settings.home))
    monkeypatch.setenv("STRONGBOX_KDF_OPSLIMIT", str(settings.opslimit))
    monkeypatch.setenv("STRONGBOX_KDF_MEMLIMIT", str(settings.memlimit))
    monkeypatch.setenv("STRONGBOX_PASSWORD", PASSWORD.decode())
    yield settings


@pytest.fixture
def now():
    return datetime(2026, 1, 31, 12, 0, tzinfo=timezone.utc)


def hours_ago(now, hours):
    return now - timedelta(hours=hours)


def assert_log_entry(audit_logger, result, action, target=None):
    """Helper to verify a log entry exists."""
    for line in audit_logger.read_recent(100):
        parts = line.strip().split()
        if len(parts) >= 5 and parts[2] == result and parts[3] == action:
            if target is None or parts[4] == target:
                return True
    return False
