"""SQLite persistence for the vault record and credentials.

Binary fields are stored as base64 TEXT columns. Every sqlite3 error leaves
this module as StorageFailure chained to the original exception.
"""

import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional

from .errors import AlreadyExists, NotFound, StorageFailure
from .models import CredentialRecord, VaultRecord

SCHEMA = """
    CREATE TABLE IF NOT EXISTS vault (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        public_key TEXT NOT NULL,
        nonce TEXT NOT NULL,
        secret TEXT NOT NULL,
        salt TEXT NOT NULL,
        opslimit INTEGER NOT NULL,
        memlimit INTEGER NOT NULL,
        created_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS credentials (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        label TEXT NOT NULL,
        user TEXT NOT NULL,
        access_count INTEGER NOT NULL DEFAULT 0,
        secret TEXT NOT NULL,
        ephemeral TEXT NOT NULL,
        nonce TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        accessed_at TEXT,
        UNIQUE(label, user)
    );
"""

CREDENTIAL_COLUMNS = (
    "id, label, user, access_count, secret, ephemeral, nonce, "
    "created_at, updated_at, accessed_at"
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class VaultStore:
    """Persistence collaborator backed by a single SQLite file."""

    def __init__(self, db_path: Path, access_reset_threshold: int = 0):
        """Initialize the store.

        Args:
            db_path: Path to the SQLite database (created on first use)
            access_reset_threshold: Access count above which every count is
                lowered by this amount; 0 disables the reset

        """
        self.db_path = Path(db_path)
        self.access_reset_threshold = access_reset_threshold
        self._schema_ready = False

    def _prepare_file(self) -> None:
        """Create the parent directory (0700) and database file (0600)."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path.parent.chmod(0o700)
        if not self.db_path.exists():
            fd = os.open(str(self.db_path), os.O_CREAT | os.O_WRONLY, 0o600)
            os.close(fd)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection for one unit of work, committing on success."""
        try:
            if not self._schema_ready:
                self._prepare_file()
            conn = sqlite3.connect(self.db_path)
        except (OSError, sqlite3.Error) as e:
            raise StorageFailure(f"Cannot open database {self.db_path}: {e}") from e

        conn.row_factory = sqlite3.Row
        try:
            if not self._schema_ready:
                conn.executescript(SCHEMA)
                self._schema_ready = True
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageFailure(f"Database error: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # Vault

    def is_initialized(self) -> bool:
        # A read never creates the database file
        if not self.db_path.exists():
            return False
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) FROM vault").fetchone()
        return row[0] > 0

    def get_vault_record(self) -> VaultRecord:
        """Fetch the singleton vault record.

        Raises:
            NotFound: If the vault has not been initialized

        """
        if not self.db_path.exists():
            raise NotFound("Vault is not initialized")
        with self._connect() as conn:
            row = conn.execute(
                "SELECT public_key, secret, nonce, salt, opslimit, memlimit, created_at "
                "FROM vault WHERE id = 1"
            ).fetchone()

        if not row:
            raise NotFound("Vault is not initialized")
        return VaultRecord.from_row(row)

    def put_vault_record(self, record: VaultRecord) -> VaultRecord:
        """Persist the vault record. Allowed exactly once.

        Raises:
            AlreadyExists: If a vault record is already present

        """
        row = record.to_row()
        row["created_at"] = row["created_at"] or _now()

        with self._connect() as conn:
            try:
                conn.execute(
                    """INSERT INTO vault (id, public_key, nonce, secret, salt, opslimit, memlimit, created_at)
                       VALUES (1, :public_key, :nonce, :secret, :salt, :opslimit, :memlimit, :created_at)""",
                    row
                )
            except sqlite3.IntegrityError as e:
                raise AlreadyExists("Vault already initialized") from e

        return VaultRecord.from_row(row)

    # Credentials

    def get_credential(self, label: str, user: str) -> CredentialRecord:
        """Fetch a credential by its (label, user) key.

        Raises:
            NotFound: If no credential matches

        """
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {CREDENTIAL_COLUMNS} FROM credentials WHERE label = ? AND user = ?",
                (label, user)
            ).fetchone()

        if not row:
            raise NotFound(f"No credential for {label} ({user})")
        return CredentialRecord.from_row(row)

    def get_credential_by_id(self, credential_id: int) -> CredentialRecord:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {CREDENTIAL_COLUMNS} FROM credentials WHERE id = ?",
                (credential_id,)
            ).fetchone()

        if not row:
            raise NotFound(f"No credential with id {credential_id}")
        return CredentialRecord.from_row(row)

    def put_credential(self, record: CredentialRecord) -> CredentialRecord:
        """Insert or overwrite the credential keyed by (label, user).

        Overwriting replaces the encrypted secret and keeps the access
        statistics and creation time.
        """
        row = record.to_row()
        row["now"] = _now()

        with self._connect() as conn:
            conn.execute(
                """INSERT INTO credentials (label, user, secret, ephemeral, nonce, created_at, updated_at)
                   VALUES (:label, :user, :secret, :ephemeral, :nonce, :now, :now)
                   ON CONFLICT (label, user) DO UPDATE SET
                       secret = excluded.secret,
                       ephemeral = excluded.ephemeral,
                       nonce = excluded.nonce,
                       updated_at = excluded.updated_at""",
                row
            )
            stored = conn.execute(
                f"SELECT {CREDENTIAL_COLUMNS} FROM credentials WHERE label = ? AND user = ?",
                (record.label, record.user)
            ).fetchone()

        return CredentialRecord.from_row(stored)

    def list_all_credentials(self) -> List[CredentialRecord]:
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT {CREDENTIAL_COLUMNS} FROM credentials ORDER BY label, user"
            ).fetchall()
        return [CredentialRecord.from_row(row) for row in rows]

    def list_credentials(self, label_filter: Optional[str] = None,
                         user_filter: Optional[str] = None) -> List[CredentialRecord]:
        """List credentials whose label/user contain the given text (case-insensitive)."""
        query = f"SELECT {CREDENTIAL_COLUMNS} FROM credentials WHERE 1 = 1"
        params = []

        if label_filter:
            query += " AND instr(lower(label), lower(?)) > 0"
            params.append(label_filter)
        if user_filter:
            query += " AND instr(lower(user), lower(?)) > 0"
            params.append(user_filter)

        query += " ORDER BY label, user"

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [CredentialRecord.from_row(row) for row in rows]

    def delete_credential(self, credential_id: int) -> None:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM credentials WHERE id = ?", (credential_id,))
            if cursor.rowcount != 1:
                raise NotFound(f"No credential with id {credential_id}")

    def bump_access(self, credential_id: int, delta: int,
                    timestamp: Optional[datetime] = None) -> int:
        """Add delta to a credential's access count and stamp its access time.

        Triggers the baseline reset when the new count exceeds the
        configured threshold.

        Returns:
            The credential's access count after the update (and any reset)

        """
        accessed_at = (timestamp or datetime.now(timezone.utc)).isoformat()

        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE credentials SET access_count = access_count + ?, accessed_at = ? WHERE id = ?",
                (delta, accessed_at, credential_id)
            )
            if cursor.rowcount != 1:
                raise NotFound(f"No credential with id {credential_id}")

            count = self._access_count(conn, credential_id)
            if 0 < self.access_reset_threshold < count:
                self._reset_baseline(conn, self.access_reset_threshold)
                count = self._access_count(conn, credential_id)

        return count

    def reset_access_baseline(self, threshold: Optional[int] = None) -> None:
        """Lower every access count by threshold, clamping at zero."""
        threshold = self.access_reset_threshold if threshold is None else threshold
        if threshold <= 0:
            return
        with self._connect() as conn:
            self._reset_baseline(conn, threshold)

    @staticmethod
    def _access_count(conn: sqlite3.Connection, credential_id: int) -> int:
        row = conn.execute(
            "SELECT access_count FROM credentials WHERE id = ?", (credential_id,)
        ).fetchone()
        return row[0]

    @staticmethod
    def _reset_baseline(conn: sqlite3.Connection, threshold: int) -> None:
        conn.execute(
            "UPDATE credentials SET access_count = MAX(access_count - ?, 0)",
            (threshold,)
        )
