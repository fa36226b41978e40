"""Provisioning storage backends.

Durable mapping from local users to their Odoo identities:
- InMemoryProvisioningRepository: For development/testing
- SQLiteProvisioningRepository: For single-server deployments

The (local_user_id, remote_database_id) uniqueness constraint is the only
arbiter between concurrent provisioning sagas; an insert that violates it
raises ConflictDetected and the caller re-reads the winner's record.
"""

import dataclasses
import sqlite3
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from core.observability.logging import get_logger
from core.provisioning.errors import ConflictDetected, NotFound, StorageError
from core.provisioning.models import LocalUser, OdooDatabase, ProvisioningRecord

logger = get_logger(__name__)


UPDATABLE_FIELDS = {"encrypted_api_key", "is_active", "last_synced_at", "updated_at"}


def _check_patch(patch: Dict[str, Any]) -> None:
    unknown = set(patch) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update provisioning record fields: {sorted(unknown)}")


class ProvisioningRepository(ABC):
    """Abstract base class for provisioning storage."""

    @abstractmethod
    async def find_local_user(self, local_user_id: str) -> Optional[LocalUser]:
        """Look up a local user."""
        pass

    @abstractmethod
    async def find_odoo_database(self, organization_id: str) -> Optional[OdooDatabase]:
        """Look up the Odoo database mapped to an organization."""
        pass

    @abstractmethod
    async def find_provisioning_record(
        self,
        local_user_id: str,
        remote_database_id: Optional[str] = None,
    ) -> Optional[ProvisioningRecord]:
        """Look up a record, optionally scoped to one Odoo database."""
        pass

    @abstractmethod
    async def insert_provisioning_record(self, record: ProvisioningRecord) -> ProvisioningRecord:
        """Insert a new record and return it with its id.

        Raises:
            ConflictDetected: A record already exists for the user and database
            StorageError: Any other storage failure
        """
        pass

    @abstractmethod
    async def update_provisioning_record(self, record_id: str, patch: Dict[str, Any]) -> ProvisioningRecord:
        """Apply a partial update and return the updated record.

        Raises:
            NotFound: No record with that id
            StorageError: Any other storage failure
        """
        pass

    @abstractmethod
    async def upsert_local_user(self, user: LocalUser) -> LocalUser:
        """Create or replace a local user."""
        pass

    @abstractmethod
    async def register_odoo_database(self, database: OdooDatabase) -> OdooDatabase:
        """Create or replace an organization's Odoo database mapping."""
        pass


class InMemoryProvisioningRepository(ProvisioningRepository):
    """In-memory provisioning storage for development/testing.

    WARNING: Records are lost on restart. Use only for development.
    """

    def __init__(self):
        self._users: Dict[str, LocalUser] = {}
        self._databases: Dict[str, OdooDatabase] = {}
        self._records: Dict[Tuple[str, str], ProvisioningRecord] = {}
        self._lock = threading.Lock()

    async def find_local_user(self, local_user_id: str) -> Optional[LocalUser]:
        with self._lock:
            user = self._users.get(local_user_id)
            return dataclasses.replace(user) if user else None

    async def find_odoo_database(self, organization_id: str) -> Optional[OdooDatabase]:
        with self._lock:
            db = self._databases.get(organization_id)
            return dataclasses.replace(db) if db else None

    async def find_provisioning_record(
        self,
        local_user_id: str,
        remote_database_id: Optional[str] = None,
    ) -> Optional[ProvisioningRecord]:
        with self._lock:
            for (user_id, db_id), record in self._records.items():
                if user_id == local_user_id and (remote_database_id is None or db_id == remote_database_id):
                    return dataclasses.replace(record)
            return None

    async def insert_provisioning_record(self, record: ProvisioningRecord) -> ProvisioningRecord:
        key = (record.local_user_id, record.remote_database_id)
        with self._lock:
            if key in self._records:
                raise ConflictDetected(
                    "Provisioning record already exists",
                    {"local_user_id": record.local_user_id, "remote_database_id": record.remote_database_id},
                )
            stored = dataclasses.replace(record, id=record.id or str(uuid.uuid4()))
            self._records[key] = stored
            return dataclasses.replace(stored)

    async def update_provisioning_record(self, record_id: str, patch: Dict[str, Any]) -> ProvisioningRecord:
        _check_patch(patch)
        with self._lock:
            for key, record in self._records.items():
                if record.id == record_id:
                    changes = {"updated_at": datetime.utcnow(), **patch}
                    self._records[key] = dataclasses.replace(record, **changes)
                    return dataclasses.replace(self._records[key])
        raise NotFound(f"Provisioning record {record_id} not found")

    async def upsert_local_user(self, user: LocalUser) -> LocalUser:
        with self._lock:
            self._users[user.id] = dataclasses.replace(user)
        return user

    async def register_odoo_database(self, database: OdooDatabase) -> OdooDatabase:
        with self._lock:
            self._databases[database.organization_id] = dataclasses.replace(database)
        return database


# =============================================================================
# SQLite
# =============================================================================

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS local_users (
        id TEXT PRIMARY KEY,
        email TEXT NOT NULL,
        name TEXT,
        role TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS odoo_databases (
        id TEXT PRIMARY KEY,
        organization_id TEXT NOT NULL UNIQUE,
        database_name TEXT NOT NULL,
        admin_login TEXT NOT NULL,
        encrypted_admin_password BLOB NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS provisioning_records (
        id TEXT PRIMARY KEY,
        local_user_id TEXT NOT NULL,
        remote_database_id TEXT NOT NULL,
        remote_uid INTEGER NOT NULL,
        remote_login TEXT NOT NULL,
        encrypted_password BLOB NOT NULL,
        encrypted_api_key BLOB,
        is_active INTEGER NOT NULL DEFAULT 1,
        last_synced_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT,
        UNIQUE(local_user_id, remote_database_id)
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_provisioning_records_user
    ON provisioning_records(local_user_id)
    """,
]


def _dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _row_to_record(row: sqlite3.Row) -> ProvisioningRecord:
    return ProvisioningRecord(
        id=row["id"],
        local_user_id=row["local_user_id"],
        remote_database_id=row["remote_database_id"],
        remote_uid=row["remote_uid"],
        remote_login=row["remote_login"],
        encrypted_password=bytes(row["encrypted_password"]),
        encrypted_api_key=bytes(row["encrypted_api_key"]) if row["encrypted_api_key"] is not None else None,
        is_active=bool(row["is_active"]),
        last_synced_at=_dt(row["last_synced_at"]),
        created_at=_dt(row["created_at"]),
        updated_at=_dt(row["updated_at"]),
    )


class SQLiteProvisioningRepository(ProvisioningRepository):
    """SQLite-backed provisioning storage.

    One connection per operation; tables are created on first use.

    Usage:
        repo = SQLiteProvisioningRepository("provisioning.db")
        record = await repo.find_provisioning_record("u1")
    """

    def __init__(self, db_path: Union[str, Path] = "provisioning.db"):
        self.db_path = str(db_path)
        self._lock = threading.Lock()
        self.init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create tables and indexes if missing."""
        try:
            conn = self._connect()
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open provisioning database: {e}", {"db_path": self.db_path})
        try:
            cursor = conn.cursor()
            for statement in SCHEMA:
                cursor.execute(statement)
            conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to initialize provisioning tables: {e}")
        finally:
            conn.close()

    def _fetch_one(self, query: str, params: tuple) -> Optional[sqlite3.Row]:
        with self._lock:
            conn = self._connect()
            try:
                return conn.execute(query, params).fetchone()
            except sqlite3.Error as e:
                raise StorageError(f"Provisioning query failed: {e}")
            finally:
                conn.close()

    def _execute(self, query: str, params: tuple) -> int:
        with self._lock:
            conn = self._connect()
            try:
                cursor = conn.execute(query, params)
                conn.commit()
                return cursor.rowcount
            except sqlite3.IntegrityError:
                raise
            except sqlite3.Error as e:
                raise StorageError(f"Provisioning write failed: {e}")
            finally:
                conn.close()

    async def find_local_user(self, local_user_id: str) -> Optional[LocalUser]:
        row = self._fetch_one("SELECT * FROM local_users WHERE id = ?", (local_user_id,))
        if row is None:
            return None
        return LocalUser(id=row["id"], email=row["email"], name=row["name"], role=row["role"])

    async def find_odoo_database(self, organization_id: str) -> Optional[OdooDatabase]:
        row = self._fetch_one("SELECT * FROM odoo_databases WHERE organization_id = ?", (organization_id,))
        if row is None:
            return None
        return OdooDatabase(
            id=row["id"],
            organization_id=row["organization_id"],
            database_name=row["database_name"],
            admin_login=row["admin_login"],
            encrypted_admin_password=bytes(row["encrypted_admin_password"]),
        )

    async def find_provisioning_record(
        self,
        local_user_id: str,
        remote_database_id: Optional[str] = None,
    ) -> Optional[ProvisioningRecord]:
        if remote_database_id is None:
            row = self._fetch_one(
                "SELECT * FROM provisioning_records WHERE local_user_id = ? ORDER BY created_at LIMIT 1",
                (local_user_id,),
            )
        else:
            row = self._fetch_one(
                "SELECT * FROM provisioning_records WHERE local_user_id = ? AND remote_database_id = ?",
                (local_user_id, remote_database_id),
            )
        return _row_to_record(row) if row else None

    async def insert_provisioning_record(self, record: ProvisioningRecord) -> ProvisioningRecord:
        stored = dataclasses.replace(record, id=record.id or str(uuid.uuid4()))
        try:
            self._execute(
                """
                INSERT INTO provisioning_records
                (id, local_user_id, remote_database_id, remote_uid, remote_login,
                 encrypted_password, encrypted_api_key, is_active,
                 last_synced_at, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    stored.id,
                    stored.local_user_id,
                    stored.remote_database_id,
                    stored.remote_uid,
                    stored.remote_login,
                    stored.encrypted_password,
                    stored.encrypted_api_key,
                    int(stored.is_active),
                    stored.last_synced_at.isoformat() if stored.last_synced_at else None,
                    stored.created_at.isoformat(),
                    stored.updated_at.isoformat() if stored.updated_at else None,
                ),
            )
        except sqlite3.IntegrityError as e:
            raise ConflictDetected(
                f"Provisioning record already exists: {e}",
                {"local_user_id": record.local_user_id, "remote_database_id": record.remote_database_id},
            )
        return stored

    async def update_provisioning_record(self, record_id: str, patch: Dict[str, Any]) -> ProvisioningRecord:
        _check_patch(patch)
        changes = {"updated_at": datetime.utcnow(), **patch}

        columns = []
        values = []
        for column, value in changes.items():
            if isinstance(value, datetime):
                value = value.isoformat()
            elif isinstance(value, bool):
                value = int(value)
            columns.append(f"{column} = ?")
            values.append(value)

        try:
            updated = self._execute(
                f"UPDATE provisioning_records SET {', '.join(columns)} WHERE id = ?",
                (*values, record_id),
            )
        except sqlite3.IntegrityError as e:
            raise StorageError(f"Provisioning update rejected: {e}")
        if updated == 0:
            raise NotFound(f"Provisioning record {record_id} not found")

        row = self._fetch_one("SELECT * FROM provisioning_records WHERE id = ?", (record_id,))
        return _row_to_record(row)

    async def upsert_local_user(self, user: LocalUser) -> LocalUser:
        try:
            self._execute(
                "INSERT OR REPLACE INTO local_users (id, email, name, role) VALUES (?, ?, ?, ?)",
                (user.id, user.email, user.name, user.role),
            )
        except sqlite3.IntegrityError as e:
            raise StorageError(f"Cannot store local user: {e}")
        return user

    async def register_odoo_database(self, database: OdooDatabase) -> OdooDatabase:
        try:
            self._execute(
                """
                INSERT INTO odoo_databases
                (id, organization_id, database_name, admin_login, encrypted_admin_password)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(organization_id) DO UPDATE SET
                    database_name = excluded.database_name,
                    admin_login = excluded.admin_login,
                    encrypted_admin_password = excluded.encrypted_admin_password
                """,
                (
                    database.id,
                    database.organization_id,
                    database.database_name,
                    database.admin_login,
                    database.encrypted_admin_password,
                ),
            )
        except sqlite3.IntegrityError as e:
            raise StorageError(f"Cannot register Odoo database: {e}")
        logger.info(f"Registered Odoo database {database.database_name} for {database.organization_id}")
        # The stored id wins when the organization was already registered
        return await self.find_odoo_database(database.organization_id)
