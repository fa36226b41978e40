"""Tests for provisioning storage backends."""

import sqlite3
from datetime import datetime

import pytest

from core.provisioning.errors import ConflictDetected, NotFound, StorageError
from core.provisioning.models import LocalUser, OdooDatabase, ProvisioningRecord
from core.provisioning.repository import InMemoryProvisioningRepository, SQLiteProvisioningRepository


def make_record(**overrides) -> ProvisioningRecord:
    values = dict(
        local_user_id="u1",
        remote_database_id="db-1",
        remote_uid=42,
        remote_login="u1@example.com",
        encrypted_password=b"\x01pw",
    )
    values.update(overrides)
    return ProvisioningRecord(**values)


@pytest.fixture(params=["memory", "sqlite"])
def storage(request, tmp_path):
    if request.param == "memory":
        return InMemoryProvisioningRepository()
    return SQLiteProvisioningRepository(tmp_path / "provisioning.db")


class TestProvisioningRepository:

    async def test_local_user_roundtrip(self, storage):
        await storage.upsert_local_user(LocalUser(id="u1", email="u1@example.com", role="admin"))
        user = await storage.find_local_user("u1")
        assert user.email == "u1@example.com"
        assert user.role == "admin"
        assert await storage.find_local_user("missing") is None

    async def test_register_database_replaces_mapping(self, storage):
        await storage.register_odoo_database(
            OdooDatabase(id="db-1", organization_id="org1", database_name="acme", admin_login="admin", encrypted_admin_password=b"a")
        )
        await storage.register_odoo_database(
            OdooDatabase(id="db-2", organization_id="org1", database_name="acme2", admin_login="root", encrypted_admin_password=b"b")
        )

        database = await storage.find_odoo_database("org1")
        assert database.database_name == "acme2"
        assert database.admin_login == "root"
        assert database.encrypted_admin_password == b"b"
        assert await storage.find_odoo_database("org2") is None

    async def test_insert_assigns_id(self, storage):
        stored = await storage.insert_provisioning_record(make_record())
        assert stored.id

        found = await storage.find_provisioning_record("u1", "db-1")
        assert found.id == stored.id
        assert found.remote_uid == 42
        assert found.encrypted_password == b"\x01pw"
        assert found.encrypted_api_key is None
        assert found.is_active is True

    async def test_find_scoped_to_database(self, storage):
        await storage.insert_provisioning_record(make_record())
        assert await storage.find_provisioning_record("u1", "db-2") is None
        assert (await storage.find_provisioning_record("u1")).remote_database_id == "db-1"

    async def test_duplicate_insert_conflicts(self, storage):
        await storage.insert_provisioning_record(make_record())
        with pytest.raises(ConflictDetected):
            await storage.insert_provisioning_record(make_record(remote_uid=43))

        assert (await storage.find_provisioning_record("u1", "db-1")).remote_uid == 42

    async def test_same_user_other_database_allowed(self, storage):
        await storage.insert_provisioning_record(make_record())
        await storage.insert_provisioning_record(make_record(remote_database_id="db-2", remote_uid=7))
        assert (await storage.find_provisioning_record("u1", "db-2")).remote_uid == 7

    async def test_update_patch(self, storage):
        stored = await storage.insert_provisioning_record(make_record())
        synced = datetime(2026, 1, 1, 12, 0, 0)

        updated = await storage.update_provisioning_record(
            stored.id,
            {"encrypted_api_key": b"\x01key", "is_active": False, "last_synced_at": synced},
        )

        assert updated.encrypted_api_key == b"\x01key"
        assert updated.is_active is False
        assert updated.last_synced_at == synced
        assert updated.updated_at is not None
        assert updated.remote_uid == 42

    async def test_update_missing_record(self, storage):
        with pytest.raises(NotFound):
            await storage.update_provisioning_record("nope", {"is_active": False})

    async def test_update_rejects_immutable_fields(self, storage):
        stored = await storage.insert_provisioning_record(make_record())
        with pytest.raises(ValueError):
            await storage.update_provisioning_record(stored.id, {"remote_uid": 1})

    async def test_returned_records_are_copies(self, storage):
        stored = await storage.insert_provisioning_record(make_record())
        found = await storage.find_provisioning_record("u1")
        found.is_active = False
        assert (await storage.find_provisioning_record("u1")).is_active is True
        assert stored.is_active is True


class TestSQLiteRepository:

    async def test_survives_reopen(self, tmp_path):
        path = tmp_path / "provisioning.db"
        await SQLiteProvisioningRepository(path).insert_provisioning_record(make_record())

        reopened = SQLiteProvisioningRepository(path)
        assert (await reopened.find_provisioning_record("u1")).remote_login == "u1@example.com"

    async def test_register_keeps_original_id(self, tmp_path):
        repo = SQLiteProvisioningRepository(tmp_path / "provisioning.db")
        await repo.register_odoo_database(
            OdooDatabase(id="db-1", organization_id="org1", database_name="acme", admin_login="admin", encrypted_admin_password=b"a")
        )
        again = await repo.register_odoo_database(
            OdooDatabase(id="db-9", organization_id="org1", database_name="acme", admin_login="admin", encrypted_admin_password=b"c")
        )
        assert again.id == "db-1"

    async def test_unique_constraint_in_schema(self, tmp_path):
        path = tmp_path / "provisioning.db"
        SQLiteProvisioningRepository(path)

        conn = sqlite3.connect(path)
        try:
            indexes = conn.execute("PRAGMA index_list(provisioning_records)").fetchall()
        finally:
            conn.close()
        assert any(row[2] == 1 for row in indexes)

    def test_unwritable_path(self, tmp_path):
        with pytest.raises(StorageError):
            SQLiteProvisioningRepository(tmp_path / "missing-dir" / "provisioning.db")
