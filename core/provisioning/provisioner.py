"""User Provisioner.

Orchestrates the lifecycle of an Odoo identity mirrored from a local user:

    UNPROVISIONED -> REMOTE_USER_RESOLVED -> GROUPS_ASSIGNED -> PASSWORD_SET
        -> CREDENTIAL_ACQUIRED -> PROVISIONED (ACTIVE <-> INACTIVE)

Remote mutations always precede local persistence. A provisioning record is
written only once every remote step succeeded; when a saga-critical step
fails after this invocation created the Odoo account, the account is
deactivated again before the error propagates.

Usage:
    provisioner = UserProvisioner(repository, vault, transport)
    result = await provisioner.provision_user("u1", "org1", role="accountant")
    await provisioner.deactivate_user("u1", "org1")
"""

import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

from connectors.odoo.odoo_apikeys import ApiKeyIssuer
from connectors.odoo.odoo_auth import SessionAuthenticator
from connectors.odoo.odoo_client import RemoteCallExecutor, SessionRefreshPolicy
from connectors.odoo.odoo_groups import GroupResolver
from connectors.odoo.odoo_models import AdminCredentials, RemoteSession, RemoteUserRef
from connectors.odoo.odoo_transport import OdooApiConfig, OdooTransport
from core.audit.events import AuditEventType, AuditLogger
from core.observability.logging import get_logger, with_correlation
from core.observability.metrics import (
    record_saga_completed,
    record_saga_failed,
    record_saga_started,
    record_warning,
)
from core.provisioning.errors import (
    AuthenticationFailed,
    ConflictDetected,
    NotFound,
    ProvisioningError,
    RemoteOperationFailed,
    StorageError,
)
from core.provisioning.group_policy import DEFAULT_GROUP_POLICY, GroupPolicy
from core.provisioning.models import (
    DEFAULT_ROLE,
    LocalUser,
    OdooDatabase,
    ProvisioningRecord,
    ProvisioningState,
    ProvisioningWarning,
    ProvisionResult,
    UserCredentials,
    WarningCode,
    WebLogin,
)
from core.provisioning.repository import ProvisioningRepository
from core.provisioning.saga import Saga, SagaStep
from core.security.encryption import CredentialVault

logger = get_logger(__name__)


UNIQUE_VIOLATION_SIGNATURES = (
    "duplicate key value violates unique constraint",
    "already exists",
)

PASSWORD_BYTES = 32


def is_unique_violation(message: Optional[str]) -> bool:
    """Check whether a remote error means the login is already taken."""
    if not message:
        return False
    lowered = message.lower()
    return any(signature in lowered for signature in UNIQUE_VIOLATION_SIGNATURES)


def generate_password() -> str:
    """32 random bytes, URL-safe base64 without padding."""
    return secrets.token_urlsafe(PASSWORD_BYTES)


@dataclass
class _ProvisionContext:
    """Mutable state shared by the steps of one provisioning saga."""
    user: LocalUser
    database: OdooDatabase
    admin: AdminCredentials
    role: str
    session: Optional[RemoteSession] = None
    remote_uid: Optional[int] = None
    remote_active: bool = True
    created: bool = False
    reactivated: bool = False
    password: Optional[str] = None
    api_key: Optional[str] = None
    record: Optional[ProvisioningRecord] = None
    adopted_record: bool = False
    warnings: List[ProvisioningWarning] = field(default_factory=list)

    @property
    def login(self) -> str:
        return self.user.email

    def replace_session(self, session: RemoteSession) -> None:
        self.session = session


class UserProvisioner:
    """Provisions and deactivates Odoo users for local accounts."""

    def __init__(
        self,
        repository: ProvisioningRepository,
        vault: CredentialVault,
        transport: OdooTransport,
        group_policy: GroupPolicy = DEFAULT_GROUP_POLICY,
        audit: Optional[AuditLogger] = None,
        refresh_policy: SessionRefreshPolicy = SessionRefreshPolicy(),
    ):
        self.repository = repository
        self.vault = vault
        self.transport = transport
        self.group_policy = group_policy
        self.audit = audit or AuditLogger()
        self.refresh_policy = refresh_policy

        self.authenticator = SessionAuthenticator(transport)
        self.executor = RemoteCallExecutor(transport, self.authenticator)
        self.group_resolver = GroupResolver(self.executor)
        self.api_key_issuer = ApiKeyIssuer(transport, self.authenticator)

    @property
    def config(self) -> OdooApiConfig:
        return self.transport.config

    # =========================================================================
    # Lookups
    # =========================================================================

    async def _require_local_user(self, local_user_id: str) -> LocalUser:
        user = await self.repository.find_local_user(local_user_id)
        if user is None:
            raise NotFound(f"User {local_user_id} not found", {"local_user_id": local_user_id})
        return user

    async def _require_database(self, organization_id: str) -> OdooDatabase:
        database = await self.repository.find_odoo_database(organization_id)
        if database is None:
            raise NotFound(
                f"Odoo database not found for organization {organization_id}",
                {"organization_id": organization_id},
            )
        return database

    def _admin_credentials(self, database: OdooDatabase) -> AdminCredentials:
        return AdminCredentials(
            database_name=database.database_name,
            admin_login=database.admin_login,
            admin_password=self.vault.decrypt(database.encrypted_admin_password),
        )

    async def _load_admin(self, organization_id: str) -> Tuple[OdooDatabase, AdminCredentials]:
        database = await self._require_database(organization_id)
        return database, self._admin_credentials(database)

    async def _find_record(self, local_user_id: str, organization_id: str) -> Tuple[Optional[OdooDatabase], Optional[ProvisioningRecord]]:
        database = await self.repository.find_odoo_database(organization_id)
        if database is None:
            return None, None
        record = await self.repository.find_provisioning_record(local_user_id, database.id)
        return database, record

    # =========================================================================
    # Remote helpers
    # =========================================================================

    async def _call(self, session: RemoteSession, admin: AdminCredentials, model: str, method: str, args, kwargs=None, result_type=bool):
        return await self.executor.call(
            session,
            model,
            method,
            args=args,
            kwargs=kwargs or {},
            result_type=result_type,
            admin_credentials=admin,
            policy=self.refresh_policy,
        )

    async def _saga_call(self, ctx: _ProvisionContext, model: str, method: str, args, kwargs=None, result_type=bool):
        """Call through the saga's admin session, keeping any refreshed session."""
        return await self.executor.call(
            ctx.session,
            model,
            method,
            args=args,
            kwargs=kwargs or {},
            result_type=result_type,
            admin_credentials=ctx.admin,
            policy=self.refresh_policy,
            on_session_refresh=ctx.replace_session,
        )

    async def _open_admin_session(self, admin: AdminCredentials) -> RemoteSession:
        return await self.authenticator.authenticate(admin.database_name, admin.admin_login, admin.admin_password)

    async def _search_user_by_login(self, ctx: _ProvisionContext) -> Optional[RemoteUserRef]:
        # Archived users are hidden from search_read unless active_test is off
        rows = await self._saga_call(
            ctx,
            "res.users",
            "search_read",
            args=[[["login", "=", ctx.login]]],
            kwargs={"fields": ["id", "active"], "limit": 1, "context": {"active_test": False}},
            result_type=List[RemoteUserRef],
        )
        return rows[0] if rows else None

    async def _set_remote_active(self, admin: AdminCredentials, remote_uid: int, active: bool) -> None:
        # Compensations always start from a fresh session
        session = await self._open_admin_session(admin)
        await self._call(session, admin, "res.users", "write", args=[[remote_uid], {"active": active}])

    async def _password_accepted(self, database_name: str, login: str, password: str) -> bool:
        try:
            await self.authenticator.authenticate(database_name, login, password)
        except AuthenticationFailed:
            return False
        return True

    # =========================================================================
    # Credentials
    # =========================================================================

    async def _upgrade_credentials(
        self,
        database: OdooDatabase,
        record: ProvisioningRecord,
        organization_id: str,
    ) -> Tuple[ProvisioningRecord, List[ProvisioningWarning]]:
        """Issue and store an API key for a record that lacks one.

        Best-effort: any failure becomes a warning and the record is
        returned unchanged.
        """
        if record.has_api_key or not record.is_active:
            return record, []

        try:
            password = self.vault.decrypt(record.encrypted_password)
            api_key = await self.api_key_issuer.issue(database.database_name, record.remote_login, password)
            updated = await self.repository.update_provisioning_record(
                record.id,
                {"encrypted_api_key": self.vault.encrypt(api_key), "last_synced_at": datetime.utcnow()},
            )
        except ProvisioningError as e:
            return record, [self._api_key_warning(e.message, organization_id, record.local_user_id, record.remote_uid)]
        except ValueError as e:
            # Stored password no longer decrypts under the current key
            return record, [self._api_key_warning(str(e), organization_id, record.local_user_id, record.remote_uid)]

        self.audit.log_info(
            AuditEventType.API_KEY_ISSUED,
            f"API key issued for Odoo user {record.remote_uid}",
            organization_id=organization_id,
            local_user_id=record.local_user_id,
            remote_uid=record.remote_uid,
        )
        return updated, []

    def _api_key_warning(
        self,
        reason: str,
        organization_id: str,
        local_user_id: str,
        remote_uid: Optional[int],
    ) -> ProvisioningWarning:
        logger.warning(f"API key unavailable, falling back to password: {reason}")
        record_warning(WarningCode.API_KEY_UNAVAILABLE.value)
        self.audit.log_warning(
            AuditEventType.API_KEY_FALLBACK,
            "API key unavailable, password will be used",
            organization_id=organization_id,
            local_user_id=local_user_id,
            remote_uid=remote_uid,
            details={"error": reason},
        )
        return ProvisioningWarning(
            code=WarningCode.API_KEY_UNAVAILABLE,
            message=f"API key unavailable: {reason}",
        )

    def _best_credential(self, record: ProvisioningRecord) -> Tuple[str, bool]:
        try:
            if record.encrypted_api_key is not None:
                return self.vault.decrypt(record.encrypted_api_key), True
            return self.vault.decrypt(record.encrypted_password), False
        except ValueError as e:
            raise StorageError(f"Stored credential for record {record.id} cannot be decrypted: {e}")

    # =========================================================================
    # Provisioning
    # =========================================================================

    async def provision_user(
        self,
        local_user_id: str,
        organization_id: str,
        role: Optional[str] = None,
    ) -> ProvisionResult:
        """Ensure the local user has an Odoo identity in the organization's database.

        Idempotent: a user that is already provisioned gets its existing
        identity back (with a lazy API key upgrade) and no remote user
        mutation happens.

        Raises:
            NotFound: Unknown user or no Odoo database for the organization
            AuthenticationFailed: Admin session could not be opened
            RemoteOperationFailed: A saga-critical remote call failed
            StorageError: The record could not be stored
        """
        with with_correlation(organization_id=organization_id, local_user_id=local_user_id, saga="provision"):
            user = await self._require_local_user(local_user_id)
            database = await self._require_database(organization_id)

            existing = await self.repository.find_provisioning_record(local_user_id, database.id)
            if existing is not None:
                return await self._ensure_provisioned(database, existing, organization_id)

            effective_role = (role or user.role or DEFAULT_ROLE).lower()
            ctx = _ProvisionContext(
                user=user,
                database=database,
                admin=self._admin_credentials(database),
                role=effective_role,
            )
            return await self._run_provision_saga(ctx, organization_id)

    async def _ensure_provisioned(
        self,
        database: OdooDatabase,
        record: ProvisioningRecord,
        organization_id: str,
    ) -> ProvisionResult:
        logger.info(f"User already provisioned as Odoo uid {record.remote_uid}")
        record, warnings = await self._upgrade_credentials(database, record, organization_id)
        credential, _ = self._best_credential(record)
        return ProvisionResult(
            remote_uid=record.remote_uid,
            remote_login=record.remote_login,
            credential=credential,
            has_api_key=record.has_api_key,
            warnings=warnings,
        )

    async def _run_provision_saga(self, ctx: _ProvisionContext, organization_id: str) -> ProvisionResult:
        saga = Saga("provision", initial_state=ProvisioningState.UNPROVISIONED.value)
        steps = [
            SagaStep(
                "resolve_remote_user",
                lambda: self._resolve_remote_user(ctx, organization_id),
                compensation=lambda: self._set_remote_active(ctx.admin, ctx.remote_uid, False),
                needs_compensation=lambda: ctx.created and ctx.remote_uid is not None and not ctx.adopted_record,
                reaches=ProvisioningState.REMOTE_USER_RESOLVED.value,
            ),
            SagaStep(
                "reactivate_remote_user",
                lambda: self._reactivate_remote_user(ctx, organization_id),
                compensation=lambda: self._set_remote_active(ctx.admin, ctx.remote_uid, False),
                needs_compensation=lambda: ctx.reactivated and not ctx.adopted_record,
            ),
            SagaStep(
                "assign_groups",
                lambda: self._assign_groups(ctx),
                reaches=ProvisioningState.GROUPS_ASSIGNED.value,
            ),
            SagaStep(
                "set_password",
                lambda: self._set_password(ctx),
                reaches=ProvisioningState.PASSWORD_SET.value,
            ),
            SagaStep(
                "acquire_credential",
                lambda: self._acquire_credential(ctx, organization_id),
                reaches=ProvisioningState.CREDENTIAL_ACQUIRED.value,
            ),
            SagaStep(
                "persist",
                lambda: self._persist(ctx),
                reaches=ProvisioningState.PROVISIONED.value,
            ),
        ]

        logger.info(f"Provisioning Odoo user with role {ctx.role}")
        self.audit.log_info(
            AuditEventType.PROVISIONING_STARTED,
            f"Provisioning {ctx.login} in {ctx.database.database_name}",
            organization_id=organization_id,
            local_user_id=ctx.user.id,
            details={"role": ctx.role, "database": ctx.database.database_name},
        )
        record_saga_started("provision")
        start = time.monotonic()

        try:
            await saga.run(steps)
        except Exception as e:
            record_saga_failed("provision")
            self._audit_saga_failure(
                saga,
                e,
                AuditEventType.PROVISIONING_FAILED,
                organization_id,
                ctx.user.id,
                ctx.remote_uid,
            )
            raise

        record_saga_completed("provision", (time.monotonic() - start) * 1000)

        record = ctx.record
        if ctx.adopted_record:
            credential, has_api_key = self._best_credential(record)
        else:
            credential = ctx.api_key or ctx.password
            has_api_key = ctx.api_key is not None

        self.audit.log_info(
            AuditEventType.PROVISIONING_COMPLETED,
            f"Provisioned Odoo user {record.remote_uid}",
            organization_id=organization_id,
            local_user_id=ctx.user.id,
            remote_uid=record.remote_uid,
            details={"has_api_key": has_api_key, "warnings": [w.to_dict() for w in ctx.warnings]},
        )
        logger.info(
            f"Provisioned Odoo user {record.remote_uid}",
            extra_fields={"has_api_key": has_api_key, "warning_count": len(ctx.warnings)},
        )

        return ProvisionResult(
            remote_uid=record.remote_uid,
            remote_login=record.remote_login,
            credential=credential,
            has_api_key=has_api_key,
            warnings=ctx.warnings,
        )

    async def _resolve_remote_user(self, ctx: _ProvisionContext, organization_id: str) -> None:
        ctx.session = await self._open_admin_session(ctx.admin)

        existing = await self._search_user_by_login(ctx)
        if existing is not None:
            self._adopt(ctx, existing, organization_id, reason="login already exists")
            return

        try:
            ctx.remote_uid = await self._saga_call(
                ctx,
                "res.users",
                "create",
                args=[{"name": ctx.user.display_name, "login": ctx.login, "email": ctx.user.email}],
                result_type=int,
            )
        except RemoteOperationFailed as e:
            if not is_unique_violation(e.message):
                raise
            conflict = ConflictDetected(f"Login {ctx.login} was created concurrently", {"login": ctx.login})
            logger.warning(f"{conflict.message}, re-checking for existing user")

            winner = await self._search_user_by_login(ctx)
            if winner is None:
                raise e
            self._adopt(ctx, winner, organization_id, reason="concurrent creation")
            return

        ctx.created = True
        logger.info(f"Created Odoo user {ctx.remote_uid}")
        self.audit.log_info(
            AuditEventType.REMOTE_USER_CREATED,
            f"Created Odoo user {ctx.remote_uid} for {ctx.login}",
            organization_id=organization_id,
            local_user_id=ctx.user.id,
            remote_uid=ctx.remote_uid,
        )

    def _adopt(self, ctx: _ProvisionContext, remote_user: RemoteUserRef, organization_id: str, reason: str) -> None:
        ctx.remote_uid = remote_user.id
        ctx.remote_active = remote_user.active
        logger.info(f"Adopting existing Odoo user {remote_user.id} ({reason})")
        self.audit.log_info(
            AuditEventType.REMOTE_USER_ADOPTED,
            f"Adopted existing Odoo user {remote_user.id} for {ctx.login}",
            organization_id=organization_id,
            local_user_id=ctx.user.id,
            remote_uid=remote_user.id,
            details={"reason": reason, "was_active": remote_user.active},
        )

    async def _reactivate_remote_user(self, ctx: _ProvisionContext, organization_id: str) -> None:
        """Un-archive an adopted account, e.g. one rolled back by an earlier attempt."""
        if ctx.remote_active:
            return

        await self._saga_call(ctx, "res.users", "write", args=[[ctx.remote_uid], {"active": True}])
        ctx.remote_active = True
        ctx.reactivated = True
        logger.info(f"Reactivated archived Odoo user {ctx.remote_uid}")
        self.audit.log_info(
            AuditEventType.REMOTE_USER_REACTIVATED,
            f"Reactivated archived Odoo user {ctx.remote_uid} for {ctx.login}",
            organization_id=organization_id,
            local_user_id=ctx.user.id,
            remote_uid=ctx.remote_uid,
        )

    async def _assign_groups(self, ctx: _ProvisionContext) -> None:
        group_names = self.group_policy.groups_for_role(ctx.role)
        resolution = await self.group_resolver.resolve_groups(
            ctx.session,
            group_names,
            ctx.admin,
            on_session_refresh=ctx.replace_session,
        )
        ctx.warnings.extend(resolution.warnings)

        if not resolution.group_ids:
            logger.warning("No groups resolved, skipping group assignment")
            return

        logger.info(
            f"Assigning {len(resolution.group_ids)} groups to Odoo user {ctx.remote_uid}",
            extra_fields={"policy_version": self.group_policy.version},
        )
        await self._saga_call(
            ctx,
            "res.users",
            "write",
            args=[[ctx.remote_uid], {"groups_id": [[6, 0, resolution.group_ids]]}],
        )

    async def _set_password(self, ctx: _ProvisionContext) -> None:
        # A concurrent invocation may already have stored a password for this account
        winner = await self.repository.find_provisioning_record(ctx.user.id, ctx.database.id)
        if winner is not None:
            logger.info(f"Record {winner.id} appeared concurrently, keeping its credential")
            ctx.record = winner
            ctx.adopted_record = True
            return

        ctx.password = generate_password()
        await self._saga_call(
            ctx,
            "res.users",
            "write",
            args=[[ctx.remote_uid], {"password": ctx.password}],
        )
        logger.info(f"Password set for Odoo user {ctx.remote_uid}")

    async def _acquire_credential(self, ctx: _ProvisionContext, organization_id: str) -> None:
        if ctx.adopted_record:
            return
        try:
            ctx.api_key = await self.api_key_issuer.issue(ctx.admin.database_name, ctx.login, ctx.password)
        except ProvisioningError as e:
            ctx.warnings.append(self._api_key_warning(e.message, organization_id, ctx.user.id, ctx.remote_uid))
            return

        self.audit.log_info(
            AuditEventType.API_KEY_ISSUED,
            f"API key issued for Odoo user {ctx.remote_uid}",
            organization_id=organization_id,
            local_user_id=ctx.user.id,
            remote_uid=ctx.remote_uid,
        )

    async def _persist(self, ctx: _ProvisionContext) -> None:
        if ctx.adopted_record:
            return

        now = datetime.utcnow()
        record = ProvisioningRecord(
            local_user_id=ctx.user.id,
            remote_database_id=ctx.database.id,
            remote_uid=ctx.remote_uid,
            remote_login=ctx.login,
            encrypted_password=self.vault.encrypt(ctx.password),
            encrypted_api_key=self.vault.encrypt(ctx.api_key) if ctx.api_key else None,
            is_active=True,
            last_synced_at=now,
            created_at=now,
        )

        try:
            ctx.record = await self.repository.insert_provisioning_record(record)
        except ConflictDetected:
            winner = await self.repository.find_provisioning_record(ctx.user.id, ctx.database.id)
            if winner is None:
                raise StorageError("Provisioning record conflict but no record found on re-read")
            logger.warning(f"Concurrent provisioning won the race, adopting record {winner.id}")
            ctx.record = winner
            ctx.adopted_record = True
            await self._restore_stored_password(ctx, winner)

    async def _restore_stored_password(self, ctx: _ProvisionContext, record: ProvisioningRecord) -> None:
        """Make Odoo accept the password kept in the winning record.

        Our own password write may have landed after the winner's, in which
        case the stored password is dead until it is written back. Every
        losing invocation runs this after its own write, so the last writer
        always leaves the stored password in place.
        """
        try:
            password = self.vault.decrypt(record.encrypted_password)
        except ValueError as e:
            raise StorageError(f"Stored credential for record {record.id} cannot be decrypted: {e}")
        if await self._password_accepted(ctx.admin.database_name, record.remote_login, password):
            return

        logger.warning(f"Stored password for Odoo user {record.remote_uid} was overwritten, restoring it")
        await self._saga_call(ctx, "res.users", "write", args=[[record.remote_uid], {"password": password}])

    # =========================================================================
    # Deactivation
    # =========================================================================

    async def deactivate_user(self, local_user_id: str, organization_id: str) -> None:
        """Deactivate the user's Odoo identity, then mark the record inactive.

        No-op when the user was never provisioned or is already inactive.
        If the local write fails the remote account is re-activated before
        the error propagates.
        """
        with with_correlation(organization_id=organization_id, local_user_id=local_user_id, saga="deactivate"):
            database, admin = await self._load_admin(organization_id)
            record = await self.repository.find_provisioning_record(local_user_id, database.id)

            if record is None:
                logger.warning("No Odoo user found to deactivate")
                return
            if not record.is_active:
                logger.info("Odoo user already inactive")
                return

            saga = Saga("deactivate")
            steps = [
                SagaStep(
                    "deactivate_remote_user",
                    lambda: self._set_remote_active(admin, record.remote_uid, False),
                    compensation=lambda: self._set_remote_active(admin, record.remote_uid, True),
                ),
                SagaStep(
                    "mark_record_inactive",
                    lambda: self.repository.update_provisioning_record(record.id, {"is_active": False}),
                ),
            ]

            record_saga_started("deactivate")
            start = time.monotonic()
            try:
                await saga.run(steps)
            except Exception as e:
                record_saga_failed("deactivate")
                self._audit_saga_failure(
                    saga,
                    e,
                    AuditEventType.DEACTIVATION_FAILED,
                    organization_id,
                    local_user_id,
                    record.remote_uid,
                )
                raise

            record_saga_completed("deactivate", (time.monotonic() - start) * 1000)
            logger.info(f"Odoo user {record.remote_uid} deactivated")
            self.audit.log_info(
                AuditEventType.DEACTIVATION_COMPLETED,
                f"Deactivated Odoo user {record.remote_uid}",
                organization_id=organization_id,
                local_user_id=local_user_id,
                remote_uid=record.remote_uid,
            )

    def _audit_saga_failure(
        self,
        saga: Saga,
        error: BaseException,
        event_type: AuditEventType,
        organization_id: str,
        local_user_id: str,
        remote_uid: Optional[int],
    ) -> None:
        context = {"organization_id": organization_id, "local_user_id": local_user_id, "remote_uid": remote_uid}

        for step in saga.compensated_steps:
            self.audit.log_warning(
                AuditEventType.COMPENSATION_COMPLETED,
                f"Rolled back {step} after {saga.failed_step} failed",
                details={"step": step},
                **context,
            )
        for failure in saga.compensation_failures:
            self.audit.log_critical(
                AuditEventType.COMPENSATION_FAILED,
                failure.message,
                details={"step": failure.step, "error": str(failure.cause), "requires_manual_intervention": True},
                **context,
            )

        self.audit.log_error(
            event_type,
            f"{saga.name} failed at {saga.failed_step}: {error}",
            details={
                "failed_step": saga.failed_step,
                "error_type": type(error).__name__,
                "compensated": saga.compensated_steps,
            },
            **context,
        )

    # =========================================================================
    # Read paths
    # =========================================================================

    async def get_user_credentials(self, local_user_id: str, organization_id: str) -> Optional[UserCredentials]:
        """Best credential for RPC access, upgrading to an API key when possible.

        Returns None when the organization has no Odoo database or the user
        was never provisioned. Never fails because the upgrade failed.
        """
        with with_correlation(organization_id=organization_id, local_user_id=local_user_id):
            database, record = await self._find_record(local_user_id, organization_id)
            if record is None:
                return None

            record, warnings = await self._upgrade_credentials(database, record, organization_id)
            credential, is_api_key = self._best_credential(record)
            return UserCredentials(
                database_name=database.database_name,
                remote_uid=record.remote_uid,
                credential=credential,
                is_api_key=is_api_key,
                warnings=warnings,
            )

    async def get_web_login_url(self, local_user_id: str, organization_id: str) -> str:
        """Odoo web login URL for the user's database.

        Raises:
            NotFound: The user has no Odoo credentials
        """
        credentials = await self.get_user_credentials(local_user_id, organization_id)
        if credentials is None:
            raise NotFound("Odoo user not found", {"local_user_id": local_user_id})
        return self.config.web_login_url(credentials.database_name)

    async def get_web_login(self, local_user_id: str, organization_id: str) -> Optional[WebLogin]:
        """Login and web password for interactive use; never the API key."""
        database, record = await self._find_record(local_user_id, organization_id)
        if record is None:
            return None
        return WebLogin(
            login=record.remote_login,
            password=self.vault.decrypt(record.encrypted_password),
            web_url=self.config.web_login_url(database.database_name),
        )

    async def user_exists(self, local_user_id: str, organization_id: str) -> bool:
        _, record = await self._find_record(local_user_id, organization_id)
        return record is not None
