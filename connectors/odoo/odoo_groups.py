"""Odoo Group Resolver.

Turns external group identifiers ("module.name") into res.groups ids via
ir.model.data. Lookups are best-effort: a group that cannot be resolved is
skipped and reported as a warning, never as a failure.
"""

from dataclasses import dataclass, field
from typing import Callable, List, Optional

from connectors.odoo.odoo_client import RemoteCallExecutor
from connectors.odoo.odoo_models import AdminCredentials, ModelDataRef, RemoteSession
from core.observability.logging import get_logger
from core.observability.metrics import record_warning
from core.provisioning.errors import ProvisioningError
from core.provisioning.models import ProvisioningWarning, WarningCode

logger = get_logger(__name__)


@dataclass
class GroupResolution:
    """Resolved group ids plus the lookups that did not resolve."""
    group_ids: List[int] = field(default_factory=list)
    warnings: List[ProvisioningWarning] = field(default_factory=list)


def split_external_id(name: str) -> Optional[tuple]:
    """Split "module.name" into (module, name); None when malformed."""
    module, sep, identifier = name.partition(".")
    if not sep or not module or not identifier:
        return None
    return module, identifier


class GroupResolver:
    """Resolves group external identifiers for one session."""

    def __init__(self, executor: RemoteCallExecutor):
        self.executor = executor

    async def resolve_groups(
        self,
        session: RemoteSession,
        role_group_names: List[str],
        admin_credentials: Optional[AdminCredentials] = None,
        on_session_refresh: Optional[Callable[[RemoteSession], None]] = None,
    ) -> GroupResolution:
        resolution = GroupResolution()
        current = session

        def refreshed(new_session: RemoteSession) -> None:
            nonlocal current
            current = new_session
            if on_session_refresh is not None:
                on_session_refresh(new_session)

        for name in role_group_names:
            parts = split_external_id(name)
            if parts is None:
                self._skip(resolution, WarningCode.GROUP_NOT_FOUND, name, "Malformed group identifier")
                continue

            module, identifier = parts
            try:
                rows = await self.executor.call(
                    current,
                    "ir.model.data",
                    "search_read",
                    args=[[["name", "=", identifier], ["module", "=", module]]],
                    kwargs={"fields": ["res_id"], "limit": 1},
                    result_type=List[ModelDataRef],
                    admin_credentials=admin_credentials,
                    on_session_refresh=refreshed,
                )
            except ProvisioningError as e:
                self._skip(resolution, WarningCode.GROUP_LOOKUP_FAILED, name, e.message)
                continue

            if not rows:
                self._skip(resolution, WarningCode.GROUP_NOT_FOUND, name, "Group not installed")
                continue

            if rows[0].res_id not in resolution.group_ids:
                resolution.group_ids.append(rows[0].res_id)

        return resolution

    def _skip(self, resolution: GroupResolution, code: WarningCode, name: str, reason: str) -> None:
        logger.warning(f"Skipping group {name}: {reason}")
        record_warning(code.value)
        resolution.warnings.append(
            ProvisioningWarning(code=code, message=f"Group {name} skipped: {reason}", details={"group": name})
        )
