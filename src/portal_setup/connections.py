from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from . import console
from .api_client import ManagementApiClient, RemoteEntity
from .audit import JsonAuditLogger
from .config import SetupConfig
from .provisioner import ArtefactBundle
from .retry import RetryPolicy

DIRECTORY_STRATEGY = "ad"
DIRECTORY_METADATA = {"username_field_name": "sAMAccountName"}


@dataclass(frozen=True)
class ConnectionPatch:
    id: str
    enabled_clients: List[Optional[str]]
    metadata: Dict[str, Any] = field(default_factory=dict)

    def payload(self) -> Dict[str, Any]:
        return {"enabled_clients": list(self.enabled_clients), "metadata": dict(self.metadata)}


def build_connection_patch(
    connection: RemoteEntity, portal_client_id: Optional[str], backend_client_id: Optional[str]
) -> ConnectionPatch:
    """Append both client ids to the connection's enabled clients.

    Prior entries keep their order and duplicates are not removed. Directory
    (``ad``) connections also get the sAMAccountName username mapping.
    """
    enabled = list(connection.get("enabled_clients") or [])
    enabled.extend([portal_client_id, backend_client_id])
    metadata = dict(DIRECTORY_METADATA) if connection.get("strategy") == DIRECTORY_STRATEGY else {}
    return ConnectionPatch(id=connection["id"], enabled_clients=enabled, metadata=metadata)


class ConnectionEnabler:
    """Enables the selected connections for the newly created clients."""

    def __init__(
        self,
        config: SetupConfig,
        client: ManagementApiClient,
        retry_policy: RetryPolicy,
        audit_logger: JsonAuditLogger,
    ):
        self.config = config
        self.client = client
        self.retry = retry_policy
        self.audit = audit_logger

    async def enable_connections(
        self, bundle: ArtefactBundle, selected: Mapping[str, str]
    ) -> List[Optional[RemoteEntity]]:
        connection_ids = list(selected.values())
        fetched = await asyncio.gather(
            *(
                self.retry.with_retry(
                    lambda cid=cid: self.client.get("connections", cid),
                    description=f"get connection {cid}",
                )
                for cid in connection_ids
            )
        )

        patches: List[Optional[ConnectionPatch]] = []
        for connection_id, outcome in zip(connection_ids, fetched):
            if outcome.value is None:
                self.audit.error(
                    "connection_skipped",
                    domain=self.config.domain,
                    connection_id=connection_id,
                    reason="connection could not be fetched",
                )
                patches.append(None)
                continue
            patches.append(
                build_connection_patch(
                    outcome.value, bundle.portal_client_id, bundle.backend_client_id
                )
            )

        results = await asyncio.gather(*(self._apply(patch) for patch in patches))
        return list(results)

    async def _apply(self, patch: Optional[ConnectionPatch]) -> Optional[RemoteEntity]:
        if patch is None:
            return None
        console.step(f"enabling connection {patch.id}...")
        outcome = await self.retry.with_retry(
            lambda: self.client.patch("connections", patch.id, patch.payload()),
            description=f"patch connection {patch.id}",
        )
        if outcome.ok:
            self.audit.info(
                "connection_patched",
                domain=self.config.domain,
                connection_id=patch.id,
                enabled_clients=len(patch.enabled_clients),
            )
        return outcome.value
