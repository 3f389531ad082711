from __future__ import annotations

import asyncio
from dataclasses import dataclass, fields
from typing import Any, Dict, List, Optional

from . import console, templates
from .api_client import ManagementApiClient, RemoteEntity
from .audit import JsonAuditLogger
from .config import SetupConfig
from .retry import Outcome, RetryPolicy

API_IDENTIFIER = "urn:self-service-portal-api"
MANAGEMENT_GRANT_SCOPES = ["read:users", "update:users", "delete:users"]

API_SCOPES = [
    {"value": "change:password", "description": "Change Password"},
    {"value": "reset:password", "description": "Reset Password"},
    {"value": "update:enrolment", "description": "Update Enrolment"},
    {"value": "create:enrolment", "description": "Create Enrolment"},
    {"value": "read:enrolment", "description": "Read Enrolment"},
    {"value": "delete:enrolment", "description": "delete:enrolment"},
]


@dataclass(frozen=True)
class ArtefactBundle:
    """Snapshot of everything one provisioning run created.

    A slot is None when its create call failed and was reported.
    """

    portal: Optional[RemoteEntity]
    backend: Optional[RemoteEntity]
    api: Optional[RemoteEntity]
    rule: Optional[RemoteEntity]
    mgmt_grant: Optional[RemoteEntity]

    @property
    def portal_client_id(self) -> Optional[str]:
        return (self.portal or {}).get("client_id")

    @property
    def backend_client_id(self) -> Optional[str]:
        return (self.backend or {}).get("client_id")

    @property
    def backend_client_secret(self) -> Optional[str]:
        return (self.backend or {}).get("client_secret")

    def missing(self) -> List[str]:
        return [f.name for f in fields(self) if getattr(self, f.name) is None]


def portal_client_payload(config: SetupConfig, login_page: str) -> Dict[str, Any]:
    return {
        "name": "Self Service Portal",
        "callbacks": [f"{config.portal_url}/callback"],
        "jwt_configuration": {"alg": "RS256"},
        "custom_login_page": login_page,
        "custom_login_page_on": True,
        "app_type": "spa",
        "grant_types": ["authorization_code", "implicit"],
    }


def backend_client_payload() -> Dict[str, Any]:
    return {
        "name": "Self Service Backend",
        "app_type": "non_interactive",
        "grant_types": [
            "client_credentials",
            "http://auth0.com/oauth/grant-type/password-realm",
            "http://auth0.com/oauth/legacy/grant-type/ro",
            "password",
        ],
    }


def backend_api_payload() -> Dict[str, Any]:
    return {
        "name": "Self Service API",
        "identifier": API_IDENTIFIER,
        "scopes": [dict(scope) for scope in API_SCOPES],
    }


def rule_payload(script: str) -> Dict[str, Any]:
    return {"name": "Self Service Issue Scopes", "script": script, "enabled": True}


def management_grant_payload(config: SetupConfig, backend_client_id: str) -> Dict[str, Any]:
    return {
        "client_id": backend_client_id,
        "audience": config.management_audience,
        "scope": list(MANAGEMENT_GRANT_SCOPES),
    }


class ArtefactProvisioner:
    """Creates the portal's tenant artefacts in two stages.

    Stage one creates the portal client, backend client, API and rule
    concurrently. Stage two grants the backend client access to the
    Management API once its ``client_id`` is known. Nothing is rolled back and
    nothing is looked up first, so running it twice creates duplicates.
    """

    def __init__(
        self,
        config: SetupConfig,
        client: ManagementApiClient,
        retry_policy: RetryPolicy,
        audit_logger: JsonAuditLogger,
        login_page: Optional[str] = None,
        rule_script: Optional[str] = None,
    ):
        self.config = config
        self.client = client
        self.retry = retry_policy
        self.audit = audit_logger
        self._login_page = login_page
        self._rule_script = rule_script

    async def _create(self, entity: str, payload: Dict[str, Any]) -> Outcome[RemoteEntity]:
        console.step(f"creating {entity}...")
        return await self.retry.with_retry(
            lambda: self.client.create(entity, payload),
            description=f"create {entity}",
        )

    async def create_artefacts(self) -> ArtefactBundle:
        login_page = self._login_page if self._login_page is not None else templates.portal_login_page()
        rule_script = self._rule_script if self._rule_script is not None else templates.issue_scopes_rule()

        async with asyncio.TaskGroup() as group:
            portal_task = group.create_task(
                self._create("clients", portal_client_payload(self.config, login_page))
            )
            backend_task = group.create_task(self._create("clients", backend_client_payload()))
            api_task = group.create_task(self._create("resource-servers", backend_api_payload()))
            rule_task = group.create_task(self._create("rules", rule_payload(rule_script)))

        portal = portal_task.result().value
        backend = backend_task.result().value
        api = api_task.result().value
        rule = rule_task.result().value

        mgmt_grant = await self._create_management_grant(backend)

        bundle = ArtefactBundle(
            portal=portal, backend=backend, api=api, rule=rule, mgmt_grant=mgmt_grant
        )
        self.audit.info(
            "artefacts_created",
            domain=self.config.domain,
            missing=bundle.missing(),
        )
        return bundle

    async def _create_management_grant(self, backend: Optional[RemoteEntity]) -> Optional[RemoteEntity]:
        backend_client_id = (backend or {}).get("client_id")
        if not backend_client_id:
            self.audit.error(
                "artefact_missing",
                domain=self.config.domain,
                artefact="mgmt_grant",
                reason="backend client was not created",
            )
            console.fail("skipping management API grant: backend client was not created")
            return None
        outcome = await self._create(
            "client-grants", management_grant_payload(self.config, backend_client_id)
        )
        return outcome.value
