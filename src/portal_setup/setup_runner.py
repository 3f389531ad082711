from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Mapping, Optional

import httpx

from . import console
from .api_client import ManagementApiClient, RemoteEntity
from .audit import JsonAuditLogger
from .auth import ManagementAuthenticator
from .config import SetupConfig
from .connections import ConnectionEnabler
from .discovery import ConnectionChoice, discover_all, ensure_required
from .env_emitter import generate_env
from .provisioner import ArtefactBundle, ArtefactProvisioner
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

ConnectionSelector = Callable[[Mapping[str, List[ConnectionChoice]]], Dict[str, str]]


@dataclass
class SetupResult:
    run_id: str
    bundle: ArtefactBundle
    patched_connections: List[Optional[RemoteEntity]] = field(default_factory=list)
    env_files: Dict[str, Path] = field(default_factory=dict)


class SetupRunner:
    """Runs one tenant setup: discover, select, provision, enable, emit."""

    def __init__(
        self,
        config: SetupConfig,
        audit_logger: Optional[JsonAuditLogger] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        login_page: Optional[str] = None,
        rule_script: Optional[str] = None,
    ):
        self.config = config
        self.audit = audit_logger or JsonAuditLogger()
        self._http_client = http_client
        self._sleep = sleep
        self._login_page = login_page
        self._rule_script = rule_script

    def _retry_policy(self) -> RetryPolicy:
        if self._sleep is None:
            return RetryPolicy(self.config.retry, audit_logger=self.audit)
        return RetryPolicy(self.config.retry, audit_logger=self.audit, sleep=self._sleep)

    async def run(self, selector: ConnectionSelector, run_id: Optional[str] = None) -> SetupResult:
        run_id = run_id or str(uuid.uuid4())
        console.banner("Self Service Portal Setup")
        self.audit.info("setup_started", domain=self.config.domain, run_id=run_id)

        authenticator = ManagementAuthenticator(self.config, self.audit)
        async with ManagementApiClient(
            self.config, authenticator, self.audit, http_client=self._http_client
        ) as client:
            console.step("analysing tenant...")
            discovered = await discover_all(client, self.config.required_strategies)
            self.audit.info(
                "connections_discovered",
                domain=self.config.domain,
                run_id=run_id,
                counts={s: len(c) for s, c in discovered.items()},
            )
            ensure_required(discovered, self.config.required_strategies)
            selected = selector(discovered)

            retry_policy = self._retry_policy()
            provisioner = ArtefactProvisioner(
                self.config,
                client,
                retry_policy,
                self.audit,
                login_page=self._login_page,
                rule_script=self._rule_script,
            )
            bundle = await provisioner.create_artefacts()

            enabler = ConnectionEnabler(self.config, client, retry_policy, self.audit)
            patched = await enabler.enable_connections(bundle, selected)

        env_files = generate_env(bundle, self.config, self.audit)
        self.audit.info(
            "setup_completed",
            domain=self.config.domain,
            run_id=run_id,
            missing=bundle.missing(),
        )
        console.done("Done. Copy the generated .env files in respective folders.")
        return SetupResult(
            run_id=run_id, bundle=bundle, patched_connections=patched, env_files=env_files
        )
