from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Optional
from urllib.parse import urlparse

import httpx
import jwt

from .audit import JsonAuditLogger
from .config import SetupConfig
from .errors import ValidationFailure

logger = logging.getLogger(__name__)

REQUIRED_SCOPES: List[str] = [
    "create:clients",
    "create:rules",
    "create:resource_servers",
    "create:client_grants",
    "update:connections",
    "read:connections",
]


@dataclass(frozen=True)
class ManagementToken:
    raw: str
    claims: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_raw(cls, raw: str) -> "ManagementToken":
        raw = raw.strip()
        try:
            claims = jwt.decode(raw, options={"verify_signature": False})
        except jwt.PyJWTError as exc:
            raise ValidationFailure(f"Management API token could not be decoded: {exc}") from exc
        return cls(raw=raw, claims=claims)

    @property
    def issuer_host(self) -> Optional[str]:
        issuer = self.claims.get("iss")
        if not issuer:
            return None
        return urlparse(issuer).netloc or None

    @property
    def scopes(self) -> FrozenSet[str]:
        scope = self.claims.get("scope")
        if not scope:
            return frozenset()
        return frozenset(scope.split(" "))

    def missing_scopes(self, required: Iterable[str] = REQUIRED_SCOPES) -> List[str]:
        granted = self.scopes
        return [s for s in required if s not in granted]

    def validate_for(self, domain: str) -> None:
        """Check issuer and scopes.

        Tokens without an ``iss`` or ``scope`` claim skip the matching check.
        """
        host = self.issuer_host
        if host is not None and host != domain:
            raise ValidationFailure(
                f"Issuer ({host}) of the token does not match the domain ({domain})"
            )
        if self.claims.get("scope"):
            missing = self.missing_scopes()
            if missing:
                raise ValidationFailure(f"Required scopes missing {','.join(missing)}")


class ManagementAuthenticator:
    """Resolves and validates the Management API bearer token for a tenant."""

    def __init__(self, config: SetupConfig, audit_logger: JsonAuditLogger):
        self.config = config
        self.audit = audit_logger
        self._token: Optional[ManagementToken] = None

    def acquire_token(self) -> str:
        if self._token is None:
            try:
                raw = self.config.token.resolve()
            except ValueError as exc:
                raise ValidationFailure(str(exc)) from exc
            token = ManagementToken.from_raw(raw)
            token.validate_for(self.config.domain)
            self._token = token
            self.audit.info(
                "token_validated",
                domain=self.config.domain,
                scopes=sorted(token.scopes),
            )
        return self._token.raw


async def check_domain_reachable(domain: str, client: Optional[httpx.AsyncClient] = None) -> None:
    """Probe ``https://{domain}/test``; raise ValidationFailure if it does not answer 2xx."""
    url = f"https://{domain}/test"
    owns_client = client is None
    client = client or httpx.AsyncClient(timeout=10.0)
    try:
        response = await client.get(url)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.debug("domain probe failed for %s: %s", url, exc)
        raise ValidationFailure("Please enter a valid domain in {tenant}.auth0.com format.") from exc
    finally:
        if owns_client:
            await client.aclose()
