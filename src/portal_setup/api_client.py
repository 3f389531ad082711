from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from .audit import JsonAuditLogger
from .auth import ManagementAuthenticator
from .config import SetupConfig
from .errors import RateLimited, RemoteCallFailure

logger = logging.getLogger(__name__)

RemoteEntity = Dict[str, Any]


class ManagementApiClient:
    """Tenant-scoped Auth0 Management API client.

    Issues create/get/patch calls against ``https://{domain}/api/v2/{entity}``
    and turns every non-2xx answer into a RemoteCallFailure. Retrying is left
    to RetryPolicy.
    """

    def __init__(
        self,
        config: SetupConfig,
        authenticator: ManagementAuthenticator,
        audit_logger: JsonAuditLogger,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config
        self.authenticator = authenticator
        self.audit = audit_logger
        self._owns_session = http_client is None
        self.session = http_client or httpx.AsyncClient(timeout=config.request_timeout)

    async def __aenter__(self) -> "ManagementApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_session:
            await self.session.aclose()

    def _auth_header(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.authenticator.acquire_token()}"}

    def _url(self, entity: str, entity_id: Optional[str] = None) -> str:
        if not entity:
            raise ValueError("entity must be a non-empty collection name")
        url = f"{self.config.management_api_base}/{entity}"
        if entity_id is not None:
            url = f"{url}/{entity_id}"
        return url

    async def request(self, method: str, url: str, **kwargs: Any) -> Any:
        headers = kwargs.pop("headers", {})
        headers.update(self._auth_header())

        try:
            response = await self.session.request(method, url, headers=headers, **kwargs)
        except httpx.TransportError as exc:
            self.audit.error(
                "remote_call_failed",
                domain=self.config.domain,
                method=method,
                url=url,
                error=str(exc),
            )
            raise RemoteCallFailure(
                f"{method} {url} failed: {exc}", method=method, url=url
            ) from exc

        if response.status_code >= 400:
            body = _response_body(response)
            self.audit.error(
                "remote_call_failed",
                domain=self.config.domain,
                method=method,
                url=url,
                status=response.status_code,
                body=body,
            )
            error_cls = RateLimited if response.status_code == 429 else RemoteCallFailure
            raise error_cls(
                f"{method} {url} failed",
                status_code=response.status_code,
                body=body,
                method=method,
                url=url,
            )

        self.audit.info(
            "remote_call_succeeded",
            domain=self.config.domain,
            method=method,
            url=url,
            status=response.status_code,
        )
        if not response.content:
            return None
        return response.json()

    async def create(self, entity: str, payload: Any) -> RemoteEntity:
        self.audit.info("entity_create_started", domain=self.config.domain, entity=entity)
        return await self.request("POST", self._url(entity), json=payload)

    async def get(self, entity: str, entity_id: str) -> RemoteEntity:
        return await self.request("GET", self._url(entity, entity_id))

    async def patch(self, entity: str, entity_id: str, payload: Any) -> RemoteEntity:
        return await self.request("PATCH", self._url(entity, entity_id), json=payload)

    async def list(self, entity: str, params: Optional[Dict[str, str]] = None) -> List[RemoteEntity]:
        return await self.request("GET", self._url(entity), params=params)


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text
