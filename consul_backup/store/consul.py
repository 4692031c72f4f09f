"""
HTTP client for the Consul agent API.

Implements the KvStore and AclSource protocols on top of httpx. Only the
handful of endpoints the backup engine needs are wrapped:

    GET  /v1/kv/?recurse=true     full KV listing
    PUT  /v1/kv/<key>             unconditional write
    GET  /v1/acl/list             ACL tokens (legacy token API)
    GET  /v1/status/leader        reachability + leader address
    GET  /v1/agent/self           this agent's address

Invariants:
    - Transport failures surface as ConnectivityError
    - HTTP 401/403 surface as AuthorizationError, other failures as StoreError
    - The token is sent in the X-Consul-Token header and never logged
    - Requests are issued one at a time; there are no retries
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Any, List, Optional
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from ..acl.models import AclToken
from ..config import ConsulConfig
from ..errors import AuthorizationError, ConnectivityError, StoreError
from ..snapshot.models import Entry
from ..snapshot.writer import has_dot_segment

logger = logging.getLogger(__name__)


# --- Response Models ---


class KVPairResponse(BaseModel):
    """One element of a KV listing."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    key: str = Field(..., alias="Key")
    create_index: int = Field(..., alias="CreateIndex")
    modify_index: int = Field(0, alias="ModifyIndex")
    flags: int = Field(0, alias="Flags")
    value: Optional[str] = Field(None, alias="Value", description="Base64 value, null if empty")

    def to_entry(self) -> Entry:
        """Convert to an Entry with decoded value bytes."""
        raw = b""
        if self.value:
            try:
                raw = base64.b64decode(self.value, validate=True)
            except binascii.Error as e:
                raise StoreError(
                    f"Consul returned an undecodable value for {self.key!r}: {e}"
                ) from e
        return Entry(key=self.key, value=raw, create_index=self.create_index)


class AclTokenResponse(BaseModel):
    """One element of the legacy ACL token listing."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(..., alias="ID")
    name: str = Field("", alias="Name")
    type: str = Field("", alias="Type")
    rules: str = Field("", alias="Rules")

    def to_token(self) -> AclToken:
        return AclToken(id=self.id, name=self.name, type=self.type, rules=self.rules)


_kv_listing = TypeAdapter(List[KVPairResponse])
_acl_listing = TypeAdapter(List[AclTokenResponse])


class ConsulClient:
    """
    Async client for the Consul HTTP API.

    Example:
        >>> async with ConsulClient(ConsulConfig(address="10.0.0.5:8500")) as consul:
        ...     entries = await consul.list_all()
    """

    def __init__(
        self,
        config: ConsulConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Connection configuration
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def connect(self) -> None:
        """Create the underlying HTTP client."""
        if self._client:
            return

        headers = {}
        if self.config.token:
            headers["X-Consul-Token"] = self.config.token

        self._client = httpx.AsyncClient(
            base_url=self.config.base_url,
            headers=headers,
            timeout=self.config.timeout_seconds,
            verify=self.config.verify_tls,
            transport=self._transport,
        )
        logger.info(f"Consul client configured for {self.config.base_url}")

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> ConsulClient:
        await self.connect()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        allow_not_found: bool = False,
        **kwargs: Any,
    ) -> httpx.Response:
        """Issue one request and map failures to backup errors."""
        if not self._client:
            raise RuntimeError("Not connected")

        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            raise ConnectivityError(
                f"There is no Consul agent reachable at {self.config.base_url}: {e}",
                address=self.config.address,
            ) from e

        if response.status_code in (401, 403):
            raise AuthorizationError(
                f"Consul rejected the ACL token for {method} {path}: {response.text.strip()}",
                path=path,
                status_code=response.status_code,
            )
        if response.status_code == 404 and allow_not_found:
            return response
        if response.status_code >= 400:
            raise StoreError(
                f"{method} {path} failed with HTTP {response.status_code}: "
                f"{response.text.strip()[:200]}",
                path=path,
                status_code=response.status_code,
            )
        return response

    def _json(self, response: httpx.Response, path: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise StoreError(f"Invalid JSON from {path}: {e}", path=path) from e

    async def ping(self) -> str:
        """Check the agent answers; returns the current leader address."""
        response = await self._request("GET", "/v1/status/leader")
        return str(self._json(response, "/v1/status/leader") or "")

    async def list_all(self) -> List[Entry]:
        """List every key in the store."""
        path = "/v1/kv/"
        response = await self._request(
            "GET", path, allow_not_found=True, params={"recurse": "true"}
        )
        if response.status_code == 404:
            logger.info("KV store is empty")
            return []

        try:
            pairs = _kv_listing.validate_python(self._json(response, path))
        except ValidationError as e:
            raise StoreError(f"Unexpected KV listing format: {e}", path=path) from e

        entries = [p.to_entry() for p in pairs]
        logger.info(f"Listed {len(entries)} keys", extra={"count": len(entries)})
        return entries

    async def put(self, key: str, value: bytes) -> None:
        """Write one key, overwriting any existing value.

        Raises:
            StoreError: If the key has a "." or ".." segment (the URL would be
                normalized to a different key) or Consul refuses the write
        """
        path = f"/v1/kv/{quote(key, safe='/')}"
        if has_dot_segment(key):
            raise StoreError(
                f"Key {key!r} has a '.' or '..' path segment and cannot be written over HTTP",
                path=path,
            )
        response = await self._request("PUT", path, content=value)
        if self._json(response, path) is not True:
            raise StoreError(f"Consul refused the write of {key!r}", path=path)

    async def list_tokens(self) -> List[AclToken]:
        """List ACL tokens with their rules."""
        path = "/v1/acl/list"
        response = await self._request("GET", path)
        try:
            tokens = _acl_listing.validate_python(self._json(response, path))
        except ValidationError as e:
            raise StoreError(f"Unexpected ACL listing format: {e}", path=path) from e
        return [t.to_token() for t in tokens]

    async def is_leader(self) -> tuple[bool, str]:
        """Whether this agent is the cluster leader.

        Returns:
            Tuple of (is_leader, leader_address)
        """
        leader = await self.ping()
        response = await self._request("GET", "/v1/agent/self")
        data = self._json(response, "/v1/agent/self")

        if not isinstance(data, dict):
            raise StoreError("Unexpected /v1/agent/self format", path="/v1/agent/self")

        member = data.get("Member") or {}
        agent_addr = member.get("Addr", "")
        leader_host = leader.rsplit(":", 1)[0].strip("[]") if leader else ""

        logger.debug(
            "Leader check",
            extra={"leader": leader, "agent_addr": agent_addr},
        )
        return bool(leader_host) and leader_host == agent_addr, leader
