"""Session and credential providers consumed by the turn orchestrator."""

from __future__ import annotations

import asyncio
from typing import Any, Protocol

import httpx
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from ariachat.config import API_PREFIX, AriaSettings
from ariachat.errors import SessionError


def sessions_path() -> str:
    return f"{API_PREFIX}/sessions"


def turns_path(session_id: str) -> str:
    return f"{API_PREFIX}/sessions/{session_id}/turns"


class SessionProvider(Protocol):
    """Supplies the session id that scopes a turn."""

    async def get_current_session_id(self) -> str: ...


class CredentialProvider(Protocol):
    """Supplies an optional ``Authorization`` header value."""

    async def get_authorization_header(self) -> str | None: ...


async def resolve_authorization(credentials: CredentialProvider | None, timeout: float) -> str | None:
    """Ask ``credentials`` for a header, giving up after ``timeout`` seconds.

    A slow or failing provider yields ``None`` so the request goes out
    unauthenticated instead of stalling.
    """
    if credentials is None:
        return None
    try:
        async with asyncio.timeout(timeout):
            return await credentials.get_authorization_header()
    except TimeoutError:
        logger.debug("auth.unavailable reason=timeout")
    except Exception:
        logger.exception("auth.error")
    return None


class StaticCredentialProvider:
    """Credential provider backed by a fixed bearer token."""

    def __init__(self, token: str | None = None) -> None:
        self._token = token

    async def get_authorization_header(self) -> str | None:
        if not self._token:
            return None
        return f"Bearer {self._token}"


class SessionRecord(BaseModel):
    model_config = ConfigDict(extra="ignore", alias_generator=to_camel, populate_by_name=True)

    id: str
    user_id: str | None = None
    created_at: str | None = None
    context_data: dict[str, Any] = Field(default_factory=dict)
    status: str | None = None


class _SessionEnvelope(BaseModel):
    data: SessionRecord


class RestSessionProvider:
    """Create sessions through the runtime REST API and remember the current one."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        *,
        credentials: CredentialProvider | None = None,
        timeout: float = 30.0,
        credential_timeout: float = 0.5,
    ) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._credentials = credentials
        self._timeout = timeout
        self._credential_timeout = credential_timeout
        self._current: SessionRecord | None = None

    @classmethod
    def from_settings(
        cls,
        settings: AriaSettings,
        client: httpx.AsyncClient,
        *,
        credentials: CredentialProvider | None = None,
    ) -> RestSessionProvider:
        return cls(
            client,
            settings.base_url,
            credentials=credentials,
            timeout=settings.connect_timeout_seconds,
            credential_timeout=settings.credential_timeout_seconds,
        )

    @property
    def current_session_id(self) -> str | None:
        return self._current.id if self._current else None

    def use_session(self, session_id: str) -> None:
        """Resume an existing session instead of creating one."""
        self._current = SessionRecord(id=session_id)

    def clear_session(self) -> None:
        self._current = None

    async def get_current_session_id(self) -> str:
        if self._current is not None:
            return self._current.id
        record = await self.create_session()
        return record.id

    async def create_session(self) -> SessionRecord:
        """Create a new session and make it current.

        Raises:
            SessionError: If the request fails or the response cannot be decoded
        """
        headers = {"Accept": "application/json"}
        if authorization := await resolve_authorization(self._credentials, self._credential_timeout):
            headers["Authorization"] = authorization

        url = f"{self._base_url}{sessions_path()}"
        logger.info("session.create url={}", url)
        try:
            response = await self._client.post(url, json={}, headers=headers, timeout=self._timeout)
            response.raise_for_status()
            envelope = _SessionEnvelope.model_validate_json(response.content)
        except httpx.HTTPStatusError as exc:
            raise SessionError(f"session creation failed with HTTP {exc.response.status_code}") from exc
        except httpx.RequestError as exc:
            raise SessionError(f"session creation failed: {exc}") from exc
        except ValidationError as exc:
            raise SessionError("session creation returned an unexpected payload") from exc

        self._current = envelope.data
        logger.info("session.created id={} status={}", envelope.data.id, envelope.data.status)
        return envelope.data
