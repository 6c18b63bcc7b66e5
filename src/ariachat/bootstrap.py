"""Wiring helpers that assemble a turn orchestrator from settings."""

from __future__ import annotations

from collections.abc import Sequence

import httpx

from ariachat.config import AriaSettings
from ariachat.providers import CredentialProvider, RestSessionProvider, SessionProvider, StaticCredentialProvider
from ariachat.stream.transport import StreamingTransport
from ariachat.turns.fallback import DEFAULT_DELAYS
from ariachat.turns.orchestrator import TurnOrchestrator


def build_credentials(settings: AriaSettings) -> CredentialProvider:
    token = settings.access_token.get_secret_value() if settings.access_token else None
    return StaticCredentialProvider(token)


def build_orchestrator(
    settings: AriaSettings,
    *,
    client: httpx.AsyncClient | None = None,
    credentials: CredentialProvider | None = None,
    sessions: SessionProvider | None = None,
    fallback_delays: Sequence[float] = DEFAULT_DELAYS,
) -> TurnOrchestrator:
    """Build an orchestrator with explicitly constructed collaborators.

    Collaborators that are not passed in are derived from ``settings``. When
    ``client`` is omitted the transport creates one and closes it on
    ``TurnOrchestrator.aclose()``.
    """

    credentials = credentials or build_credentials(settings)
    transport = StreamingTransport.from_settings(settings, client, credentials=credentials)
    if sessions is None:
        sessions = RestSessionProvider.from_settings(settings, transport.client, credentials=credentials)
    return TurnOrchestrator(settings, transport, sessions, fallback_delays=fallback_delays)
