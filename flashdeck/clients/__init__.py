"""Typed API clients; ``ApiClients`` bundles them over one HTTP connection pool."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx

from flashdeck.core.config import settings

from .base import ApiClientError, BaseApiClient
from .candidates import GenerationCandidatesApiClient
from .flashcards import FlashcardsApiClient
from .generations import GenerationsApiClient
from .review_sessions import ReviewSessionsApiClient


@dataclass
class ApiClients:
    http: httpx.AsyncClient
    generations: GenerationsApiClient
    candidates: GenerationCandidatesApiClient
    flashcards: FlashcardsApiClient
    review_sessions: ReviewSessionsApiClient

    @classmethod
    def create(
        cls,
        base_url: Optional[str] = None,
        *,
        http: Optional[httpx.AsyncClient] = None,
        access_token: Optional[str] = None,
    ) -> "ApiClients":
        token = access_token if access_token is not None else settings.api.access_token
        if http is None:
            headers = {"Authorization": f"Bearer {token}"} if token else None
            http = httpx.AsyncClient(headers=headers)
        kw = {"http": http, "access_token": token}
        return cls(
            http=http,
            generations=GenerationsApiClient(base_url, **kw),
            candidates=GenerationCandidatesApiClient(base_url, **kw),
            flashcards=FlashcardsApiClient(base_url, **kw),
            review_sessions=ReviewSessionsApiClient(base_url, **kw),
        )

    async def aclose(self) -> None:
        await self.http.aclose()

    async def __aenter__(self) -> "ApiClients":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


__all__ = [
    "ApiClientError",
    "ApiClients",
    "BaseApiClient",
    "FlashcardsApiClient",
    "GenerationCandidatesApiClient",
    "GenerationsApiClient",
    "ReviewSessionsApiClient",
]
