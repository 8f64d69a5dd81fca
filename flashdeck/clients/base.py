"""Typed HTTP plumbing shared by every resource client."""

from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence, Union

import httpx
from pydantic import BaseModel

from flashdeck.core.config import settings
from flashdeck.core.errors import ApiErrorResponse, ErrorCode
from flashdeck.core.logging import get_logger

QueryValue = Union[str, int, float, bool, Sequence[str], None]


class ApiClientError(Exception):
    """Any failed API call: transport problems or an error envelope."""

    def __init__(
        self,
        message: str,
        code: str,
        status_code: Optional[int] = None,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details

    @classmethod
    def from_api_error_response(
        cls, response: ApiErrorResponse, status_code: Optional[int] = None
    ) -> "ApiClientError":
        return cls(
            response.error.message,
            response.error.code,
            status_code,
            response.error.details,
        )

    @classmethod
    def network(cls, message: str = "Network error occurred") -> "ApiClientError":
        return cls(message, "network_error")

    @classmethod
    def timeout(cls, message: str = "Request timeout") -> "ApiClientError":
        return cls(message, "timeout_error")

    @classmethod
    def unauthorized(cls, message: str = "Unauthorized") -> "ApiClientError":
        return cls(message, ErrorCode.UNAUTHORIZED, 401)

    def to_api_error_response(self) -> ApiErrorResponse:
        return ApiErrorResponse.of(self.code, self.message, self.details)

    def __repr__(self) -> str:
        return f"ApiClientError(code={self.code!r}, status={self.status_code!r}, message={self.message!r})"


class BaseApiClient:
    """Wraps an ``httpx.AsyncClient`` with the API's error envelope.

    Pass ``http`` to share a client (tests hand in one bound to a mock or ASGI
    transport); otherwise the client owns one built from ``base_url``.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        access_token: Optional[str] = None,
        http: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.logger = get_logger(__name__)
        self.base_url = (base_url or settings.api.base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.api.timeout_seconds
        token = access_token if access_token is not None else settings.api.access_token
        self._owns_http = http is None
        headers = {"Authorization": f"Bearer {token}"} if token else None
        self._http = http or httpx.AsyncClient(headers=headers)

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # Verbs ---------------------------------------------------------------
    async def get(self, path: str, *, params: Optional[Mapping[str, QueryValue]] = None, **kw) -> Any:
        return await self.request("GET", path, params=params, **kw)

    async def post(self, path: str, body: Any = None, **kw) -> Any:
        return await self.request("POST", path, body=body, **kw)

    async def patch(self, path: str, body: Any = None, **kw) -> Any:
        return await self.request("PATCH", path, body=body, **kw)

    async def put(self, path: str, body: Any = None, **kw) -> Any:
        return await self.request("PUT", path, body=body, **kw)

    async def delete(self, path: str, **kw) -> Any:
        return await self.request("DELETE", path, **kw)

    # Core ----------------------------------------------------------------
    async def request(
        self,
        method: str,
        path: str,
        *,
        body: Any = None,
        params: Optional[Mapping[str, QueryValue]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        url = self.build_url(path)
        payload = _jsonable(body)
        try:
            response = await self._http.request(
                method,
                url,
                json=payload,
                params=_query_params(params),
                timeout=timeout if timeout is not None else self.timeout,
            )
        except httpx.TimeoutException as e:
            raise ApiClientError.timeout() from e
        except httpx.TransportError as e:
            raise ApiClientError.network(str(e) or "Network error occurred") from e
        return self._handle_response(response)

    def build_url(self, path: str) -> str:
        return f"{self.base_url}{path if path.startswith('/') else '/' + path}"

    def _handle_response(self, response: httpx.Response) -> Any:
        if response.status_code == 401:
            raise ApiClientError.unauthorized()

        if response.is_success:
            if response.status_code == 204 or not response.content:
                return {}
            return response.json()

        raise ApiClientError.from_api_error_response(
            _parse_error(response), response.status_code
        )


def _parse_error(response: httpx.Response) -> ApiErrorResponse:
    fallback = ApiErrorResponse.of(
        "unknown_error", f"Request failed with status {response.status_code}"
    )
    try:
        data = response.json()
    except ValueError:
        return fallback
    if isinstance(data, dict) and isinstance(data.get("error"), dict):
        try:
            return ApiErrorResponse.model_validate(data)
        except ValueError:
            return fallback
    return fallback


def _jsonable(body: Any) -> Any:
    if body is None:
        return None
    if isinstance(body, BaseModel):
        return body.model_dump(mode="json", exclude_none=True)
    return body


def _query_params(params: Optional[Mapping[str, QueryValue]]) -> Optional[list[tuple[str, str]]]:
    """Flatten params; sequences repeat as ``key[]`` like the API expects."""
    if not params:
        return None
    out: list[tuple[str, str]] = []
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple, set)):
            out.extend((f"{key}[]", str(item)) for item in value)
        elif isinstance(value, bool):
            out.append((key, "true" if value else "false"))
        else:
            out.append((key, str(value)))
    return out or None
