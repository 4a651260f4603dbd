"""HTTP client for the Datadog v1 REST API.

Encapsulates the one-off quirks of each endpoint so the rest of the code
sees uniform ActualObjects:
- dashboards are listed under "dashboards", SLOs under "data" (paginated),
  synthetic tests under "tests" with "public_id" as their id
- monitors created by synthetic tests are not managed directly and skipped
- deletes never block on dependents (force=true) and tolerate 404

No retries: a failed request aborts the run.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from .kinds import ResourceKind
from .models import ActualObject

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)

SLO_PAGE_SIZE = 1000


class ApiError(Exception):
    """Raised on a non-success response or a transport failure."""

    def __init__(
        self,
        status_code: int,
        message: str = "",
        *,
        method: str = "",
        path: str = "",
        response_body: str = "",
    ) -> None:
        self.status_code = status_code
        self.message = message
        self.method = method
        self.path = path
        self.response_body = response_body
        super().__init__(f"Error {status_code} during {method} {path}: {message}")


class DatadogApi:
    """Synchronous client for the resources ddsync manages."""

    def __init__(
        self,
        *,
        api_key: str,
        app_key: str,
        base_url: str = "https://api.datadoghq.com",
        http_client: httpx.Client | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        if not api_key or not app_key:
            raise ValueError("api_key and app_key are required")

        self._api_key = api_key
        self._app_key = app_key
        self._base_url = base_url.rstrip("/")
        self._client = http_client or httpx.Client()
        self._timeout = float(timeout_seconds)

    @classmethod
    def from_config(cls, config: Config) -> DatadogApi:
        return cls(
            api_key=config.api_key,
            app_key=config.app_key,
            base_url=config.api_url,
            timeout_seconds=config.request_timeout_seconds,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> DatadogApi:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "DD-API-KEY": self._api_key,
            "DD-APPLICATION-KEY": self._app_key,
        }

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any | None = None,
        params: dict[str, Any] | None = None,
        ignore_404: bool = False,
    ) -> Any:
        url = f"{self._base_url}{path}"
        try:
            resp = self._client.request(
                method,
                url,
                headers=self._headers(),
                json=json,
                params=params,
                timeout=self._timeout,
            )
        except httpx.TimeoutException as e:
            raise ApiError(0, "Request timed out", method=method, path=path) from e
        except httpx.TransportError as e:
            raise ApiError(0, str(e), method=method, path=path) from e

        logger.debug(
            "Datadog API request",
            extra={"method": method, "path": path, "status_code": resp.status_code},
        )

        if resp.status_code >= 400 and not (resp.status_code == 404 and ignore_404):
            body = resp.text
            message = body[:200] if body else f"HTTP {resp.status_code}"
            try:
                payload = resp.json()
                if isinstance(payload, dict) and payload.get("errors"):
                    message = "; ".join(str(e) for e in payload["errors"])
            except ValueError:
                pass
            raise ApiError(
                resp.status_code,
                message,
                method=method,
                path=path,
                response_body=body,
            )

        if not resp.content:
            return {}
        return resp.json()

    @staticmethod
    def _tag(kind: ResourceKind, payload: dict[str, Any]) -> ActualObject:
        if kind == ResourceKind.SYNTHETIC_TEST and "public_id" in payload:
            payload["id"] = payload.pop("public_id")
        return ActualObject.from_payload(kind, payload)

    def list(self, kind: ResourceKind) -> list[ActualObject]:
        """Download every object of a kind."""
        path = f"/api/v1/{kind.value}"
        match kind:
            case ResourceKind.SLO:
                items: list[dict[str, Any]] = []
                offset = 0
                while True:
                    page = self._request(
                        "GET", path, params={"limit": SLO_PAGE_SIZE, "offset": offset}
                    )["data"]
                    items.extend(page)
                    if len(page) < SLO_PAGE_SIZE:
                        break
                    offset += SLO_PAGE_SIZE
            case ResourceKind.DASHBOARD:
                items = self._request("GET", path)["dashboards"]
            case ResourceKind.SYNTHETIC_TEST:
                items = self._request("GET", path)["tests"]
            case ResourceKind.MONITOR:
                # Downtimes are not managed and only bloat the response
                items = self._request("GET", path, params={"with_downtimes": "false"})
                # Created by synthetic tests, which we manage instead
                items = [m for m in items if m.get("type") != "synthetics alert"]

        logger.info("Downloaded definitions", extra={"kind": kind.value, "count": len(items)})
        return [self._tag(kind, item) for item in items]

    def show(self, kind: ResourceKind, resource_id: int | str) -> ActualObject:
        response = self._request("GET", f"/api/v1/{kind.value}/{resource_id}")
        if kind == ResourceKind.SLO:
            response = response["data"]
        return self._tag(kind, response)

    def create(self, kind: ResourceKind, payload: dict[str, Any]) -> ActualObject:
        response = self._request("POST", f"/api/v1/{kind.value}", json=payload)
        if kind == ResourceKind.SLO:
            response = response["data"][0]
        return self._tag(kind, response)

    def update(
        self, kind: ResourceKind, resource_id: int | str, payload: dict[str, Any]
    ) -> ActualObject:
        response = self._request("PUT", f"/api/v1/{kind.value}/{resource_id}", json=payload)
        if kind == ResourceKind.SLO:
            response = response["data"][0]
        return self._tag(kind, response)

    def delete(self, kind: ResourceKind, resource_id: int | str) -> None:
        """Delete an object; already deleted objects are not an error.

        force=true so that dependent monitors and SLOs do not block deletion.
        """
        if kind == ResourceKind.SYNTHETIC_TEST:
            self._request(
                "POST",
                f"/api/v1/{kind.value}/delete",
                json={"public_ids": [resource_id]},
                ignore_404=True,
            )
        else:
            self._request(
                "DELETE",
                f"/api/v1/{kind.value}/{resource_id}",
                params={"force": "true"},
                ignore_404=True,
            )

    def fill_details(self, kind: ResourceKind, actuals: list[ActualObject]) -> None:
        """Merge full definitions into objects whose list entry is a summary."""
        for actual in actuals:
            full = self.show(kind, actual.id)
            actual.payload.update(full.payload)
