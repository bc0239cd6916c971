"""Graph store backed by the Payload CMS REST API."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Tuple

import httpx
from loguru import logger

from mountaingraph.storage.base import FindResult, GraphStoreError, iter_conditions
from mountaingraph.utils.config import StoreConfig


def flatten_where(where: Mapping[str, Any], prefix: str = "where") -> List[Tuple[str, str]]:
    """Encode a where clause as qs-style query parameters.

    ``{"or": [{"name": {"in": ["A"]}}]}`` becomes
    ``[("where[or][0][name][in][0]", "A")]``.
    """
    params: List[Tuple[str, str]] = []
    for key, condition in iter_conditions(where):
        if key in ("and", "or"):
            for index, clause in enumerate(condition):
                params.extend(flatten_where(clause, f"{prefix}[{key}][{index}]"))
            continue
        for operator, value in condition.items():
            base = f"{prefix}[{key}][{operator}]"
            if operator == "in":
                params.extend((f"{base}[{i}]", _scalar(v)) for i, v in enumerate(value or []))
            else:
                params.append((base, _scalar(value)))
    return params


def _scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class PayloadGraphStore:
    """Talks to ``/api/<collection>`` endpoints of a Payload deployment.

    ``depth=0`` is always requested so relationship fields come back as ids.
    """

    def __init__(self, config: StoreConfig, client: Optional[httpx.Client] = None) -> None:
        self.config = config
        headers = {"Content-Type": "application/json"}
        if config.payload_api_key:
            headers["Authorization"] = (
                f"{config.payload_user_collection} API-Key {config.payload_api_key}"
            )
        self._client = client or httpx.Client(
            base_url=config.payload_url.rstrip("/"),
            headers=headers,
            timeout=config.timeout,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "PayloadGraphStore":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def find(
        self, collection: str, where: Optional[Mapping[str, Any]] = None, limit: int = 10
    ) -> FindResult:
        params: List[Tuple[str, str]] = [("limit", str(limit)), ("depth", "0")]
        if where:
            params.extend(flatten_where(where))
        body = self._request("GET", f"/{collection}", params=params)
        return FindResult(docs=body.get("docs") or [], total_docs=body.get("totalDocs") or 0)

    def create(self, collection: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        body = self._request("POST", f"/{collection}", params=[("depth", "0")], json=dict(data))
        return body.get("doc") or {}

    def update(self, collection: str, id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        body = self._request(
            "PATCH", f"/{collection}/{id}", params=[("depth", "0")], json=dict(data)
        )
        return body.get("doc") or {}

    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            detail = exc.response.text[:500]
            logger.warning(f"Payload {method} {path} failed: {exc.response.status_code} {detail}")
            raise GraphStoreError(
                f"Payload {method} {path} returned {exc.response.status_code}: {detail}"
            ) from exc
        except httpx.HTTPError as exc:
            raise GraphStoreError(f"Payload {method} {path} failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise GraphStoreError(f"Payload {method} {path} returned non-JSON body") from exc
        if not isinstance(body, dict):
            raise GraphStoreError(f"Payload {method} {path} returned unexpected body")
        return body
