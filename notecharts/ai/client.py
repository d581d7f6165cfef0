"""
HTTP collaborator - posts the recommend / derive-fields / rerank payloads to
an AI chart service and unwraps its ``{success, data, error}`` envelope.

Every failure surfaces as a CollaboratorError subclass; no retries are made.
"""

import logging
from typing import Any, Dict, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from notecharts.config_model.model import CollaboratorCfg

from .contracts import (
    CollaboratorResponseError,
    CollaboratorUnavailable,
    DeriveRequest,
    DeriveResponse,
    RecommendRequest,
    RecommendResponse,
    RerankRequest,
    RerankResponse,
    parse_json_text,
)

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=BaseModel)


class HttpCollaborator:
    """
    Client for the AI chart endpoints.

    Each call opens a short-lived ``httpx.AsyncClient``; pass ``transport`` to
    route requests elsewhere (tests use ``httpx.MockTransport``).
    """

    source = "http"

    def __init__(
        self,
        base_url: str,
        timeout_s: float = 60.0,
        recommend_path: str = "/api/ai-chart/recommend",
        derive_fields_path: str = "/api/ai-chart/derive-fields",
        rerank_path: str = "/api/ai-chart/rerank",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.paths = {
            "recommend": recommend_path,
            "derive_fields": derive_fields_path,
            "rerank": rerank_path,
        }
        self.transport = transport

    @classmethod
    def from_cfg(cls, cfg: CollaboratorCfg, transport: Optional[httpx.AsyncBaseTransport] = None) -> "HttpCollaborator":
        return cls(
            base_url=cfg.base_url,
            timeout_s=cfg.timeout_s,
            recommend_path=cfg.recommend_path,
            derive_fields_path=cfg.derive_fields_path,
            rerank_path=cfg.rerank_path,
            transport=transport,
        )

    async def _post(self, op: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}{self.paths[op]}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout_s, transport=self.transport) as client:
                response = await client.post(url, json=payload)
        except httpx.TimeoutException as e:
            raise CollaboratorUnavailable(f"{op}: connection timeout") from e
        except httpx.HTTPError as e:
            raise CollaboratorUnavailable(f"{op}: {e}") from e

        if not response.is_success:
            raise CollaboratorUnavailable(f"{op}: HTTP {response.status_code}: {_error_text(response)}")

        try:
            body = response.json()
        except ValueError as e:
            raise CollaboratorResponseError(f"{op}: response is not JSON") from e
        return unwrap_envelope(op, body)

    async def _call(self, op: str, req: BaseModel, model: Type[R]) -> R:
        data = await self._post(op, req.model_dump(mode="json"))
        logger.debug("collaborator answered", extra={"op": op, "keys": sorted(data)})
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise CollaboratorResponseError(f"{op}: unexpected payload shape") from e

    async def recommend(self, req: RecommendRequest) -> RecommendResponse:
        return await self._call("recommend", req, RecommendResponse)

    async def derive_fields(self, req: DeriveRequest) -> DeriveResponse:
        return await self._call("derive_fields", req, DeriveResponse)

    async def rerank(self, req: RerankRequest) -> RerankResponse:
        return await self._call("rerank", req, RerankResponse)


def _error_text(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:100]
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return response.text[:100]


def unwrap_envelope(op: str, body: Any) -> Dict[str, Any]:
    """
    ``{success: true, data: {...}}`` -> data. ``success: false`` raises with
    the service's error text. A bare object (no envelope) is taken as data;
    a string payload is parsed as JSON model output.
    """
    if isinstance(body, dict) and "success" in body:
        if not body.get("success"):
            raise CollaboratorResponseError(str(body.get("error") or f"{op} failed"))
        body = body.get("data")
    data = parse_json_text(body)
    if data is None:
        raise CollaboratorResponseError(f"{op}: payload is not a JSON object")
    return data


__all__ = ["HttpCollaborator", "unwrap_envelope"]
