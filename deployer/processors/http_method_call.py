"""
HTTP Method Call Processor — Notify an HTTP endpoint about the deployment.

## Payload Format (POST/PUT/PATCH)

{
    "event": "deployment",
    "target_id": "editorial-dev",
    "deployment_id": "D-20260204T120000-ABC123",
    "previous_commit": "...",
    "current_commit": "...",
    "change_set": {"created": [...], "updated": [...], "deleted": [...]}
}

## Parameters

    url: endpoint to call
    method: HTTP method (default: POST)
    headers: extra request headers
    timeout_seconds: request timeout (default: 10)
    send_payload: include the JSON payload (default: true)
"""

from __future__ import annotations

import logging
from typing import Dict, Literal

import httpx
from pydantic import Field

from .. import __version__
from ..exceptions import ProcessorFailure
from ..pipeline.context import DeploymentContext
from .base import Processor, ProcessorParams, ProcessorResult

logger = logging.getLogger(__name__)


class HttpMethodCallParams(ProcessorParams):
    url: str
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE"] = "POST"
    headers: Dict[str, str] = Field(default_factory=dict)
    timeout_seconds: float = Field(default=10, gt=0)
    send_payload: bool = True


class HttpMethodCallProcessor(Processor):
    name = "http-method-call"
    params_model = HttpMethodCallParams

    def execute(self, context: DeploymentContext) -> ProcessorResult:
        params = self.params
        headers = {"User-Agent": f"site-deployer/{__version__}", **params.headers}
        payload = self._build_payload(context) if params.send_payload and params.method != "GET" else None

        try:
            response = httpx.request(
                params.method,
                params.url,
                json=payload,
                headers=headers,
                timeout=params.timeout_seconds,
            )
        except httpx.TimeoutException as e:
            raise ProcessorFailure(
                f"{params.method} {params.url} timed out",
                processor=self.name,
                target_id=context.target_id,
                cause=e,
            ) from e
        except httpx.RequestError as e:
            raise ProcessorFailure(
                f"{params.method} {params.url} failed: {e}",
                processor=self.name,
                target_id=context.target_id,
                cause=e,
            ) from e

        if response.status_code >= 400:
            raise ProcessorFailure(
                f"{params.method} {params.url} returned {response.status_code}",
                processor=self.name,
                target_id=context.target_id,
            )

        logger.info(f"{params.method} {params.url}: {response.status_code}", extra=context.log_extra(self.label))
        return ProcessorResult.ok(status_code=response.status_code, url=params.url)

    @staticmethod
    def _build_payload(context: DeploymentContext) -> dict:
        return {
            "event": "deployment",
            "target_id": context.target_id,
            "env": context.target.env,
            "site_name": context.target.site_name,
            "deployment_id": context.deployment_id,
            "previous_commit": context.previous_commit,
            "current_commit": context.current_commit,
            "change_set": context.change_set.to_dict(),
        }
