"""
Taxonomy SDK: Client
Thin synchronous wrapper over the taxonomy governance gateway.
"""

from __future__ import annotations

import logging
from typing import Any, Union

import httpx

from taxonomy_governance.operations import OperationContext, get_operation_risk
from taxonomy_sdk.models import EvaluationResponse

logger = logging.getLogger(__name__)

FALLBACK_MESSAGE = (
    "Unable to reach the decision service. "
    "Review this change manually before proceeding."
)


class EvaluationClient:
    """
    Client for the taxonomy governance gateway.

    Never raises on transport problems: a failed call comes back as
    success=False with the operation's static risk level.
    """

    def __init__(
        self,
        gateway_url: str,
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ):
        """
        Args:
            gateway_url: Base URL of the gateway (e.g. "http://localhost:8000")
            timeout: HTTP request timeout in seconds
            client: Preconfigured httpx.Client (e.g. a FastAPI TestClient)
        """
        self.gateway_url = gateway_url.rstrip("/")
        self._client = client or httpx.Client(timeout=timeout)

    def evaluate(
        self,
        operation_type: str,
        context: Union[OperationContext, dict[str, Any]],
    ) -> EvaluationResponse:
        """
        Ask the gateway whether an edit may proceed.

        Args:
            operation_type: One of the operation kinds (e.g. "merge-subtheme")
            context: OperationContext or its camelCase dict form

        Returns:
            EvaluationResponse with verdict, confidence and risks.
        """
        payload = context.to_wire() if isinstance(context, OperationContext) else context

        try:
            resp = self._client.post(
                f"{self.gateway_url}/evaluate",
                json={"operationType": operation_type, "context": payload},
            )
            body = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("evaluate call failed: %s", exc)
            return self._fallback(operation_type, str(exc))

        if resp.status_code != 200 or not isinstance(body, dict):
            error = body.get("error") if isinstance(body, dict) else None
            return self._fallback(operation_type, error or f"HTTP {resp.status_code}", body)

        return EvaluationResponse.model_validate({**body, "raw": body})

    def health(self) -> dict:
        """Check gateway health via GET /health."""
        resp = self._client.get(f"{self.gateway_url}/health")
        return resp.json()

    @staticmethod
    def _fallback(operation_type: str, error: str, body: Any = None) -> EvaluationResponse:
        return EvaluationResponse(
            success=False,
            response=FALLBACK_MESSAGE,
            operation_risk=get_operation_risk(operation_type).value,
            error=error,
            raw=body if isinstance(body, dict) else {},
        )
