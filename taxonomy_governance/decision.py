"""
Decision Service
Routes an evaluation to the remote decision backend or the local evaluator.

The local PolicyEvaluator is always available. When the live backend is
switched on and a bearer token is configured, the request goes to the
backend first; any transport failure, non-2xx status or a body that is
not a JSON object falls back to the local evaluator. Callers never see the
failure. A successful reply is never discarded: malformed nested fields
are dropped and reported as risks.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from taxonomy_governance.audit import AuditSpineManager
from taxonomy_governance.config import CONFIG, GatewayConfig
from taxonomy_governance.operations import (
    Confidence,
    OperationContext,
    OperationType,
    PartialItem,
    Verdict,
    WorkaroundType,
    get_operation_risk,
)
from taxonomy_governance.policy_engine import EvaluationResult, PolicyEvaluator
from taxonomy_governance.prompts import generate_prompt

logger = logging.getLogger(__name__)

# Most specific keyword first: "APPROVE" is a prefix of the conditional form
VERDICT_KEYWORDS = (
    Verdict.APPROVE_WITH_CONDITIONS,
    Verdict.WORKAROUND,
    Verdict.PARTIAL,
    Verdict.REJECT,
    Verdict.APPROVE,
)


def parse_verdict_from_text(text: Optional[str]) -> Optional[Verdict]:
    """Pull the verdict keyword out of a free-text reply, if there is one."""
    normalized = " ".join((text or "").replace("_", " ").upper().split())
    for verdict in VERDICT_KEYWORDS:
        if verdict.value in normalized:
            return verdict
    return None


def result_from_reply(
    operation_type: OperationType,
    body: Any,
    prompt: str = "",
) -> EvaluationResult:
    """
    Build an EvaluationResult from a decision backend reply.

    Structured fields are primary. A reply with no verdict field falls back
    to the keyword in the free text, and a reply with neither fails closed
    as a low-confidence WORKAROUND.

    Malformed nested fields (partial items, workaround context) are
    dropped and noted in the risks; the verdict still stands.

    Raises:
        ValueError: the body is not a JSON object.
    """
    if not isinstance(body, dict):
        raise ValueError(f"expected a JSON object, got {type(body).__name__}")

    text = body.get("response") or body.get("answer") or ""
    if not isinstance(text, str):
        text = str(text)
    risks = [str(r) for r in body.get("risks") or [] if r]

    verdict = Verdict.parse(body.get("verdict")) or parse_verdict_from_text(text)
    confidence = Confidence.parse(body.get("confidence")) or Confidence.MED
    if verdict is None:
        verdict = Verdict.WORKAROUND
        confidence = Confidence.LOW
        risks.append("Decision backend reply carried no verdict")

    workaround_context = None
    context = body.get("workaroundContext")
    if context is not None:
        try:
            workaround_context = OperationContext.model_validate(context)
        except ValidationError as exc:
            logger.warning("dropping malformed workaroundContext: %s", exc)
            risks.append("Decision backend workaround context was malformed and was dropped")

    partial_items: list[PartialItem] = []
    dropped = 0
    raw_items = body.get("partialItems") or []
    for item in raw_items if isinstance(raw_items, list) else [raw_items]:
        try:
            partial_items.append(PartialItem.model_validate(item))
        except ValidationError:
            dropped += 1
    if dropped:
        logger.warning("dropped %d malformed partial item(s) from backend reply", dropped)
        risks.append(f"Decision backend sent {dropped} malformed partial item(s); they were dropped")

    return EvaluationResult(
        verdict=verdict,
        confidence=confidence,
        operation_type=operation_type,
        operation_risk=get_operation_risk(operation_type),
        risks=risks,
        workaround=body.get("workaround") or None,
        workaround_type=WorkaroundType.parse(body.get("workaroundType")),
        workaround_context=workaround_context,
        partial_items=partial_items,
        rationale=["Decided by the remote decision backend"],
        source="remote",
        prompt=prompt,
        response=text,
    )


class DecisionService:
    """
    Evaluation front door shared by the gateway and the lifecycle manager.

    Every decision, local or remote, is appended to the audit spine when
    one is configured.
    """

    def __init__(
        self,
        config: GatewayConfig | None = None,
        evaluator: PolicyEvaluator | None = None,
        audit: AuditSpineManager | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.config = config or CONFIG
        self.evaluator = evaluator or PolicyEvaluator()
        self.audit = audit
        self._http_client = http_client

    async def evaluate(
        self,
        operation_type: Any,
        context: Any = None,
        actor_id: str = "operator",
    ) -> EvaluationResult:
        ctx = context if isinstance(context, OperationContext) else OperationContext.model_validate(context or {})
        op = OperationType.parse(operation_type)
        prompt = generate_prompt(op or operation_type, ctx)

        result: Optional[EvaluationResult] = None
        if op is not None and self.config.remote_enabled:
            result = await self._evaluate_remote(op, ctx, prompt)

        if result is None:
            result = self.evaluator.evaluate(op or operation_type, ctx)
            result.prompt = prompt
            result.response = result.summary()

        logger.info(
            "evaluated %s: %s (%s, %s)",
            op.value if op else operation_type, result.verdict.value,
            result.confidence.value, result.source,
        )

        if self.audit is not None:
            op_name = op.value if op else str(operation_type)
            self.audit.log_event(
                actor_id=actor_id,
                action_type=f"POLICY_EVAL:{op_name.upper()}",
                intent_payload={
                    "source": result.source,
                    "context": ctx.to_wire(),
                    "matched_rules": result.matched_rules,
                    **result.to_wire(),
                },
            )

        return result

    async def _evaluate_remote(
        self,
        op: OperationType,
        ctx: OperationContext,
        prompt: str,
    ) -> Optional[EvaluationResult]:
        payload = {"prompt": prompt, "operationType": op.value, "context": ctx.to_wire()}
        headers = {"Authorization": f"Bearer {self.config.backend_token}"}

        try:
            if self._http_client is not None:
                resp = await self._http_client.post(self.config.backend_url, json=payload, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self.config.backend_timeout_seconds) as client:
                    resp = await client.post(self.config.backend_url, json=payload, headers=headers)
            resp.raise_for_status()
            return result_from_reply(op, resp.json(), prompt)
        except httpx.HTTPError as exc:
            logger.warning("decision backend unavailable, using local evaluator: %s", exc)
        except ValueError as exc:
            logger.warning("decision backend reply undecodable, using local evaluator: %s", exc)
        return None
