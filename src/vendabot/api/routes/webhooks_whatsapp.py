"""WhatsApp webhook routes - Evolution API integration.

ACK 2xx only after the message receipt is stored. Handling itself runs
as a background task so Evolution is answered immediately; the receipt
makes redeliveries of the same message id no-ops.

Security:
- remote_jid and text exist only in memory; logs carry masked ids only.
"""

from __future__ import annotations

import hmac
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Header, Request, Response

from vendabot.bootstrap import get_services
from vendabot.domain.orchestrator import DialogOrchestrator
from vendabot.observability.correlation import correlation_scope, get_correlation_id
from vendabot.observability.logging import get_logger
from vendabot.observability.redaction import mask_user_id, safe_log_context
from vendabot.whatsapp.evolution_adapter import InvalidPayloadError, normalize

router = APIRouter(prefix="/webhooks/whatsapp", tags=["webhooks"])

logger = get_logger(__name__)

RECEIPT_NAMESPACE = "inbound_message"


async def _process_message(
    orchestrator: DialogOrchestrator, user_id: str, text: str, correlation_id: str
) -> None:
    with correlation_scope(correlation_id):
        await orchestrator.handle_message(user_id, text)


def _message_ref(message_id: str) -> str:
    return message_id[:8] if len(message_id) >= 8 else message_id


@router.post("/evolution")
async def evolution_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    x_webhook_secret: str | None = Header(None, alias="X-Webhook-Secret"),
) -> Response:
    """Receive Evolution API webhook.

    Returns:
        200 OK if scheduled, duplicate or ignored.
        400 Bad Request if payload invalid.
        401 Unauthorized if secret validation fails.
        500 Internal Server Error if the receipt could not be stored.
    """
    correlation_id = get_correlation_id()
    services = get_services()
    settings = services.settings

    # Webhook secret validation (fail-closed outside local envs)
    expected_secret = settings.evolution_webhook_secret
    if not expected_secret:
        if settings.is_local:
            logger.warning(
                "EVOLUTION_WEBHOOK_SECRET not set - skipping validation (local dev)",
                extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
            )
        else:
            logger.error(
                "EVOLUTION_WEBHOOK_SECRET not configured - rejecting webhook (fail-closed)",
                extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
            )
            return Response(status_code=401, content="unauthorized")
    elif not x_webhook_secret or not hmac.compare_digest(x_webhook_secret, expected_secret):
        logger.warning(
            "evolution webhook secret mismatch",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return Response(status_code=401, content="unauthorized")

    try:
        payload: dict[str, Any] = await request.json()
    except ValueError:
        logger.warning(
            "invalid json body",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return Response(status_code=400, content="invalid json")
    if not isinstance(payload, dict):
        return Response(status_code=400, content="invalid json")

    try:
        msg = normalize(payload)
    except InvalidPayloadError:
        logger.warning(
            "invalid evolution payload shape",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return Response(status_code=400, content="invalid payload shape")

    if msg.should_ignore or msg.text is None:
        logger.info(
            "evolution message ignored",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=correlation_id,
                    message_id_prefix=_message_ref(msg.message_id),
                    kind=msg.kind,
                    from_me=msg.from_me,
                    is_group=msg.is_group,
                )
            },
        )
        return Response(status_code=200, content="ignored")

    try:
        stored = services.store.insert(
            RECEIPT_NAMESPACE,
            msg.message_id,
            {"received_at": msg.received_at.isoformat(), "kind": msg.kind},
        )
    except Exception:
        # No receipt - do NOT return 2xx so Evolution redelivers
        logger.exception(
            "webhook receipt failed",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return Response(status_code=500, content="processing failed")

    if not stored:
        logger.info(
            "duplicate message ignored",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=correlation_id,
                    message_id_prefix=_message_ref(msg.message_id),
                )
            },
        )
        return Response(status_code=200, content="duplicate")

    logger.info(
        "evolution webhook received",
        extra={
            "extra_fields": {
                **safe_log_context(
                    correlationId=correlation_id,
                    message_id_prefix=_message_ref(msg.message_id),
                    kind=msg.kind,
                ),
                "user_ref": mask_user_id(msg.user_id),
            }
        },
    )
    background_tasks.add_task(
        _process_message, services.orchestrator, msg.user_id, msg.text, correlation_id
    )
    return Response(status_code=200, content="ok")
