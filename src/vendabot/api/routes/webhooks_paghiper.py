"""PagHiper notification route.

Security rules:
- Verify the apiKey on every request (fail-closed outside local envs).
- Never log the payload.
- The notification only triggers a status re-query; it is not proof of
  payment by itself.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, BackgroundTasks, Request, Response

from vendabot.bootstrap import get_services
from vendabot.domain.orchestrator import DialogOrchestrator
from vendabot.infra.record_store import update_record
from vendabot.infra.time import utc_now
from vendabot.observability.correlation import correlation_scope, get_correlation_id
from vendabot.observability.logging import get_logger
from vendabot.observability.redaction import safe_log_context
from vendabot.paghiper.webhook import (
    InvalidPayloadError,
    InvalidSecretError,
    parse_body,
    verify_and_extract,
)

router = APIRouter(tags=["webhooks"])

logger = get_logger(__name__)

RECEIPT_NAMESPACE = "gateway_notification"


async def _reconcile(
    orchestrator: DialogOrchestrator, transaction_id: str, correlation_id: str
) -> None:
    with correlation_scope(correlation_id):
        try:
            await orchestrator.finalize_from_gateway(transaction_id)
        except Exception:
            logger.exception(
                "gateway reconciliation failed",
                extra={"extra_fields": safe_log_context(transaction_id=transaction_id)},
            )


@router.post("/webhooks/paghiper")
async def paghiper_webhook(request: Request, background_tasks: BackgroundTasks) -> Response:
    """Receive a PagHiper payment notification.

    Returns:
        200 OK once the receipt is stored and reconciliation scheduled
            (unknown transactions are ignored by reconciliation).
        400 Bad Request if payload invalid.
        401 Unauthorized if the apiKey does not match.
        500 Internal Server Error if the receipt could not be stored.
    """
    correlation_id = get_correlation_id()
    services = get_services()
    settings = services.settings

    body = await request.body()
    try:
        data = parse_body(body, request.headers.get("content-type"))
        notification = verify_and_extract(
            data,
            settings.paghiper_webhook_secret,
            allow_unsigned=settings.is_local,
        )
    except InvalidSecretError:
        return Response(status_code=401, content="unauthorized")
    except InvalidPayloadError:
        logger.warning(
            "invalid paghiper payload",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return Response(status_code=400, content="invalid payload")

    received_at = utc_now().isoformat()

    def record_receipt(current: dict[str, Any] | None) -> dict[str, Any]:
        receipt = current or {"count": 0}
        receipt["count"] += 1
        receipt["last_notification_id"] = notification.notification_id
        receipt["last_reported_status"] = notification.reported_status
        receipt["received_at"] = received_at
        return receipt

    try:
        update_record(services.store, RECEIPT_NAMESPACE, notification.transaction_id, record_receipt)
    except Exception:
        # No receipt - do NOT return 2xx so PagHiper retries
        logger.exception(
            "paghiper receipt failed",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return Response(status_code=500, content="processing failed")

    logger.info(
        "paghiper notification received",
        extra={
            "extra_fields": safe_log_context(
                correlationId=correlation_id,
                transaction_id=notification.transaction_id,
                reported_status=notification.reported_status,
            )
        },
    )
    background_tasks.add_task(
        _reconcile, services.orchestrator, notification.transaction_id, correlation_id
    )
    return Response(status_code=200, content="ok")
