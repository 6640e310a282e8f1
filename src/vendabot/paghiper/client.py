"""Thin wrapper around the PagHiper PIX HTTP API.

Purpose:
- Encapsulate PagHiper calls so domain code never builds gateway payloads.
- Convert transport and gateway failures into typed outcomes
  (ChargeError, PaymentQueryResult.error_message) instead of raising.
- Never log apiKey/token or payer data (only transaction ids and status).
"""

from __future__ import annotations

import time
from datetime import timedelta
from typing import Any
from urllib.parse import quote

import requests

from vendabot.domain.collaborators import Charge, ChargeError, PaymentQueryResult
from vendabot.domain.plans import Plan
from vendabot.infra.time import Clock, utc_now
from vendabot.observability.logging import get_logger
from vendabot.observability.redaction import mask_user_id, safe_log_context

logger = get_logger(__name__)

HTTP_TIMEOUT = 20

# Gateway statuses that mean money was received.
PAID_STATUSES = frozenset({"paid", "completed"})

DAYS_DUE = 1

QR_FALLBACK_URL = "https://api.qrserver.com/v1/create-qr-code/?size=300x300&data={data}"


class PagHiperClient:
    """PaymentInitiator and PaymentStatusSource backed by PagHiper.

    Usage:
        client = PagHiperClient(api_key="...", token="...")
        charge = client.create_charge("5511999990000", PLANS["mensal"])
        status = client.query_status(charge.transaction_id)
    """

    def __init__(
        self,
        *,
        api_key: str,
        token: str,
        base_url: str = "https://api.paghiper.com",
        pix_base_url: str = "https://pix.paghiper.com",
        notification_url: str = "",
        clock: Clock = utc_now,
    ) -> None:
        """Initialize the client.

        Raises:
            RuntimeError: If api_key or token is missing.
        """
        if not api_key or not token:
            raise RuntimeError(
                "PagHiper credentials not provided. "
                "Set PAGHIPER_API_KEY and PAGHIPER_TOKEN."
            )
        self._api_key = api_key
        self._token = token
        self._base_url = base_url.rstrip("/")
        self._pix_base_url = pix_base_url.rstrip("/")
        self._notification_url = notification_url
        self._clock = clock

    def _post(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POST JSON and return the decoded body. Raises on HTTP errors."""
        response = requests.post(
            url,
            json={"apiKey": self._api_key, "token": self._token, **payload},
            headers={"Accept": "application/json"},
            timeout=HTTP_TIMEOUT,
        )
        response.raise_for_status()
        return response.json() or {}

    def create_charge(self, user_id: str, plan: Plan) -> Charge | ChargeError:
        """Create a PIX invoice for plan on behalf of user_id.

        Returns:
            Charge on success, ChargeError on any gateway or transport failure.
        """
        order_id = f"VB-{int(time.time() * 1000)}"
        payload = {
            "order_id": order_id,
            "payer_email": f"{user_id}@whatsapp.com",
            "payer_name": "Cliente",
            "payer_phone": user_id,
            "days_due_date": str(DAYS_DUE),
            "items": [
                {
                    "item_id": "1",
                    "description": f"Assinatura - Plano {plan.name}",
                    "quantity": "1",
                    "price_cents": str(plan.price_cents),
                }
            ],
        }
        if self._notification_url:
            payload["notification_url"] = self._notification_url

        log_ctx = {
            **safe_log_context(order_id=order_id, plan_id=plan.plan_id),
            "user_ref": mask_user_id(user_id),
        }

        try:
            data = self._post(f"{self._pix_base_url}/invoice/create/", payload)
        except (requests.RequestException, ValueError) as e:
            logger.warning(
                "paghiper charge request failed",
                extra={"extra_fields": {**log_ctx, "error_type": type(e).__name__}},
            )
            return ChargeError(reason=f"{type(e).__name__}: {e}")

        create_request = data.get("pix_create_request") or data.get("create_request") or {}
        if create_request.get("result") == "reject":
            reason = create_request.get("response_message") or "rejected"
            logger.warning(
                "paghiper charge rejected",
                extra={"extra_fields": {**log_ctx, **safe_log_context(reason=reason)}},
            )
            return ChargeError(reason=reason)

        transaction_id = create_request.get("transaction_id") or data.get("transaction_id")
        if not transaction_id:
            return ChargeError(reason="missing transaction_id in gateway response")

        pix_code = create_request.get("pix_code") or {}
        qr_payload, qr_image_url = _extract_qr(pix_code)

        logger.info(
            "paghiper charge created",
            extra={
                "extra_fields": {
                    **log_ctx,
                    **safe_log_context(transaction_id=transaction_id),
                }
            },
        )
        return Charge(
            transaction_id=transaction_id,
            amount_cents=plan.price_cents,
            due_at=self._clock() + timedelta(days=DAYS_DUE),
            qr_payload=qr_payload,
            qr_image_url=qr_image_url,
            order_id=create_request.get("order_id") or order_id,
        )

    def query_status(self, transaction_id: str) -> PaymentQueryResult:
        """Query a transaction's status: PIX endpoint first, then the general API.

        Never raises on transport errors; they come back in error_message.
        """
        payload = {"transaction_id": transaction_id}
        last_error: str | None = None

        for url in (
            f"{self._pix_base_url}/invoice/status/",
            f"{self._base_url}/transaction/status/",
        ):
            try:
                data = self._post(url, payload)
            except (requests.RequestException, ValueError) as e:
                last_error = f"{type(e).__name__}: {e}"
                continue

            status_request = (
                data.get("status_request") or data.get("pix_status_request") or {}
            )
            status = status_request.get("status") or data.get("status")
            result = status_request.get("result") or data.get("result")
            if result != "success":
                message = status_request.get("response_message") or "gateway rejected query"
                return PaymentQueryResult(
                    confirmed=False, settled_status=status, error_message=message
                )
            return PaymentQueryResult(
                confirmed=status in PAID_STATUSES,
                settled_status=status,
            )

        logger.warning(
            "paghiper status query failed",
            extra={"extra_fields": safe_log_context(transaction_id=transaction_id)},
        )
        return PaymentQueryResult(confirmed=False, error_message=last_error)


def _extract_qr(pix_code: dict[str, Any] | str) -> tuple[str, str | None]:
    """Return (copy-paste payload, image URL) from a pix_code block."""
    if isinstance(pix_code, str):
        emv = pix_code
        image = None
    else:
        emv = pix_code.get("emv") or pix_code.get("qrcode_text") or ""
        image = pix_code.get("qrcode_image_url")

    if not image and emv:
        if emv.startswith(("http://", "https://")):
            image = emv
        else:
            image = QR_FALLBACK_URL.format(data=quote(emv, safe=""))
    return emv, image

