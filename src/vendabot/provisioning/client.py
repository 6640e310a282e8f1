"""HTTP client for the account provisioning service.

The operator portal automation runs as a separate service; this module only
speaks its small JSON API:

    POST {base_url}/accounts
    {"account_class": "trial"|"official", "package_id": 2, "customer": "...", "note": "..."}
    -> 201 {"username": "...", "password": "...", "expires_at": "...", "access_links": [...]}

Every failure mode comes back as a ProvisioningError; nothing raises into
the dialog.
"""

from __future__ import annotations

import requests

from vendabot.domain.collaborators import (
    AccountCredentials,
    ProvisioningError,
    ProvisioningRequest,
)
from vendabot.observability.logging import get_logger
from vendabot.observability.redaction import mask_user_id, safe_log_context

logger = get_logger(__name__)

# Account creation drives a browser on the operator portal; it is slow.
HTTP_TIMEOUT = 120


class HttpProvisioningGateway:
    def __init__(self, *, base_url: str, api_key: str) -> None:
        if not base_url:
            raise RuntimeError("PROVISIONING_BASE_URL not configured")
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key

    def provision(
        self, request: ProvisioningRequest
    ) -> AccountCredentials | ProvisioningError:
        log_ctx = {
            **safe_log_context(
                account_class=request.account_class, package_id=request.package_id
            ),
            "user_ref": mask_user_id(request.user_id),
        }
        try:
            response = requests.post(
                f"{self._base_url}/accounts",
                json={
                    "account_class": request.account_class,
                    "package_id": request.package_id,
                    "customer": request.user_id,
                    "note": request.note,
                },
                headers={"Authorization": f"Bearer {self._api_key}"},
                timeout=HTTP_TIMEOUT,
            )
        except requests.RequestException as e:
            logger.warning(
                "provisioning request failed",
                extra={"extra_fields": {**log_ctx, "error_type": type(e).__name__}},
            )
            return ProvisioningError(reason=f"{type(e).__name__}: {e}")

        if response.status_code >= 400:
            logger.warning(
                "provisioning rejected",
                extra={
                    "extra_fields": {**log_ctx, "status_code": str(response.status_code)}
                },
            )
            return ProvisioningError(reason=f"http {response.status_code}")

        try:
            body = response.json()
            credentials = AccountCredentials(
                username=body["username"],
                password=body["password"],
                expires_at=body.get("expires_at"),
                access_links=list(body.get("access_links") or []),
                package_id=request.package_id,
            )
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(
                "provisioning response malformed",
                extra={"extra_fields": {**log_ctx, "error_type": type(e).__name__}},
            )
            return ProvisioningError(reason="malformed provisioning response")

        logger.info("account provisioned", extra={"extra_fields": log_ctx})
        return credentials
