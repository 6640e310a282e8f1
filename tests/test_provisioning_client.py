"""Tests for the HTTP provisioning gateway (HTTP mocked)."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from vendabot.domain.collaborators import (
    AccountCredentials,
    ProvisioningError,
    ProvisioningRequest,
)
from vendabot.provisioning.client import HttpProvisioningGateway

from helpers import USER

REQUEST = ProvisioningRequest(account_class="official", package_id=3, user_id=USER, note="txid=T1")


def _response(status_code: int, body=None) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    if isinstance(body, Exception):
        response.json.side_effect = body
    else:
        response.json.return_value = body
    return response


@pytest.fixture
def gateway():
    return HttpProvisioningGateway(base_url="http://prov.local/", api_key="prov_key")


class TestHttpProvisioningGateway:
    def test_requires_base_url(self):
        with pytest.raises(RuntimeError):
            HttpProvisioningGateway(base_url="", api_key="k")

    def test_success(self, gateway):
        body = {
            "username": "cliente123",
            "password": "s3nha",
            "expires_at": "2026-04-01",
            "access_links": ["http://a", "http://b"],
        }
        with patch(
            "vendabot.provisioning.client.requests.post", return_value=_response(201, body)
        ) as post:
            outcome = gateway.provision(REQUEST)

        assert outcome == AccountCredentials(
            username="cliente123",
            password="s3nha",
            expires_at="2026-04-01",
            access_links=["http://a", "http://b"],
            package_id=3,
        )
        assert post.call_args.args[0] == "http://prov.local/accounts"
        assert post.call_args.kwargs["json"] == {
            "account_class": "official",
            "package_id": 3,
            "customer": USER,
            "note": "txid=T1",
        }
        assert post.call_args.kwargs["headers"]["Authorization"] == "Bearer prov_key"

    def test_http_error(self, gateway):
        with patch(
            "vendabot.provisioning.client.requests.post", return_value=_response(503, {})
        ):
            outcome = gateway.provision(REQUEST)

        assert outcome == ProvisioningError(reason="http 503")

    def test_network_error(self, gateway):
        with patch(
            "vendabot.provisioning.client.requests.post",
            side_effect=requests.Timeout("read timeout"),
        ):
            outcome = gateway.provision(REQUEST)

        assert isinstance(outcome, ProvisioningError)
        assert "Timeout" in outcome.reason

    @pytest.mark.parametrize("body", [{"username": "only"}, ValueError("no json"), ["x"]])
    def test_malformed_body(self, gateway, body):
        with patch(
            "vendabot.provisioning.client.requests.post", return_value=_response(200, body)
        ):
            outcome = gateway.provision(REQUEST)

        assert outcome == ProvisioningError(reason="malformed provisioning response")
