"""Tests for WhatsApp outbound messaging - verifies NO PII in logs."""

import asyncio
import io
import urllib.error
from unittest.mock import patch

import pytest

from vendabot.whatsapp.outbound import (
    EvolutionConfig,
    EvolutionTransport,
    send_text_via_evolution,
)

CONFIG = EvolutionConfig(
    base_url="http://localhost:8080/", instance="test-instance", api_key="test-api-key"
)
TEST_NUMBER = "5511999990001"
MESSAGE_TEXT = "Usuário: cliente1 Senha: s3nha"


class LogRecorder:
    """Simple recorder to capture log calls deterministically."""

    def __init__(self):
        self.calls: list[tuple[str, tuple, dict]] = []

    def _record(self, level: str, *args, **kwargs):
        self.calls.append((level, args, kwargs))

    def info(self, *args, **kwargs):
        self._record("info", *args, **kwargs)

    def warning(self, *args, **kwargs):
        self._record("warning", *args, **kwargs)

    def error(self, *args, **kwargs):
        self._record("error", *args, **kwargs)

    def exception(self, *args, **kwargs):
        self._record("exception", *args, **kwargs)

    def get_all_logged_content(self) -> str:
        return " ".join(f"{args} {kwargs}" for _, args, kwargs in self.calls)


def _http_error(code: int) -> urllib.error.HTTPError:
    return urllib.error.HTTPError("http://x", code, "err", {}, io.BytesIO(b""))


class TestEvolutionConfig:
    def test_send_url(self):
        assert CONFIG.send_url == "http://localhost:8080/message/sendText/test-instance"

    def test_missing_config(self):
        with pytest.raises(RuntimeError, match="Missing Evolution config"):
            send_text_via_evolution(
                EvolutionConfig(base_url="", instance="i", api_key="k"),
                to_ref=TEST_NUMBER,
                text="x",
            )


class TestSendText:
    def test_request_shape(self):
        with patch("vendabot.whatsapp.outbound._do_request", return_value={}) as req:
            send_text_via_evolution(CONFIG, to_ref=TEST_NUMBER, text="oi")

        url, data, headers = req.call_args.args
        assert url == CONFIG.send_url
        assert b'"number": "5511999990001"' in data
        assert headers["apikey"] == "test-api-key"

    def test_logs_no_pii(self):
        recorder = LogRecorder()
        with patch("vendabot.whatsapp.outbound.logger", recorder):
            with patch("vendabot.whatsapp.outbound._do_request", return_value={}):
                send_text_via_evolution(CONFIG, to_ref=TEST_NUMBER, text=MESSAGE_TEXT)

        logged = recorder.get_all_logged_content()
        assert TEST_NUMBER not in logged
        assert "s3nha" not in logged
        assert "to_hash" in logged
        assert len(recorder.calls) == 1

    def test_retries_once_on_server_error(self):
        with patch("vendabot.whatsapp.outbound.time.sleep"):
            with patch(
                "vendabot.whatsapp.outbound._do_request",
                side_effect=[_http_error(502), {}],
            ) as req:
                send_text_via_evolution(CONFIG, to_ref=TEST_NUMBER, text="oi")

        assert req.call_count == 2

    def test_client_error_is_not_retried(self):
        with patch(
            "vendabot.whatsapp.outbound._do_request", side_effect=_http_error(400)
        ) as req:
            with pytest.raises(urllib.error.HTTPError):
                send_text_via_evolution(CONFIG, to_ref=TEST_NUMBER, text="oi")

        assert req.call_count == 1

    def test_gives_up_after_retry(self):
        recorder = LogRecorder()
        with patch("vendabot.whatsapp.outbound.logger", recorder):
            with patch("vendabot.whatsapp.outbound.time.sleep"):
                with patch(
                    "vendabot.whatsapp.outbound._do_request",
                    side_effect=urllib.error.URLError("refused"),
                ):
                    with pytest.raises(urllib.error.URLError):
                        send_text_via_evolution(CONFIG, to_ref=TEST_NUMBER, text=MESSAGE_TEXT)

        assert [level for level, _, _ in recorder.calls] == ["warning", "error"]
        assert TEST_NUMBER not in recorder.get_all_logged_content()


class TestEvolutionTransport:
    def test_send_delegates(self):
        with patch("vendabot.whatsapp.outbound._do_request", return_value={}) as req:
            asyncio.run(EvolutionTransport(CONFIG).send(TEST_NUMBER, "oi"))

        assert req.call_count == 1
