"""Tests for the network probes (ping, HTTP 200)."""

from __future__ import annotations

import subprocess
from unittest.mock import MagicMock, patch

import httpx

from cloudcorrect.invariants.checks import evaluate_check
from cloudcorrect.invariants.models import Check, Status


def _check(type: str) -> Check:
    return Check(id="n1", group_id="g1", service="NETWORK", type=type)


def _mock_http_client(mock_client_cls, response=None, error=None) -> None:
    client = MagicMock()
    if error is not None:
        client.get.side_effect = error
    else:
        client.get.return_value = response
    mock_client_cls.return_value.__enter__.return_value = client
    mock_client_cls.return_value.__exit__.return_value = False


class TestHTTP200:
    @patch("cloudcorrect.invariants.checks.network.httpx.Client")
    def test_success(self, mock_client_cls) -> None:
        resp = httpx.Response(200, headers={"content-type": "text/plain", "server": "nginx"})
        _mock_http_client(mock_client_cls, response=resp)

        result = evaluate_check(_check("HTTP_200"), {"url": "http://example.test/health"}, None)
        assert result.status == Status.PASS
        assert result.expected == "HTTP GET http://example.test/health returns 200 OK"
        assert result.data["status"] == 200
        assert result.data["server"] == "nginx"
        assert result.data["latency"] >= 0

    @patch("cloudcorrect.invariants.checks.network.httpx.Client")
    def test_non_200(self, mock_client_cls) -> None:
        _mock_http_client(mock_client_cls, response=httpx.Response(503))
        result = evaluate_check(_check("HTTP_200"), {"url": "http://example.test/"}, None)
        assert result.status == Status.FAIL
        assert result.reason == "Service returned 503"
        assert result.observed.startswith("Status 503")

    @patch("cloudcorrect.invariants.checks.network.httpx.Client")
    def test_timeout(self, mock_client_cls) -> None:
        _mock_http_client(mock_client_cls, error=httpx.ConnectTimeout("timed out"))
        result = evaluate_check(_check("HTTP_200"), {"url": "http://10.255.255.1/"}, None)
        assert result.status == Status.FAIL
        assert "timed out" in result.reason
        assert result.data["error"] == "timeout"

    @patch("cloudcorrect.invariants.checks.network.httpx.Client")
    def test_connection_refused(self, mock_client_cls) -> None:
        _mock_http_client(mock_client_cls, error=httpx.ConnectError("Connection refused"))
        result = evaluate_check(_check("HTTP_200"), {"url": "http://127.0.0.1:1/"}, None)
        assert result.status == Status.FAIL
        assert result.observed == "Request failed"
        assert "Connection refused" in result.reason

    def test_invalid_url(self) -> None:
        result = evaluate_check(_check("HTTP_200"), {"url": "http://256.256.256.256:99999/nope"}, None)
        assert result.status == Status.FAIL

    def test_unresolved_placeholder_url(self) -> None:
        result = evaluate_check(_check("HTTP_200"), {"url": "http://{{web.publicIp}}/health"}, None)
        assert result.status == Status.FAIL
        assert result.observed == "Request failed"


class TestPing:
    @patch("cloudcorrect.invariants.checks.network.subprocess.run")
    def test_reply(self, mock_run) -> None:
        mock_run.return_value = subprocess.CompletedProcess(
            args=[], returncode=0,
            stdout="64 bytes from 1.1.1.1: icmp_seq=1 ttl=57 time=12.3 ms\n", stderr="",
        )
        result = evaluate_check(_check("PING"), {"target": "1.1.1.1"}, None)
        assert result.status == Status.PASS
        assert result.data == {"target": "1.1.1.1", "latency": 12.3}
        args = mock_run.call_args[0][0]
        assert args[:3] == ["ping", "-c", "1"]
        assert args[-1] == "1.1.1.1"

    @patch("cloudcorrect.invariants.checks.network.subprocess.run")
    def test_no_reply(self, mock_run) -> None:
        mock_run.return_value = subprocess.CompletedProcess(args=[], returncode=1, stdout="", stderr="")
        result = evaluate_check(_check("PING"), {"target": "10.0.0.99"}, None)
        assert result.status == Status.FAIL
        assert result.reason == "Request timed out or host unreachable"

    @patch("cloudcorrect.invariants.checks.network.subprocess.run")
    def test_hard_timeout(self, mock_run) -> None:
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="ping", timeout=5)
        result = evaluate_check(_check("PING"), {"target": "10.0.0.99"}, None)
        assert result.status == Status.FAIL
        assert "timed out" in result.reason

    @patch("cloudcorrect.invariants.checks.network.subprocess.run")
    def test_ping_binary_missing(self, mock_run) -> None:
        mock_run.side_effect = FileNotFoundError("ping")
        result = evaluate_check(_check("PING"), {"target": "10.0.0.99"}, None)
        assert result.status == Status.FAIL
        assert result.observed == "Ping unavailable"

    @patch("cloudcorrect.invariants.checks.network.subprocess.run")
    def test_option_like_target_rejected(self, mock_run) -> None:
        result = evaluate_check(_check("PING"), {"target": "-f"}, None)
        assert result.status == Status.FAIL
        assert result.observed == "Invalid target"
        mock_run.assert_not_called()
