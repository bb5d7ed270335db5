"""HTTP handler tests against a live server bound to an ephemeral port."""

from __future__ import annotations

import json
import threading
import urllib.error
import urllib.request

import pytest

from nftrecon.app.server import ReconHandler, ReconServer
from nftrecon.config import settings
from tests.helpers import API_TOKEN


@pytest.fixture
def base_url(worker_env, fake_ledger):
    httpd = ReconServer(("127.0.0.1", 0), ReconHandler)
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    host, port = httpd.server_address[:2]
    yield f"http://{host}:{port}"
    httpd.shutdown()
    httpd.server_close()
    thread.join(timeout=5)


def _request(
    url: str, method: str = "GET", headers: dict[str, str] | None = None
) -> tuple[int, dict, dict]:
    data = b"" if method == "POST" else None
    req = urllib.request.Request(url, data=data, method=method, headers=headers or {})
    try:
        with urllib.request.urlopen(req, timeout=10) as resp:
            body = resp.read().decode()
            return resp.status, json.loads(body) if body else {}, dict(resp.headers)
    except urllib.error.HTTPError as exc:
        body = exc.read().decode()
        return exc.code, json.loads(body) if body else {}, dict(exc.headers)


@pytest.mark.parametrize("path", ["/", "/health", "/api/status"])
def test_health_routes_report_custody(base_url, path) -> None:
    status, payload, headers = _request(base_url + path)
    assert status == 200
    assert payload["status"] == "ok"
    assert payload["tracked_count"] == 12
    assert payload["untracked"] == 2
    assert headers["Access-Control-Allow-Origin"] == "*"


def test_health_reports_error_status_on_read_failure(base_url, fake_ledger) -> None:
    fake_ledger.fail_reads["tracked_count"] = ConnectionError("refused")
    status, payload, _ = _request(base_url + "/health")
    assert status == 500
    assert payload["status"] == "error"
    assert payload["reason"] == "ReadFailure"


def test_options_preflight(base_url) -> None:
    status, _, headers = _request(base_url + "/recover", method="OPTIONS")
    assert status == 204
    assert "POST" in headers["Access-Control-Allow-Methods"]
    assert "Authorization" in headers["Access-Control-Allow-Headers"]


def test_recover_requires_bearer_token(base_url, fake_ledger) -> None:
    status, payload, _ = _request(base_url + "/recover", method="POST")
    assert status == 401
    assert payload["status"] == "error"
    assert fake_ledger.writes == []


def test_recover_rejects_wrong_token(base_url, fake_ledger) -> None:
    status, _, _ = _request(
        base_url + "/api/recover",
        method="POST",
        headers={"Authorization": "Bearer nope"},
    )
    assert status == 401
    assert fake_ledger.writes == []


def test_recover_disabled_without_configured_token(base_url, fake_ledger, monkeypatch) -> None:
    monkeypatch.delenv("NFTRECON_API_TOKEN")
    settings.load_config.cache_clear()
    status, payload, _ = _request(
        base_url + "/recover",
        method="POST",
        headers={"Authorization": f"Bearer {API_TOKEN}"},
    )
    assert status == 403
    assert "NFTRECON_API_TOKEN" in payload["error"]
    assert fake_ledger.writes == []


def test_recover_with_token_runs_reconciliation(base_url, fake_ledger) -> None:
    status, payload, _ = _request(
        base_url + "/recover",
        method="POST",
        headers={"Authorization": f"Bearer {API_TOKEN}"},
    )
    assert status == 200
    assert payload["status"] == "ok"
    assert payload["result"]["trigger"] == "http"
    assert payload["result"]["outcome"] == "recovered"
    assert fake_ledger.writes == [("recoverBatch", [121, 137])]


def test_unknown_route_is_404(base_url) -> None:
    status, payload, _ = _request(base_url + "/nope")
    assert status == 404
    assert payload["error"] == "Not found"


def test_delete_is_not_allowed(base_url) -> None:
    status, _, _ = _request(base_url + "/recover", method="DELETE")
    assert status == 405
