"""
Tests for the bridge HTTP endpoints.
"""

import time
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from lzbridge.api import deps
from lzbridge.api.estimate_fee import get_orchestrator
from lzbridge.config import Settings
from lzbridge.core.bridge.models import FeeQuote, MessagingFee, SendParam
from lzbridge.core.errors import ConfigurationError, TrackerFull, UpstreamUnauthorized, UpstreamUnavailable
from lzbridge.core.status.poller import StatusTracker
from lzbridge.core.status.reconciler import StatusReconciler
from lzbridge.main import app


TX = "0x" + "ab" * 32


@pytest.fixture
def client():
    yield TestClient(app)
    app.dependency_overrides.clear()


def _override(dependency, value):
    app.dependency_overrides[dependency] = lambda: value


# ---------------------------------------------------------------------------
# estimate-fee
# ---------------------------------------------------------------------------


def test_estimate_fee_returns_quote(client):
    quote = FeeQuote(
        send_param=SendParam(dst_eid=40161, to=bytes(32), amount_ld=10**18, min_amount_ld=99 * 10**16),
        fee=MessagingFee(native_fee=1_500_000_000_000_000),
        decimals=18,
        oft_address="0x" + "11" * 20,
    )
    orchestrator = MagicMock(quote=AsyncMock(return_value=quote), last_error=None)
    _override(get_orchestrator, orchestrator)

    response = client.post("/api/estimate-fee", json={"src": "hii", "dst": "sepolia", "amount": "1", "tokenId": "default"})

    assert response.status_code == 200
    body = response.json()
    assert body["fee"] == "0.0015"
    assert body["nativeFeeWei"] == "1500000000000000"
    assert body["sendParam"]["minAmountLD"] == str(99 * 10**16)
    sent = orchestrator.quote.await_args.args[0]
    assert sent.receiver == "0x" + "00" * 20


def test_estimate_fee_requires_all_fields(client):
    _override(get_orchestrator, MagicMock())

    response = client.post("/api/estimate-fee", json={"src": "hii", "dst": "sepolia"})

    assert response.status_code == 400
    assert response.json() == {"error": "Missing required parameters"}


def test_estimate_fee_rejects_unsupported_direction(client, registry):
    _override(deps.get_registry, registry)

    response = client.post("/api/estimate-fee", json={"src": "sepolia", "dst": "sepolia", "amount": "1", "tokenId": "default"})

    assert response.status_code == 400
    assert "Unsupported transfer direction" in response.json()["error"]


def test_estimate_fee_unknown_token_is_bad_request(client, registry):
    _override(deps.get_registry, registry)

    response = client.post("/api/estimate-fee", json={"src": "hii", "dst": "sepolia", "amount": "1", "tokenId": "nope"})

    assert response.status_code == 400
    assert "nope" in response.json()["error"]


# ---------------------------------------------------------------------------
# agg-status
# ---------------------------------------------------------------------------


def _aggregator(**kwargs):
    return MagicMock(fetch_status=AsyncMock(**kwargs))


def test_agg_status_usage_hint(client):
    assert client.get("/api/agg-status").json() == {"ok": True, "message": "Use POST with { txHash }"}


def test_agg_status_requires_tx_hash(client):
    _override(deps.get_aggregator, _aggregator(return_value={}))

    assert client.post("/api/agg-status", json={}).status_code == 400


def test_agg_status_unconfigured_returns_hint(client):
    _override(deps.get_aggregator, None)

    response = client.post("/api/agg-status", json={"txHash": TX})

    assert response.status_code == 500
    assert response.json()["error"] == "STATUS_API_BASE not configured"
    assert "hint" in response.json()


def test_agg_status_passes_payload_through(client):
    payload = {"guid": "0x01", "currentStatus": "committed", "steps": []}
    aggregator = _aggregator(return_value=payload)
    _override(deps.get_aggregator, aggregator)

    response = client.post("/api/agg-status", json={"txHash": TX})

    assert response.status_code == 200
    assert response.json() == payload
    aggregator.fetch_status.assert_awaited_once_with(TX)


def test_agg_status_forbidden_carries_hint(client):
    error = UpstreamUnauthorized("Unauthorized", status_code=403, hint="Check STATUS_API_USERNAME/PASSWORD")
    _override(deps.get_aggregator, _aggregator(side_effect=error))

    response = client.post("/api/agg-status", json={"txHash": TX})

    assert response.status_code == 403
    assert response.json() == {
        "error": "Unauthorized",
        "upstreamStatus": 403,
        "hint": "Check STATUS_API_USERNAME/PASSWORD",
    }


def test_agg_status_not_found(client):
    error = UpstreamUnavailable("Not found", status_code=404, body="missing")
    _override(deps.get_aggregator, _aggregator(side_effect=error))

    response = client.post("/api/agg-status", json={"txHash": TX})

    assert response.status_code == 404
    assert response.json()["found"] is False
    assert response.json()["body"] == "missing"


def test_agg_status_upstream_error_keeps_status(client):
    error = UpstreamUnavailable("Upstream error", status_code=503, body="maintenance")
    _override(deps.get_aggregator, _aggregator(side_effect=error))

    response = client.post("/api/agg-status", json={"txHash": TX})

    assert response.status_code == 503
    assert response.json()["error"] == "Upstream error"


def test_agg_status_unreachable_is_bad_gateway(client):
    _override(deps.get_aggregator, _aggregator(side_effect=UpstreamUnavailable("Aggregator unreachable")))

    assert client.post("/api/agg-status", json={"txHash": TX}).status_code == 502


# ---------------------------------------------------------------------------
# lz-status-onchain / lz-status
# ---------------------------------------------------------------------------


def test_onchain_status_requires_fields(client):
    _override(deps.get_correlator, MagicMock())

    response = client.post("/api/lz-status-onchain", json={"txHash": TX})

    assert response.status_code == 400


def test_onchain_status_returns_correlation(client):
    result = SimpleNamespace(to_dict=lambda: {"stage": "executed", "nonceChecked": True})
    correlator = MagicMock(correlate=AsyncMock(return_value=result))
    _override(deps.get_correlator, correlator)

    response = client.post(
        "/api/lz-status-onchain",
        json={"txHash": TX, "sourceNetwork": "hii", "destNetwork": "sepolia", "tokenId": "default", "includeDvn": True},
    )

    assert response.status_code == 200
    assert response.json()["stage"] == "executed"
    correlator.correlate.assert_awaited_once_with(
        TX, "hii", "sepolia", "default", scan_window=20_000, include_dvn=True
    )


def test_onchain_status_uses_configured_scan_window(client):
    result = SimpleNamespace(to_dict=lambda: {"stage": "inflight"})
    correlator = MagicMock(correlate=AsyncMock(return_value=result))
    _override(deps.get_correlator, correlator)
    _override(deps.get_settings, Settings(_env_file=None, onchain_scan_window=1_234))

    response = client.post(
        "/api/lz-status-onchain",
        json={"txHash": TX, "sourceNetwork": "hii", "destNetwork": "sepolia", "tokenId": "default"},
    )

    assert response.status_code == 200
    assert correlator.correlate.await_args.kwargs["scan_window"] == 1_234


def test_onchain_status_rejects_non_positive_scan_window(client):
    correlator = MagicMock(correlate=AsyncMock())
    _override(deps.get_correlator, correlator)

    response = client.post(
        "/api/lz-status-onchain",
        json={"txHash": TX, "sourceNetwork": "hii", "destNetwork": "sepolia", "tokenId": "default", "scanWindow": 0},
    )

    assert response.status_code == 422
    correlator.correlate.assert_not_awaited()


def test_onchain_status_configuration_error(client):
    correlator = MagicMock(correlate=AsyncMock(side_effect=ConfigurationError("Network configuration for mars not found")))
    _override(deps.get_correlator, correlator)

    response = client.post(
        "/api/lz-status-onchain",
        json={"txHash": TX, "sourceNetwork": "mars", "destNetwork": "sepolia", "tokenId": "default"},
    )

    assert response.status_code == 400
    assert "mars" in response.json()["error"]


def test_scan_status_summarizes_messages(client):
    messages = [{"guid": "0x02", "destination": {"status": "DELIVERED", "tx": {"txHash": "0xdd"}}}]
    scanner = MagicMock(fetch_messages=AsyncMock(return_value=(messages, "https://scan-testnet.layerzero-api.com/v1")))
    _override(deps.get_scanner, scanner)

    response = client.post("/api/lz-status", json={"txHash": TX, "network": "testnet"})

    assert response.status_code == 200
    body = response.json()
    assert body["found"] is True
    assert body["stage"] == "executed"
    scanner.fetch_messages.assert_awaited_once_with(TX, "testnet")


def test_scan_status_rejects_unknown_network(client):
    _override(deps.get_scanner, MagicMock())

    assert client.post("/api/lz-status", json={"txHash": TX, "network": "devnet"}).status_code == 422


# ---------------------------------------------------------------------------
# env-check
# ---------------------------------------------------------------------------


def test_env_check_reports_presence_only(client, monkeypatch):
    for suffix, value in {
        "NAME": "HII Testnet",
        "CHAIN_ID": "4242",
        "RPC_HTTP": "https://secret-rpc.example/key123",
        "EID": "40420",
        "ENDPOINT_V2": "0x" + "a1" * 20,
        "DVN": "0x" + "a2" * 20,
        "EXECUTOR": "0x" + "a3" * 20,
        "OFT": "0x" + "11" * 20,
    }.items():
        monkeypatch.setenv(f"HII_{suffix}", value)
    settings = Settings(
        _env_file=None,
        network_keys="hii",
        status_api_base="https://status.example",
        status_api_username="alice",
        status_api_password="hunter2",
    )
    _override(deps.get_settings, settings)

    response = client.get("/api/env-check")

    assert response.status_code == 200
    body = response.json()
    assert body["networks"]["hii"] == {
        "name": "HII Testnet",
        "chainId": 4242,
        "rpcHttpPresent": True,
        "endpointV2Present": True,
        "oftPresent": True,
        "explorerTxBasePresent": False,
    }
    assert body["aggregator"] == {"basePresent": True, "usernamePresent": True, "passwordPresent": True}
    assert "hunter2" not in response.text
    assert "key123" not in response.text


def test_env_check_reports_network_errors(client):
    settings = Settings(_env_file=None, network_keys="nowhere", networks_config="")
    _override(deps.get_settings, settings)

    body = client.get("/api/env-check").json()

    assert body["networks"] is None
    assert "No network configuration" in body["networksError"]


# ---------------------------------------------------------------------------
# transfers
# ---------------------------------------------------------------------------


def test_track_transfer_polls_until_executed():
    payload = {"steps": [{"name": name, "done": True} for name in ("sent", "committed", "executed")]}
    tracker = StatusTracker(
        lambda: StatusReconciler(aggregator=MagicMock(fetch_status=AsyncMock(return_value=payload))),
        interval_seconds=0.01,
    )
    _override(deps.get_tracker, tracker)

    try:
        with TestClient(app) as client:
            response = client.post("/api/transfers/track", json={"txHash": TX})
            assert response.status_code == 202
            assert response.json()["tracking"] is True
            assert response.json()["status"]["stage"] == "unknown"

            body = None
            for _ in range(100):
                body = client.get(f"/api/transfers/{TX}").json()
                if body["final"]:
                    break
                time.sleep(0.02)

            assert body["stage"] == "executed"
            assert body["source"] == "aggregator"
            assert body["polling"] is False
    finally:
        app.dependency_overrides.clear()


def test_untracked_transfer_is_not_found(client):
    _override(deps.get_tracker, StatusTracker(lambda: StatusReconciler()))

    response = client.get(f"/api/transfers/{TX}")

    assert response.status_code == 404
    assert response.json()["txHash"] == TX


def test_track_transfer_uses_configured_scan_window(client):
    tracker = MagicMock()
    tracker.track.return_value = SimpleNamespace(tx_hash=TX)
    tracker.snapshot.return_value = None
    _override(deps.get_tracker, tracker)
    _override(deps.get_settings, Settings(_env_file=None, onchain_scan_window=1_234))

    response = client.post("/api/transfers/track", json={"txHash": TX, "sourceNetwork": "hii", "destNetwork": "sepolia"})

    assert response.status_code == 202
    context = tracker.track.call_args.args[0]
    assert context.scan_window == 1_234
    assert (context.source, context.destination) == ("hii", "sepolia")


def test_track_transfer_rejects_non_positive_scan_window(client):
    tracker = MagicMock()
    _override(deps.get_tracker, tracker)

    response = client.post("/api/transfers/track", json={"txHash": TX, "scanWindow": 0})

    assert response.status_code == 422
    tracker.track.assert_not_called()


def test_track_transfer_when_tracker_is_full(client):
    tracker = MagicMock()
    tracker.track.side_effect = TrackerFull("Already tracking 1 transfers; try again later")
    _override(deps.get_tracker, tracker)

    response = client.post("/api/transfers/track", json={"txHash": TX})

    assert response.status_code == 429
    assert response.json() == {"error": "Already tracking 1 transfers; try again later"}


def test_track_executed_transfer_again_keeps_status():
    payload = {"steps": [{"name": name, "done": True} for name in ("sent", "executed")]}
    tracker = StatusTracker(
        lambda: StatusReconciler(aggregator=MagicMock(fetch_status=AsyncMock(return_value=payload))),
        interval_seconds=0.01,
    )
    _override(deps.get_tracker, tracker)

    try:
        with TestClient(app) as client:
            client.post("/api/transfers/track", json={"txHash": TX})
            for _ in range(100):
                if client.get(f"/api/transfers/{TX}").json()["final"]:
                    break
                time.sleep(0.02)

            again = client.post("/api/transfers/track", json={"txHash": TX})

            assert again.status_code == 202
            assert again.json()["status"]["stage"] == "executed"
            assert again.json()["status"]["polling"] is False
    finally:
        app.dependency_overrides.clear()
