from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from eurozbot.adapters.rpc_health import HealthCheck, RpcHealthProbe
from eurozbot.domain.errors import NetworkError

RPC_URL = "https://rpc.test"


def _probe(results: dict[str, object], *, status_code: int = 200) -> RpcHealthProbe:
    def _handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        result = results[body["method"]]
        if isinstance(result, Exception):
            raise result
        if isinstance(result, dict) and "error" in result:
            payload = {"jsonrpc": "2.0", "id": body["id"], **result}
        else:
            payload = {"jsonrpc": "2.0", "id": body["id"], "result": result}
        return httpx.Response(status_code, json=payload)

    client = httpx.AsyncClient(transport=httpx.MockTransport(_handler))
    return RpcHealthProbe(RPC_URL, client=client)


def _check(probe: RpcHealthProbe, expected_chain_id: int = 11155111):
    async def _run():
        try:
            return await probe.check(expected_chain_id=expected_chain_id)
        finally:
            await probe.close()

    return asyncio.run(_run())


def test_healthy_sepolia_endpoint(instrumentation) -> None:
    report = _check(_probe({"eth_chainId": hex(11155111), "eth_blockNumber": "0x10"}))

    assert report.ok is True
    assert report.chain_id == 11155111
    assert report.block_number == 16
    assert [check.status for check in report.checks] == ["pass", "pass"]
    assert len(instrumentation.histograms["rpc_health_check_ms"]) == 1


def test_wrong_chain_fails_with_switch_hint() -> None:
    report = _check(_probe({"eth_chainId": "0x1", "eth_blockNumber": "0x10"}))

    assert report.ok is False
    assert report.checks[0].message.startswith("Please switch to Sepolia network!")


def test_block_zero_is_only_a_warning() -> None:
    report = _check(_probe({"eth_chainId": hex(11155111), "eth_blockNumber": "0x0"}))

    assert report.ok is True
    assert report.checks[1].status == "warn"


def test_rpc_error_payload_fails_check() -> None:
    report = _check(
        _probe(
            {
                "eth_chainId": {"error": {"code": -32601, "message": "method not found"}},
                "eth_blockNumber": "0x10",
            }
        )
    )

    assert report.ok is False
    assert "method not found" in report.checks[0].message


def test_transport_failure_is_reported_not_raised() -> None:
    failure = httpx.ConnectError("connection refused")
    report = _check(_probe({"eth_chainId": failure, "eth_blockNumber": failure}))

    assert report.ok is False
    assert report.chain_id is None
    assert all(check.status == "fail" for check in report.checks)


def test_call_raises_network_error_on_http_error() -> None:
    probe = _probe({"eth_chainId": "0x1"}, status_code=503)

    async def _run() -> None:
        try:
            await probe.call("eth_chainId")
        finally:
            await probe.close()

    with pytest.raises(NetworkError, match="HTTP 503"):
        asyncio.run(_run())


def test_health_check_status_is_validated() -> None:
    with pytest.raises(ValueError):
        HealthCheck("x", "maybe", "nope")
