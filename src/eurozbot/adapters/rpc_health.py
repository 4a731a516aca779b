from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from time import perf_counter
from typing import Any

import httpx

from eurozbot.domain.errors import NetworkError
from eurozbot.observability import get_instrumentation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HealthCheck:
    name: str
    status: str
    message: str

    def __post_init__(self) -> None:
        if self.status not in {"pass", "warn", "fail"}:
            raise ValueError(f"invalid health check status: {self.status}")


@dataclass(frozen=True)
class HealthReport:
    checks: list[HealthCheck]
    chain_id: int | None = None
    block_number: int | None = None

    @property
    def ok(self) -> bool:
        return all(check.status != "fail" for check in self.checks)


class RpcHealthProbe:
    """Minimal JSON-RPC client used to check an endpoint before any signing."""

    def __init__(
        self,
        rpc_url: str,
        *,
        timeout_seconds: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.rpc_url = rpc_url
        timeout = httpx.Timeout(timeout=timeout_seconds, connect=5.0)
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._ids = itertools.count(1)

    async def close(self) -> None:
        await self._client.aclose()

    async def call(self, method: str, params: list[Any] | None = None) -> Any:
        body = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params or []}
        try:
            with get_instrumentation().trace("rpc_call", attrs={"method": method}):
                response = await self._client.post(self.rpc_url, json=body)
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            raise NetworkError(f"{method} failed: {exc}") from exc
        if response.status_code >= 400:
            raise NetworkError(f"{method} failed: HTTP {response.status_code}")
        payload = response.json()
        if not isinstance(payload, dict):
            raise NetworkError(f"{method} failed: JSON-RPC payload must be an object")
        if payload.get("error"):
            error = payload["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise NetworkError(f"{method} failed: {message}")
        return payload.get("result")

    async def check(self, *, expected_chain_id: int) -> HealthReport:
        started = perf_counter()
        checks: list[HealthCheck] = []
        chain_id: int | None = None
        block_number: int | None = None

        try:
            chain_id = int(await self.call("eth_chainId"), 16)
        except (NetworkError, TypeError, ValueError) as exc:
            checks.append(HealthCheck("chain_id", "fail", str(exc)))
        else:
            if chain_id == expected_chain_id:
                checks.append(HealthCheck("chain_id", "pass", f"chain id {chain_id}"))
            else:
                checks.append(
                    HealthCheck(
                        "chain_id",
                        "fail",
                        f"Please switch to Sepolia network! (got {chain_id}, "
                        f"expected {expected_chain_id})",
                    )
                )

        try:
            block_number = int(await self.call("eth_blockNumber"), 16)
        except (NetworkError, TypeError, ValueError) as exc:
            checks.append(HealthCheck("block_number", "fail", str(exc)))
        else:
            status = "pass" if block_number > 0 else "warn"
            checks.append(HealthCheck("block_number", status, f"latest block {block_number}"))

        report = HealthReport(checks=checks, chain_id=chain_id, block_number=block_number)
        get_instrumentation().histogram(
            "rpc_health_check_ms", (perf_counter() - started) * 1000
        )
        logger.info(
            "rpc_health_checked",
            extra={
                "extra": {
                    "ok": report.ok,
                    "chain_id": chain_id,
                    "block_number": block_number,
                }
            },
        )
        return report
