from __future__ import annotations

import argparse
import asyncio
import logging
import os
import random
import sys
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from contextlib import asynccontextmanager

from web3 import AsyncWeb3

from eurozbot.adapters.dry_run_gateway import DryRunTokenGateway
from eurozbot.adapters.rpc_health import RpcHealthProbe
from eurozbot.adapters.token_gateway import TokenGateway
from eurozbot.adapters.wallet import WalletSession, connect_external_signer
from eurozbot.adapters.web3_gateway import Web3TokenGateway, build_web3
from eurozbot.config import Settings, WalletMode
from eurozbot.domain.errors import ConfigurationError, ValidationError
from eurozbot.domain.models import CycleResult, StatusCategory, StatusSeverity, TxReceipt
from eurozbot.logging_context import get_run_id
from eurozbot.logging_utils import setup_logging
from eurozbot.obs.events import ConsoleEventSink, EventSink
from eurozbot.observability import configure_instrumentation, flush_instrumentation
from eurozbot.security.secrets import (
    build_default_provider,
    inject_runtime_secrets,
    prompt_private_key,
    redact_secret_presence,
)
from eurozbot.services.action_policy import ActionPolicy, ActionPolicyConfig
from eurozbot.services.automation_scheduler import AutomationScheduler
from eurozbot.services.countdown import CountdownReporter
from eurozbot.services.cycle_orchestrator import CycleOrchestrator
from eurozbot.services.error_classifier import describe_error
from eurozbot.services.manual_actions import ManualActionService
from eurozbot.services.task_scheduler import TaskScheduler
from eurozbot.services.timing_policy import TimingPolicy, TimingPolicyConfig

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="eurozbot",
        epilog=(
            "Env: RPC_URL, WALLET_MODE, WALLET_PRIVATE_KEY (prompted when unset), "
            "EUROZ_ADDRESS, CEUROZ_ADDRESS. "
            "Quickstart: eurozbot health | eurozbot balances | "
            "eurozbot automate --max-cycles 1 --dry-run"
        ),
    )
    parser.add_argument("--env-file", default=None, help="Optional dotenv file with settings")
    parser.add_argument(
        "--wallet-mode",
        choices=[mode.value for mode in WalletMode],
        default=None,
        help="Override WALLET_MODE",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Use an in-process token simulation instead of the RPC endpoint",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("health", help="Check RPC connectivity and chain id")
    subparsers.add_parser("balances", help="Show EUROZ and cEUROZ balances")
    subparsers.add_parser("mint", help="Mint EUROZ from the faucet contract")

    approve_parser = subparsers.add_parser("approve", help="Approve the wrapper to spend EUROZ")
    approve_parser.add_argument("--amount", required=True, help="EUROZ amount to approve")

    wrap_parser = subparsers.add_parser("wrap", help="Wrap EUROZ into cEUROZ")
    wrap_parser.add_argument("--amount", required=True, help="EUROZ amount to wrap")

    automate_parser = subparsers.add_parser("automate", help="Run the mint/approve/wrap loop")
    automate_parser.add_argument(
        "--max-cycles",
        type=int,
        default=None,
        help="Stop after N completed cycles (default: run until Ctrl+C)",
    )
    automate_parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed the random source for reproducible amounts and delays",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        settings = _load_settings(args.env_file)
    except ValueError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2
    if args.wallet_mode is not None:
        settings = settings.model_copy(update={"wallet_mode": WalletMode(args.wallet_mode)})

    setup_logging(settings.log_level)
    configure_instrumentation(
        enabled=settings.observability_enabled,
        metrics_exporter=settings.observability_metrics_exporter,
        otlp_endpoint=settings.observability_otlp_endpoint,
        prometheus_port=settings.observability_prometheus_port,
    )
    logger.info(
        "runtime_prepared",
        extra={
            "extra": {
                "command": args.command,
                "run_id": get_run_id(),
                "wallet_mode": settings.wallet_mode.value,
                "dry_run": bool(args.dry_run),
                "chain_id": settings.chain_id,
                "pid": os.getpid(),
            }
        },
    )
    logger.info(
        "secret_presence",
        extra={"extra": redact_secret_presence("WALLET_PRIVATE_KEY", settings.private_key_value())},
    )

    try:
        if args.command == "health":
            return asyncio.run(run_health(settings))
        if args.command == "balances":
            return asyncio.run(run_balances(settings, dry_run=args.dry_run))
        if args.command == "mint":
            return asyncio.run(run_mint(settings, dry_run=args.dry_run))
        if args.command == "approve":
            return asyncio.run(run_approve(settings, amount=args.amount, dry_run=args.dry_run))
        if args.command == "wrap":
            return asyncio.run(run_wrap(settings, amount=args.amount, dry_run=args.dry_run))
        if args.command == "automate":
            if args.max_cycles is not None and args.max_cycles < 1:
                print("max-cycles must be >= 1")
                return 2
            return asyncio.run(
                run_automate(
                    settings,
                    dry_run=args.dry_run,
                    max_cycles=args.max_cycles,
                    seed=args.seed,
                )
            )
    except KeyboardInterrupt:
        logger.info(
            "command_interrupted",
            extra={"extra": {"command": args.command, "reason": "keyboard_interrupt"}},
        )
        print(f"{args.command}: interrupted, shutting down cleanly")
        return 0
    finally:
        flush_instrumentation()
    return 1


def _load_settings(env_file: str | None) -> Settings:
    resolved_env_file = None if env_file in (None, "") else env_file
    provider = build_default_provider(env_file=resolved_env_file)
    inject_runtime_secrets(provider, keys=("WALLET_PRIVATE_KEY",))
    if resolved_env_file is None:
        return Settings()
    return Settings(_env_file=resolved_env_file)


@asynccontextmanager
async def open_wallet(
    settings: Settings, *, dry_run: bool
) -> AsyncIterator[tuple[WalletSession, TokenGateway]]:
    """Connect the wallet and yield it with a gateway; the key is discarded on exit."""
    if dry_run:
        gateway = DryRunTokenGateway(
            decimals=settings.token_decimals, wrapper=settings.ceuroz_address
        )
        session = WalletSession(address=gateway.sender, mode=WalletMode.PRIVATE_KEY)
        try:
            yield session, gateway
        finally:
            session.discard()
        return

    w3 = build_web3(settings)
    wallet: WalletSession | None = None
    try:
        if settings.wallet_mode is WalletMode.EXTERNAL_SIGNER:
            wallet = await connect_external_signer(w3, expected_chain_id=settings.chain_id)
        else:
            raw_key = settings.private_key_value() or prompt_private_key()
            wallet = WalletSession.from_private_key(raw_key)
        yield wallet, Web3TokenGateway.from_settings(w3, wallet, settings)
    finally:
        if wallet is not None:
            wallet.discard()
        await _disconnect_best_effort(w3)


async def _disconnect_best_effort(w3: AsyncWeb3) -> None:
    disconnect = getattr(w3.provider, "disconnect", None)
    if not callable(disconnect):
        return
    try:
        await disconnect()
    except Exception:  # noqa: BLE001
        logger.warning(
            "Failed to close resource", extra={"extra": {"resource": "web3 provider"}}, exc_info=True
        )


async def run_health(settings: Settings) -> int:
    probe = RpcHealthProbe(settings.rpc_url, timeout_seconds=settings.rpc_timeout_seconds)
    try:
        report = await probe.check(expected_chain_id=settings.chain_id)
    finally:
        await probe.close()
    print(f"RPC endpoint: {settings.rpc_url}")
    for check in report.checks:
        print(f"health: {check.status.upper()} - {check.name}: {check.message}")
    print(f"health_status={'PASS' if report.ok else 'FAIL'}")
    return 0 if report.ok else 1


async def run_balances(settings: Settings, *, dry_run: bool = False) -> int:
    sink = ConsoleEventSink()
    try:
        async with open_wallet(settings, dry_run=dry_run) as (wallet, gateway):
            service = _manual_service(settings, wallet, gateway, sink)
            snapshot = await service.balances()
    except (ConfigurationError, ValidationError) as exc:
        sink.status(StatusCategory.WALLET, StatusSeverity.ERROR, str(exc))
        return 2
    except Exception as exc:
        sink.status(StatusCategory.WALLET, StatusSeverity.ERROR, describe_error(exc).reason)
        return 1
    finally:
        sink.close()
    print(f"Address: {snapshot.address}")
    print(snapshot.describe())
    return 0


async def run_mint(settings: Settings, *, dry_run: bool = False) -> int:
    return await _run_manual(settings, dry_run=dry_run, action=lambda service: service.mint())


async def run_approve(settings: Settings, *, amount: str, dry_run: bool = False) -> int:
    return await _run_manual(
        settings, dry_run=dry_run, action=lambda service: service.approve(amount)
    )


async def run_wrap(settings: Settings, *, amount: str, dry_run: bool = False) -> int:
    return await _run_manual(settings, dry_run=dry_run, action=lambda service: service.wrap(amount))


async def _run_manual(
    settings: Settings,
    *,
    dry_run: bool,
    action: Callable[[ManualActionService], Awaitable[TxReceipt | None]],
) -> int:
    sink = ConsoleEventSink()
    try:
        async with open_wallet(settings, dry_run=dry_run) as (wallet, gateway):
            receipt = await action(_manual_service(settings, wallet, gateway, sink))
    except (ConfigurationError, ValidationError) as exc:
        sink.status(StatusCategory.WALLET, StatusSeverity.ERROR, str(exc))
        return 2
    except Exception as exc:
        sink.status(StatusCategory.WALLET, StatusSeverity.ERROR, describe_error(exc).reason)
        return 1
    finally:
        sink.close()
    return 0 if receipt is not None else 1


async def run_automate(
    settings: Settings,
    *,
    dry_run: bool = False,
    max_cycles: int | None = None,
    seed: int | None = None,
) -> int:
    sink = ConsoleEventSink()
    rng = random.Random(seed)
    try:
        async with open_wallet(settings, dry_run=dry_run) as (wallet, gateway):
            wallet.require_private_key_mode()
            scheduler = build_scheduler(
                settings, wallet=wallet, gateway=gateway, sink=sink, rng=rng, max_cycles=max_cycles
            )
            scheduler.start()
            try:
                await scheduler.wait_stopped()
            finally:
                await scheduler.shutdown()
            completed = scheduler.state.cycles_completed
    except (ConfigurationError, ValidationError) as exc:
        sink.status(StatusCategory.AUTOMATION, StatusSeverity.ERROR, str(exc))
        return 2
    except Exception as exc:
        sink.status(StatusCategory.AUTOMATION, StatusSeverity.ERROR, describe_error(exc).reason)
        return 1
    finally:
        sink.close()
    logger.info("automation_finished", extra={"extra": {"cycles_completed": completed}})
    print(f"automate: cycles_completed={completed}")
    return 0


def build_scheduler(
    settings: Settings,
    *,
    wallet: WalletSession,
    gateway: TokenGateway,
    sink: EventSink,
    rng: random.Random,
    max_cycles: int | None = None,
    task_scheduler: TaskScheduler | None = None,
) -> AutomationScheduler:
    tasks = task_scheduler or TaskScheduler()
    timing = TimingPolicy(TimingPolicyConfig.from_settings(settings), rng=rng)
    orchestrator = CycleOrchestrator(
        gateway,
        owner=wallet.address,
        action_policy=ActionPolicy(ActionPolicyConfig.from_settings(settings), rng=rng),
        timing_policy=timing,
        sink=sink,
        wraps_per_cycle=settings.wraps_per_cycle,
    )
    countdown = CountdownReporter(
        sink,
        clock=tasks.now,
        sleep_fn=tasks.sleep,
        interval_seconds=settings.countdown_interval_seconds,
    )
    scheduler: AutomationScheduler

    def _on_cycle_complete(result: CycleResult) -> None:
        if max_cycles is not None and scheduler.state.cycles_completed >= max_cycles:
            logger.info(
                "automation_max_cycles_reached",
                extra={"extra": {"max_cycles": max_cycles, "cycle_id": result.cycle_id}},
            )
            scheduler.stop()

    scheduler = AutomationScheduler(
        orchestrator,
        timing,
        sink=sink,
        task_scheduler=tasks,
        countdown=countdown,
        on_cycle_complete=_on_cycle_complete,
    )
    return scheduler


def _manual_service(
    settings: Settings,
    wallet: WalletSession,
    gateway: TokenGateway,
    sink: EventSink,
) -> ManualActionService:
    return ManualActionService(
        gateway,
        owner=wallet.address,
        sink=sink,
        explorer_link=settings.explorer_link,
        decimals=settings.token_decimals,
    )


if __name__ == "__main__":
    raise SystemExit(main())
