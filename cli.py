#!/usr/bin/env python3
"""Command line client for quoting, sending and tracking OFT transfers"""

import argparse
import asyncio
import sys
from typing import Optional

from lzbridge.config import settings
from lzbridge.core.bridge.error_decoder import describe_error
from lzbridge.core.bridge.models import SendRequest
from lzbridge.core.bridge.orchestrator import ZERO_ADDRESS, SendOrchestrator
from lzbridge.core.bridge.units import format_units
from lzbridge.core.bridge.wallet import wallet_from_key
from lzbridge.core.errors import BridgeError
from lzbridge.core.registry import NetworkRegistry
from lzbridge.core.status.correlator import PacketCorrelator
from lzbridge.core.status.models import TransferContext, TransferStatus
from lzbridge.core.status.poller import TransferPoller
from lzbridge.core.status.reconciler import StatusReconciler
from lzbridge.logging_config import setup_logging
from lzbridge.providers.aggregator import AggregatorProvider
from lzbridge.providers.layerzero_scan import LayerZeroScanProvider
from lzbridge.providers.rpc import RpcClient
from lzbridge.services.history import TransferHistory


def print_status(status: TransferStatus, registry: Optional[NetworkRegistry] = None) -> None:
    """Pretty print one reconciled status"""
    marker = "✅" if status.is_final else "⏳"
    print(f"{marker} {status.tx_hash[:12]}… stage={status.canonical} (via {status.source})")
    for name, detail in status.steps.items():
        line = f"   - {name}"
        if detail.tx_hash:
            line += f" tx={detail.tx_hash}"
            url = registry.explorer_tx_url(detail.chain_id, detail.tx_hash) if registry else None
            if url:
                line += f" ({url})"
        print(line)


def build_reconciler(registry: NetworkRegistry) -> StatusReconciler:
    return StatusReconciler(
        aggregator=AggregatorProvider.from_settings(settings),
        correlator=PacketCorrelator(registry, timeout_s=settings.request_timeout_seconds)
        if settings.status_use_onchain
        else None,
        scanner=LayerZeroScanProvider.from_settings(settings) if settings.status_use_scanner else None,
    )


def cli_pairs(registry: NetworkRegistry, token_id: Optional[str]) -> None:
    print("🔀 Supported directions")
    print("=" * 50)
    for src in registry.allowed_sources(token_id):
        for dst in registry.allowed_destinations(src, token_id):
            src_cfg, dst_cfg = registry.network(src), registry.network(dst)
            print(f"{src:>10} → {dst:<10} ({src_cfg.name} eid={src_cfg.eid} → {dst_cfg.name} eid={dst_cfg.eid})")
    print("\nTokens:")
    for token in registry.tokens:
        kind = " [native adapter]" if token.native_adapter else ""
        print(f" - {token.id}: {token.symbol} ({token.name}) on {', '.join(token.network_keys)}{kind}")


async def cli_quote(registry: NetworkRegistry, args: argparse.Namespace) -> None:
    orchestrator = SendOrchestrator(
        registry,
        lz_receive_gas=settings.lz_receive_gas,
        timeout_s=settings.request_timeout_seconds,
    )
    request = SendRequest(
        source=args.src,
        destination=args.dst,
        token_id=args.token,
        amount=args.amount,
        receiver=args.receiver or ZERO_ADDRESS,
        sender=args.sender,
    )
    quote = await orchestrator.quote(request)
    print(f"💸 Native fee: {format_units(quote.fee.native_fee, 18)} ({quote.fee.native_fee} wei)")
    print(f"   amountLD={quote.send_param.amount_ld} minAmountLD={quote.send_param.min_amount_ld} decimals={quote.decimals}")
    print(f"   options={quote.send_param.extra_options}")
    print(f"   value to attach: {quote.total_value} wei")


async def cli_watch(registry: NetworkRegistry, context: TransferContext) -> None:
    poller = TransferPoller(
        build_reconciler(registry),
        context,
        interval_seconds=settings.status_poll_seconds,
        on_update=lambda status: print_status(status, registry),
    )
    poller.start()
    try:
        await poller.wait_until_executed()
    finally:
        await poller.stop()


async def cli_send(registry: NetworkRegistry, args: argparse.Namespace) -> None:
    if not settings.has_wallet_key:
        raise BridgeError("WALLET_PRIVATE_KEY is not set")

    src = registry.network(args.src)
    rpc = RpcClient.for_network(src, timeout_s=settings.request_timeout_seconds)
    history = TransferHistory(settings.history_file, settings.history_limit)
    orchestrator = SendOrchestrator(
        registry,
        wallet=wallet_from_key(rpc, settings.wallet_private_key, src.chain_id),
        history=history,
        lz_receive_gas=settings.lz_receive_gas,
        timeout_s=settings.request_timeout_seconds,
    )
    request = SendRequest(
        source=args.src,
        destination=args.dst,
        token_id=args.token,
        amount=args.amount,
        receiver=args.receiver,
    )

    print(f"🚀 Sending {args.amount} {registry.token(args.token).symbol} {args.src} → {args.dst}...")
    try:
        result = await orchestrator.send(request)
    except Exception:
        print(f"❌ Error: {orchestrator.last_error}")
        raise SystemExit(1)

    print(f"📨 Submitted: {result.tx_hash}")
    if result.used_legacy_fallback:
        print("   (sent as legacy transaction after a node gap)")
    url = src.explorer_tx_url(result.tx_hash)
    if url:
        print(f"   {url}")

    receipt = await orchestrator.confirm(result)
    print("✅ Source transaction confirmed" if receipt else "⏳ Receipt not available yet")

    if args.watch:
        await cli_watch(registry, TransferContext(
            tx_hash=result.tx_hash,
            source=args.src,
            destination=args.dst,
            token_id=args.token,
            scan_window=settings.onchain_scan_window,
            scan_network=src.scan_network,
        ))


async def cli_status(registry: NetworkRegistry, args: argparse.Namespace) -> None:
    context = TransferContext(
        tx_hash=args.tx_hash,
        source=args.src,
        destination=args.dst,
        token_id=args.token,
        scan_window=args.scan_window,
        scan_network=args.network,
    )
    if args.watch:
        await cli_watch(registry, context)
        return

    reconciler = build_reconciler(registry)
    reconciler.track(context)
    status = await reconciler.poll()
    print_status(status, registry)
    for name, error in reconciler.last_errors.items():
        print(f"⚠️  {name}: {error}")


def cli_history() -> None:
    entries = TransferHistory(settings.history_file, settings.history_limit).entries()
    if not entries:
        print("📭 No transfers recorded")
        return
    print("📜 Recent transfers")
    print("=" * 50)
    for entry in entries:
        print(f"{entry.status:<8} {entry.amount:>12} {entry.source_network} → {entry.dest_network}  {entry.tx_hash}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="lzbridge CLI")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command")

    pairs_parser = subparsers.add_parser("pairs", help="List supported directions and tokens")
    pairs_parser.add_argument("--token", default=None, help="Only directions this token supports")

    quote_parser = subparsers.add_parser("quote", help="Quote the native fee for a send")
    send_parser = subparsers.add_parser("send", help="Send tokens cross-chain")
    for sub in (quote_parser, send_parser):
        sub.add_argument("src", help="Source network key")
        sub.add_argument("dst", help="Destination network key")
        sub.add_argument("amount", help="Amount, or 'max'")
        sub.add_argument("--token", default="default", help="Token id (default: default)")
    quote_parser.add_argument("--receiver", default=None, help="Receiver address (fee does not depend on it)")
    quote_parser.add_argument("--sender", default=None, help="Address whose balance backs 'max'")
    send_parser.add_argument("receiver", help="Receiver address on the destination chain")
    send_parser.add_argument("--watch", action="store_true", help="Track the transfer until executed")

    status_parser = subparsers.add_parser("status", help="Reconciled status for a source tx hash")
    status_parser.add_argument("tx_hash", help="Source transaction hash")
    status_parser.add_argument("--src", default=None, help="Source network key (enables on-chain lookup)")
    status_parser.add_argument("--dst", default=None, help="Destination network key")
    status_parser.add_argument("--token", default="default", help="Token id")
    status_parser.add_argument("--network", choices=["mainnet", "testnet"], default=None, help="Scanner network")
    status_parser.add_argument("--scan-window", type=int, default=settings.onchain_scan_window)
    status_parser.add_argument("--watch", action="store_true", help="Poll until executed")

    subparsers.add_parser("history", help="Show the last recorded transfers")
    return parser


async def main():
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return

    setup_logging(args.log_level, log_format="console")
    command = args.command.lower()

    if command == "history":
        cli_history()
        return

    try:
        registry = NetworkRegistry.from_settings(settings)
        if command == "pairs":
            cli_pairs(registry, args.token)
        elif command == "quote":
            await cli_quote(registry, args)
        elif command == "send":
            await cli_send(registry, args)
        elif command == "status":
            await cli_status(registry, args)
        else:
            print(f"❌ Unknown command: {command}")
            parser.print_help()
    except BridgeError as e:
        print(f"❌ Error: {describe_error(e)}")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
