"""Command line front end: pay the fee, generate the contract, save the .sol file."""
from __future__ import annotations
import argparse
import logging
import os
import sys
from pathlib import Path

from tokensmith.client.coordinator import PaymentCoordinator, PaymentState, to_smallest_unit
from tokensmith.client.gateway_client import GatewayClient
from tokensmith.client.wallet import WalletSessionContext, open_session
from tokensmith.common.config import PAYMENT_CONFIG_PATH, load_payment_settings
from tokensmith.common.errors import ConfigError, InvalidRequest, NotConnected, TokensmithError
from tokensmith.common.forms import reshape_form
from tokensmith.common.logging_setup import setup_logging
from tokensmith.common.schema import CHAIN_INFO, Chain, TokenType, parse_token_form

LOGGER = logging.getLogger("tokensmith.client.cli")

PROGRESS = {
    PaymentState.PAYING: "Processing payment...",
    PaymentState.AWAITING_CONFIRMATION: "Waiting for the payment to be confirmed...",
    PaymentState.GENERATING: "Generating smart contract...",
}

TOKEN_TYPES = {"standard": TokenType.STANDARD, "liquidity": TokenType.LIQUIDITY_GENERATOR}


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Pay the generation fee and fetch an AI-written token contract")
    ap.add_argument("--type", choices=sorted(TOKEN_TYPES), default="standard")
    ap.add_argument("--chain", choices=[c.value for c in Chain if CHAIN_INFO[c].available], default=None)
    ap.add_argument("--name", required=True)
    ap.add_argument("--symbol", required=True)
    ap.add_argument("--decimals", default="18")
    ap.add_argument("--total-supply", required=True)
    ap.add_argument("--router", help="DEX router (liquidity tokens); defaults per chain")
    ap.add_argument("--marketing-wallet", help="Defaults to the paying wallet")
    ap.add_argument("--liquidity-fee", default="2")
    ap.add_argument("--marketing-fee", default="3")
    ap.add_argument("--gateway", default=os.getenv("GATEWAY_URL", "http://localhost:8000"))
    ap.add_argument("--config", default=PAYMENT_CONFIG_PATH, help="Payment YAML config")
    ap.add_argument("--key-env", default="WALLET_PRIVATE_KEY", help="Env var holding the payer's private key")
    ap.add_argument("--out-dir", default=".")
    return ap


def _print_progress(state: PaymentState) -> None:
    if state in PROGRESS:
        print(PROGRESS[state])


def form_from_args(args: argparse.Namespace, token_type: TokenType, chain: Chain, wallet_address: str | None) -> dict[str, str]:
    common = {"name": args.name, "symbol": args.symbol, "decimals": args.decimals, "totalSupply": args.total_supply}
    form = reshape_form(common, token_type, chain, wallet_address)
    if token_type is TokenType.LIQUIDITY_GENERATOR:
        if args.router:
            form["routerAddress"] = args.router
        if args.marketing_wallet:
            form["marketingWallet"] = args.marketing_wallet
        form.update(liquidityFee=args.liquidity_fee, marketingFee=args.marketing_fee)
    return form


def run(args: argparse.Namespace) -> int:
    token_type = TOKEN_TYPES[args.type]
    chain = Chain(args.chain) if args.chain else None
    try:
        settings = load_payment_settings(args.config)
    except (OSError, TokensmithError) as e:
        LOGGER.error("Cannot load payment config %s: %s", args.config, e)
        return 2

    with WalletSessionContext() as wallet, GatewayClient(args.gateway) as gateway:
        wallet.subscribe(lambda address: LOGGER.info("Wallet account: %s", address or "disconnected"))
        try:
            wallet.connect(open_session(settings, os.getenv(args.key_env) or None))
        except ConfigError as e:
            LOGGER.error("Wallet error: %s", e.message)
            return 2
        except NotConnected as e:
            LOGGER.error("Wallet error: %s", e.message)

        try:
            form = parse_token_form(token_type, form_from_args(args, token_type, chain or Chain.ETHEREUM, wallet.address))
        except InvalidRequest as e:
            LOGGER.error(e.message)
            return 2

        coordinator = PaymentCoordinator.with_fetched_quote(
            wallet,
            gateway,
            settings,
            on_state=_print_progress,
        )
        quote = coordinator.effective_quote(wallet.address)
        if quote is not None:
            fee = quote.amount_for(token_type)
            LOGGER.info(
                "Fee: %s %s (%s base units)",
                fee,
                settings.currency.symbol,
                to_smallest_unit(fee, settings.currency.decimals),
            )

        outcome = coordinator.submit(token_type, form, chain)

    if not outcome.ok:
        print(f"Error: {outcome.error}", file=sys.stderr)
        return 1

    if outcome.notice:
        print(outcome.notice)
    out = Path(args.out_dir) / outcome.filename
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(outcome.solidity_code, encoding="utf-8")
    print(f"Saved {out}")
    return 0


def main() -> None:
    setup_logging()
    args = build_parser().parse_args()
    sys.exit(run(args))

if __name__ == "__main__":
    main()
