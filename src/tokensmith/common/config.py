"""Environment and YAML configuration.

Fee currency (what the user pays in) and target chain (what the contract is
written for) are independent: the payment side is described by
``configs/payment.yaml``, the target chain travels with each request.
"""
from __future__ import annotations
import os
from dataclasses import dataclass
from typing import Any

import yaml

from tokensmith.common.errors import ConfigError
from tokensmith.common.schema import FeeQuote

DEFAULT_TREASURY = "0x294722f0BaB2717E14B7C10ac3933d068d363f4F"
PAYMENT_CONFIG_PATH = os.getenv("PAYMENT_CONFIG", "configs/payment.yaml")

# Smallest-unit exponents per chain family.
FAMILY_DECIMALS = {"evm": 18, "solana": 9}


@dataclass(frozen=True)
class FeeCurrency:
    symbol: str
    family: str
    decimals: int


@dataclass(frozen=True)
class FeeChain:
    chain_id: int | None
    name: str
    rpc_url: str
    explorer_url: str | None = None


@dataclass(frozen=True)
class PaymentSettings:
    treasury_address: str
    currency: FeeCurrency
    chain: FeeChain
    confirm_timeout_s: float = 120.0


def load_cfg(path: str) -> dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def payment_settings_from_dict(cfg: dict[str, Any]) -> PaymentSettings:
    """Build PaymentSettings from a parsed YAML mapping, applying env overrides."""
    try:
        cur = cfg.get("currency", {})
        family = str(cur.get("family", "evm")).lower()
        if family not in FAMILY_DECIMALS:
            raise ConfigError(f"Unknown chain family {family!r}")
        currency = FeeCurrency(
            symbol=str(cur.get("symbol", "ETH")),
            family=family,
            decimals=int(cur.get("decimals", FAMILY_DECIMALS[family])),
        )
        ch = cfg.get("chain", {})
        chain = FeeChain(
            chain_id=int(ch["chain_id"]) if ch.get("chain_id") is not None else None,
            name=str(ch.get("name", currency.symbol)),
            rpc_url=os.getenv("RPC_URL", str(ch.get("rpc_url", ""))),
            explorer_url=ch.get("explorer_url"),
        )
        treasury = os.getenv("TREASURY_ADDRESS", str(cfg.get("treasury_address", DEFAULT_TREASURY)))
        return PaymentSettings(
            treasury_address=treasury,
            currency=currency,
            chain=chain,
            confirm_timeout_s=float(cfg.get("confirm_timeout_s", 120.0)),
        )
    except (TypeError, ValueError, KeyError) as e:
        raise ConfigError(f"Invalid payment config: {e}")


def load_payment_settings(path: str = PAYMENT_CONFIG_PATH) -> PaymentSettings:
    """
    Load payment settings from YAML.

    Args:
        path: YAML config path with treasury, currency and chain sections.
    """
    return payment_settings_from_dict(load_cfg(path))


def same_address(a: str | None, b: str | None) -> bool:
    """Compare wallet addresses; hex addresses are case-insensitive, base58 is not."""
    if not a or not b:
        return False
    if a.startswith("0x") and b.startswith("0x"):
        return a.lower() == b.lower()
    return a == b


def fee_quote_from_env() -> FeeQuote:
    """
    Current generation fees in the fee currency.

    PRICING_MODE=native uses STANDARD_FEE_NATIVE / LIQUIDITY_FEE_NATIVE as-is.
    PRICING_MODE=usd divides STANDARD_FEE_USD / LIQUIDITY_FEE_USD by
    NATIVE_PRICE_USD (a fixed stand-in for a price oracle).
    """
    mode = os.getenv("PRICING_MODE", "native").lower()
    try:
        if mode == "native":
            standard = float(os.getenv("STANDARD_FEE_NATIVE", "0.37"))
            liquidity = float(os.getenv("LIQUIDITY_FEE_NATIVE", "0.62"))
        elif mode == "usd":
            price = float(os.getenv("NATIVE_PRICE_USD", "0.50"))
            if price <= 0:
                raise ConfigError("NATIVE_PRICE_USD must be positive")
            standard = float(os.getenv("STANDARD_FEE_USD", "60")) / price
            liquidity = float(os.getenv("LIQUIDITY_FEE_USD", "100")) / price
        else:
            raise ConfigError(f"Unknown PRICING_MODE {mode!r}")
    except ValueError as e:
        raise ConfigError(f"Invalid price configuration: {e}")
    if standard < 0 or liquidity < 0:
        raise ConfigError("Fees must be non-negative")
    return FeeQuote(standard=standard, liquidity=liquidity)
