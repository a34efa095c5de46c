"""Form state helpers: defaults, reshaping between token types, download names."""
from __future__ import annotations
import re
from typing import Any

from tokensmith.common.schema import CHAIN_INFO, Chain, TokenType

COMMON_FIELDS = ("name", "symbol", "decimals", "totalSupply")


def initial_form(token_type: TokenType, chain: Chain = Chain.ETHEREUM, wallet_address: str | None = None) -> dict[str, str]:
    """Empty form for a token type with the usual defaults filled in."""
    form = {"name": "", "symbol": "", "decimals": "18", "totalSupply": ""}
    if token_type is TokenType.LIQUIDITY_GENERATOR:
        form.update(
            routerAddress=CHAIN_INFO[chain].default_router,
            marketingWallet=wallet_address or "",
            liquidityFee="2",
            marketingFee="3",
        )
    return form


def reshape_form(
    current: dict[str, Any],
    token_type: TokenType,
    chain: Chain = Chain.ETHEREUM,
    wallet_address: str | None = None,
) -> dict[str, str]:
    """
    Reshape raw form state when the user switches token type.

    Common fields carry over. Switching to Standard drops the liquidity
    fields; switching to Liquidity Generator starts from its defaults and
    keeps a marketing wallet already typed in, else pre-fills the connected
    wallet address.
    """
    common = {k: str(current.get(k, "")) for k in COMMON_FIELDS}
    if token_type is TokenType.STANDARD:
        return common
    form = initial_form(TokenType.LIQUIDITY_GENERATOR, chain)
    form.update(common)
    form["marketingWallet"] = str(current.get("marketingWallet") or wallet_address or "")
    return form


def contract_filename(token_name: str | None) -> str:
    """Download name for generated code: alphanumerics of the token name + .sol."""
    if not token_name:
        return "Token.sol"
    stem = re.sub(r"[^a-zA-Z0-9]", "", token_name)
    return f"{stem or 'Token'}.sol"
