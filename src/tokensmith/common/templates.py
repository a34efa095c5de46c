"""Prompt templating for Solidity token generation.

Both templates ask the model for a JSON object with a single
``solidityCode`` key. Form values are interpolated verbatim.
"""
from __future__ import annotations
import re
from typing import Mapping

from tokensmith.common.schema import (
    CHAIN_INFO,
    Chain,
    LiquidityTokenForm,
    TokenForm,
    TokenType,
)

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")

OUTPUT_FORMAT = """**Output Format:**
Return ONLY a JSON object with a single key "solidityCode" containing the complete Solidity code as a string. Do not include any other text, explanations, or markdown fences around the JSON.
Example: { "solidityCode": "pragma solidity ^0.8.20; ..." }
"""

STANDARD_TEMPLATE = """
You are an expert Solidity smart contract developer specializing in secure and optimized token contracts for EVM-compatible chains.
Generate a Solidity smart contract for a standard ERC-20 style token for the {{chain}} blockchain.

**Contract Requirements:**
1.  Use Solidity version ^0.8.20.
2.  Import 'ERC20.sol' and 'Ownable.sol' from OpenZeppelin contracts (`@openzeppelin/contracts/`).
3.  The contract should be named "{{contractName}}".
4.  The token name should be "{{name}}".
5.  The token symbol should be "{{symbol}}".
6.  The token should have {{decimals}} decimals.
7.  The total supply should be {{totalSupply}} tokens. Correctly handle the decimals in the minting function (e.g., `_mint(msg.sender, {{totalSupply}} * 10**{{decimals}})`).
8.  The entire total supply should be minted to the contract deployer's address (`msg.sender`) in the constructor.
9.  The contract must inherit from `ERC20` and `Ownable`.

{{outputFormat}}"""

LIQUIDITY_TEMPLATE = """
You are an expert Solidity smart contract developer specializing in secure and optimized DeFi token contracts for EVM-compatible chains.
Generate a complete Solidity smart contract for an ERC-20 style token with liquidity generation and marketing fees for the {{chain}} blockchain.

**Contract Requirements:**
1.  Use Solidity version ^0.8.20.
2.  Import necessary OpenZeppelin contracts: `ERC20.sol`, `Ownable.sol`. Also include interfaces for `IUniswapV2Router02.sol` and `IUniswapV2Factory.sol`.
3.  The contract should be named "{{contractName}}".
4.  Token Details: Name "{{name}}", Symbol "{{symbol}}", Decimals {{decimals}}.
5.  Total Supply: {{totalSupply}} tokens, minted to the deployer.
6.  **Fees:**
    - Liquidity Fee: {{liquidityFee}}%
    - Marketing Fee: {{marketingFee}}%
7.  **Tax Logic:**
    - On token transfers, collect the specified fees from the sender.
    - Store the collected tokens for liquidity and marketing separately within the contract.
    - Exclude the owner, the contract address itself, and the DEX pair from fees.
8.  **Automatic Liquidity Generation:**
    - When the number of collected tokens for liquidity reaches a certain threshold (e.g., 500,000 tokens), the contract should automatically trigger a swap and liquify event.
    - The trigger should swap half of the threshold tokens for the native chain currency ({{nativeSymbol}} on {{chain}}) and add it as liquidity to the DEX with the other half of the tokens.
    - The marketing fee tokens should be swapped for native currency and sent to the marketing wallet.
9.  **DEX Integration:**
    - Use the provided Uniswap V2 compatible router address: `{{routerAddress}}`.
10. **Wallets:**
    - Marketing fees should be sent to the marketing wallet address: `{{marketingWallet}}`.
11. **Functions:**
    - The contract owner must be able to update fee percentages, the marketing wallet, and the swap threshold.
    - Include a manual function for the owner to trigger the swap and liquify process.
    - The owner should be able to exclude/include addresses from fees.
    - Transfers between excluded addresses should not incur fees.

{{outputFormat}}"""


def render_prompt(template: str, values: Mapping[str, str]) -> str:
    """
    Render values into a template in a single pass.

    Args:
        template: Template content containing {{key}} placeholders.
        values: Replacement strings. Unknown placeholders are left untouched.

    Returns:
        Rendered prompt.
    """
    return _PLACEHOLDER.sub(lambda m: values.get(m.group(1), m.group(0)), template)


def contract_name(token_name: str) -> str:
    """Solidity contract identifier: the token name with all whitespace removed."""
    return re.sub(r"\s", "", token_name)


def build_prompt(token_type: TokenType, form: TokenForm, chain: Chain) -> str:
    """
    Build the generation prompt for a token form.

    Args:
        token_type: Selects the template.
        form: Validated form; must be a LiquidityTokenForm for liquidity tokens.
        chain: Deployment target named in the prompt.
    """
    values = {
        "chain": chain.value,
        "nativeSymbol": CHAIN_INFO[chain].native_symbol,
        "contractName": contract_name(form.name),
        "name": form.name,
        "symbol": form.symbol,
        "decimals": form.decimals,
        "totalSupply": form.totalSupply,
        "outputFormat": OUTPUT_FORMAT,
    }
    if token_type is TokenType.STANDARD:
        return render_prompt(STANDARD_TEMPLATE, values)

    if not isinstance(form, LiquidityTokenForm):
        raise TypeError("Liquidity Generator prompts need a LiquidityTokenForm")
    values.update(
        routerAddress=form.routerAddress,
        marketingWallet=form.marketingWallet,
        liquidityFee=form.liquidityFee,
        marketingFee=form.marketingFee,
    )
    return render_prompt(LIQUIDITY_TEMPLATE, values)
