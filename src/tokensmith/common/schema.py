"""Pydantic models and enums for token specs and the gateway wire format."""
from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, ValidationError, ValidationInfo, field_validator

from tokensmith.common.errors import InvalidRequest


class TokenType(str, Enum):
    STANDARD = "Standard"
    LIQUIDITY_GENERATOR = "Liquidity Generator"


class Chain(str, Enum):
    """Deployment target. Only changes prompt wording and the router placeholder."""

    ETHEREUM = "Ethereum"
    POLYGON = "Polygon"
    BSC = "BNB Smart Chain"
    FITOCHAIN = "Fitochain"
    AVALANCHE = "Avalanche C-Chain"


@dataclass(frozen=True)
class ChainInfo:
    native_symbol: str
    default_router: str
    available: bool = True


CHAIN_INFO: dict[Chain, ChainInfo] = {
    Chain.ETHEREUM: ChainInfo("ETH", "0x7a250d5630B4cF539739dF2C5dAcb4c659F2488D"),
    Chain.POLYGON: ChainInfo("MATIC", "0xa5E0829CaCEd8fFDD4De3c43696c57F7D7A678ff"),
    Chain.BSC: ChainInfo("BNB", "0x10ED43C718714eb63d5aA57B78B54704E256024E"),
    # No canonical V2 router yet; PancakeSwap's is the usual placeholder.
    Chain.FITOCHAIN: ChainInfo("FITO", "0x10ED43C718714eb63d5aA57B78B54704E256024E", available=False),
    Chain.AVALANCHE: ChainInfo("AVAX", "0x60aE616a2155Ee3d9A68541Ba4544862310933d4"),
}


def _non_negative(value: str, field: str, integer: bool = False) -> str:
    try:
        number = Decimal(value.strip())
    except (InvalidOperation, AttributeError):
        raise ValueError(f"{field} must be a number")
    if not number.is_finite() or number < 0:
        raise ValueError(f"{field} must be a non-negative number")
    if integer and number != number.to_integral_value():
        raise ValueError(f"{field} must be a whole number")
    return value.strip()


class StandardTokenForm(BaseModel):
    """Fields shared by every token type. Numbers travel as decimal strings."""

    model_config = ConfigDict(extra="ignore", frozen=True, coerce_numbers_to_str=True)

    name: str
    symbol: str
    decimals: str = "18"
    totalSupply: str

    @field_validator("name", "symbol")
    @classmethod
    def _not_blank(cls, v: str, info: ValidationInfo) -> str:
        if not v.strip():
            raise ValueError(f"{info.field_name} is required")
        return v

    @field_validator("decimals")
    @classmethod
    def _decimals(cls, v: str) -> str:
        return _non_negative(v, "decimals", integer=True)

    @field_validator("totalSupply")
    @classmethod
    def _supply(cls, v: str) -> str:
        return _non_negative(v, "totalSupply")


class LiquidityTokenForm(StandardTokenForm):
    routerAddress: str
    marketingWallet: str
    liquidityFee: str = "2"
    marketingFee: str = "3"

    @field_validator("routerAddress", "marketingWallet")
    @classmethod
    def _address(cls, v: str, info: ValidationInfo) -> str:
        if not v.strip():
            raise ValueError(f"{info.field_name} is required")
        return v.strip()

    @field_validator("liquidityFee", "marketingFee")
    @classmethod
    def _fee(cls, v: str, info: ValidationInfo) -> str:
        return _non_negative(v, info.field_name)


TokenForm = Union[StandardTokenForm, LiquidityTokenForm]


def parse_token_form(token_type: TokenType, form_data: dict[str, Any] | None) -> TokenForm:
    """Validate raw form fields against the model selected by ``token_type``.

    Raises:
        InvalidRequest: when fields are missing or not valid numbers.
    """
    if not form_data:
        raise InvalidRequest("Invalid request body. `formData` is required.")
    model = StandardTokenForm if token_type is TokenType.STANDARD else LiquidityTokenForm
    try:
        return model.model_validate(form_data)
    except ValidationError as e:
        detail = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise InvalidRequest(f"Invalid formData: {detail}")


class GenerationRequest(BaseModel):
    """Wire payload for POST /api/generate-token."""

    tokenType: TokenType
    formData: dict[str, Any]
    selectedChain: Chain | None = None


class GenerationResponse(BaseModel):
    solidityCode: str


class ErrorResponse(BaseModel):
    error: str


class PriceResponse(BaseModel):
    standard: float
    liquidity: float


@dataclass(frozen=True)
class FeeQuote:
    """Native-currency fee amounts, fetched once per session."""

    standard: float
    liquidity: float

    @classmethod
    def waived(cls) -> "FeeQuote":
        return cls(standard=0, liquidity=0)

    def amount_for(self, token_type: TokenType) -> float:
        return self.standard if token_type is TokenType.STANDARD else self.liquidity
