from __future__ import annotations

from typing import Any, Callable

import pytest

from tokensmith.client.coordinator import (
    CoordinatorBusy,
    PaymentCoordinator,
    PaymentState,
    to_smallest_unit,
)
from tokensmith.client.wallet import TransferConfirmation, WalletSessionContext
from tokensmith.common.config import FeeChain, FeeCurrency, PaymentSettings
from tokensmith.common.errors import (
    GenerationFailed,
    NoPriceData,
    PaymentBroadcastOrConfirmFailed,
    PaymentRejectedByUser,
)
from tokensmith.common.schema import Chain, FeeQuote, LiquidityTokenForm, StandardTokenForm, TokenType

TREASURY = "0x294722f0BaB2717E14B7C10ac3933d068d363f4F"
USER = "0x1111111111111111111111111111111111111111"
CODE = "pragma solidity ^0.8.20; contract TestToken {}"

SETTINGS = PaymentSettings(
    treasury_address=TREASURY,
    currency=FeeCurrency(symbol="FITO", family="evm", decimals=18),
    chain=FeeChain(chain_id=1233, name="Fitochain", rpc_url="http://localhost:8545"),
)
QUOTE = FeeQuote(standard=0.37, liquidity=0.62)
FORM = StandardTokenForm(name="Test Token", symbol="TST", decimals="18", totalSupply="1000000")


class _FakeSession:
    kind = "evm"

    def __init__(self, address: str = USER, error: Exception | None = None) -> None:
        self._target = address
        self._address: str | None = None
        self.error = error
        self.transfers: list[tuple[int, str]] = []

    @property
    def is_connected(self) -> bool:
        return self._address is not None

    @property
    def address(self) -> str | None:
        return self._address

    def connect(self) -> str:
        self._address = self._target
        return self._address

    def disconnect(self) -> None:
        self._address = None

    def use_account(self, address: str) -> None:
        self._address = address

    def send_native_transfer(
        self, amount: int, to: str, on_broadcast: Callable[[str], None] | None = None
    ) -> TransferConfirmation:
        self.transfers.append((amount, to))
        if self.error is not None:
            raise self.error
        if on_broadcast is not None:
            on_broadcast("0xfeed")
        return TransferConfirmation(tx_hash="0xfeed", block_number=1)


class _FakeGateway:
    def __init__(self, code: str = CODE, error: Exception | None = None) -> None:
        self.code = code
        self.error = error
        self.calls: list[tuple[TokenType, Any, Chain | None]] = []

    def generate_token_contract(self, token_type: TokenType, form: Any, chain: Chain | None = None) -> str:
        self.calls.append((token_type, form, chain))
        if self.error is not None:
            raise self.error
        return self.code

    def fetch_prices(self, address: str | None = None) -> FeeQuote:
        return QUOTE


def _coordinator(
    session: _FakeSession | None,
    gateway: _FakeGateway,
    quote: FeeQuote | None = QUOTE,
) -> tuple[PaymentCoordinator, list[PaymentState]]:
    wallet = WalletSessionContext().open()
    if session is not None:
        wallet.connect(session)
    states: list[PaymentState] = []
    coordinator = PaymentCoordinator(wallet, gateway, SETTINGS, quote=quote, on_state=states.append)  # type: ignore[arg-type]
    return coordinator, states


def test_to_smallest_unit_rounds_to_integer() -> None:
    assert to_smallest_unit(0.37, 18) == 370000000000000000
    assert to_smallest_unit(0.62, 9) == 620000000
    assert to_smallest_unit("0.0000000005", 9) == 1
    assert to_smallest_unit("0.0000000004", 9) == 0
    assert to_smallest_unit(120.0, 18) == 120 * 10**18


def test_standard_payment_then_generation() -> None:
    session, gateway = _FakeSession(), _FakeGateway()
    coordinator, states = _coordinator(session, gateway)

    outcome = coordinator.submit(TokenType.STANDARD, FORM)

    assert outcome.ok
    assert outcome.solidity_code == CODE
    assert outcome.filename == "TestToken.sol"
    assert outcome.tx_hash == "0xfeed"
    assert not outcome.fee_waived and outcome.notice == ""
    assert session.transfers == [(370000000000000000, TREASURY)]
    assert gateway.calls == [(TokenType.STANDARD, FORM, None)]
    assert states == [
        PaymentState.VALIDATING,
        PaymentState.PAYING,
        PaymentState.AWAITING_CONFIRMATION,
        PaymentState.GENERATING,
        PaymentState.SUCCESS,
    ]


def test_liquidity_fee_uses_liquidity_quote() -> None:
    session, gateway = _FakeSession(), _FakeGateway()
    coordinator, _ = _coordinator(session, gateway)
    form = LiquidityTokenForm(
        **FORM.model_dump(),
        routerAddress="0x10ED43C718714eb63d5aA57B78B54704E256024E",
        marketingWallet=USER,
    )

    outcome = coordinator.submit(TokenType.LIQUIDITY_GENERATOR, form, Chain.BSC)

    assert outcome.ok
    assert session.transfers == [(620000000000000000, TREASURY)]
    assert gateway.calls[0][2] is Chain.BSC


def test_admin_wallet_skips_transfer() -> None:
    session, gateway = _FakeSession(address=TREASURY.lower()), _FakeGateway()
    coordinator, states = _coordinator(session, gateway, quote=None)

    outcome = coordinator.submit(TokenType.STANDARD, FORM)

    assert outcome.ok
    assert outcome.fee_waived
    assert outcome.admin and "Admin wallet" in outcome.notice
    assert session.transfers == []
    assert PaymentState.AWAITING_CONFIRMATION not in states
    assert coordinator.effective_quote(session.address) == FeeQuote(standard=0, liquidity=0)


def test_not_connected_fails_before_payment() -> None:
    gateway = _FakeGateway()
    coordinator, states = _coordinator(None, gateway)

    outcome = coordinator.submit(TokenType.STANDARD, FORM)

    assert outcome.state is PaymentState.NOT_CONNECTED
    assert "connect your wallet" in outcome.error
    assert states == [PaymentState.VALIDATING, PaymentState.NOT_CONNECTED]
    assert gateway.calls == []


def test_missing_quote_reports_no_price_data() -> None:
    session, gateway = _FakeSession(), _FakeGateway()
    coordinator, _ = _coordinator(session, gateway, quote=None)

    outcome = coordinator.submit(TokenType.STANDARD, FORM)

    assert outcome.state is PaymentState.NO_PRICE_DATA
    assert outcome.error
    assert session.transfers == []
    assert gateway.calls == []


def test_rejected_signature_has_its_own_message() -> None:
    rejected_session = _FakeSession(error=PaymentRejectedByUser())
    failed_session = _FakeSession(error=PaymentBroadcastOrConfirmFailed("nonce too low"))
    gateway = _FakeGateway()

    rejected = _coordinator(rejected_session, gateway)[0].submit(TokenType.STANDARD, FORM)
    failed = _coordinator(failed_session, gateway)[0].submit(TokenType.STANDARD, FORM)

    assert rejected.state is PaymentState.PAYMENT_FAILED
    assert failed.state is PaymentState.PAYMENT_FAILED
    assert rejected.error == "Process Failed: Transaction was rejected by the user."
    assert failed.error == "Process Failed: nonce too low"
    assert gateway.calls == []


def test_unexpected_wallet_error_is_normalised() -> None:
    session, gateway = _FakeSession(error=RuntimeError("rpc down")), _FakeGateway()
    coordinator, _ = _coordinator(session, gateway)

    outcome = coordinator.submit(TokenType.STANDARD, FORM)

    assert outcome.state is PaymentState.PAYMENT_FAILED
    assert outcome.error == "Process Failed: rpc down"


def test_generation_failure_leaves_no_code() -> None:
    session = _FakeSession()
    gateway = _FakeGateway(error=GenerationFailed("Failed to generate smart contract. Reason: bad JSON"))
    coordinator, _ = _coordinator(session, gateway)

    outcome = coordinator.submit(TokenType.STANDARD, FORM)

    assert outcome.state is PaymentState.GENERATION_FAILED
    assert outcome.solidity_code == ""
    assert "bad JSON" in outcome.error
    assert outcome.tx_hash == "0xfeed"


def test_second_submit_while_in_flight_is_refused() -> None:
    session, gateway = _FakeSession(), _FakeGateway()
    coordinator, _ = _coordinator(session, gateway)
    seen: list[Exception] = []

    def resubmit(state: PaymentState) -> None:
        if state is PaymentState.PAYING:
            try:
                coordinator.submit(TokenType.STANDARD, FORM)
            except CoordinatorBusy as e:
                seen.append(e)

    coordinator.on_state = resubmit
    outcome = coordinator.submit(TokenType.STANDARD, FORM)

    assert outcome.ok
    assert len(seen) == 1
    assert len(session.transfers) == 1


def test_with_fetched_quote_tolerates_price_failure() -> None:
    class _NoPrices(_FakeGateway):
        def fetch_prices(self, address: str | None = None) -> FeeQuote:
            raise NoPriceData()

    wallet = WalletSessionContext().open()
    coordinator = PaymentCoordinator.with_fetched_quote(wallet, _NoPrices(), SETTINGS)  # type: ignore[arg-type]
    assert coordinator.quote is None

    coordinator = PaymentCoordinator.with_fetched_quote(wallet, _FakeGateway(), SETTINGS)  # type: ignore[arg-type]
    assert coordinator.quote == QUOTE


@pytest.mark.parametrize("standard", [float("nan"), float("inf"), -0.1])
def test_unusable_quote_reports_no_price_data(standard: float) -> None:
    session, gateway = _FakeSession(), _FakeGateway()
    coordinator, states = _coordinator(session, gateway, quote=FeeQuote(standard=standard, liquidity=1.0))

    outcome = coordinator.submit(TokenType.STANDARD, FORM)

    assert outcome.state is PaymentState.NO_PRICE_DATA
    assert states == [PaymentState.VALIDATING, PaymentState.NO_PRICE_DATA]
    assert session.transfers == []
    assert gateway.calls == []


def test_zero_quote_skips_transfer_without_admin_notice() -> None:
    session, gateway = _FakeSession(), _FakeGateway()
    coordinator, _ = _coordinator(session, gateway, quote=FeeQuote(standard=0, liquidity=0))

    outcome = coordinator.submit(TokenType.STANDARD, FORM)

    assert outcome.ok
    assert outcome.fee_waived and not outcome.admin
    assert outcome.notice and "Admin" not in outcome.notice
    assert session.transfers == []
    assert gateway.calls == [(TokenType.STANDARD, FORM, None)]
