"""Payment-gated contract generation.

Runs one submission through:

    Idle -> Validating -> Paying -> AwaitingConfirmation -> Generating -> Success

with terminal failure states NotConnected, NoPriceData, PaymentFailed and
GenerationFailed. Admin wallets (address == treasury) skip the transfer.
Nothing is retried; a failed run ends in a terminal state and the caller
submits again.
"""
from __future__ import annotations
import logging
import threading
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Callable

from tokensmith.client.gateway_client import GatewayClient
from tokensmith.client.wallet import WalletSessionContext
from tokensmith.common.config import PaymentSettings, same_address
from tokensmith.common.errors import (
    GenerationFailed,
    NoPriceData,
    NotConnected,
    TokensmithError,
)
from tokensmith.common.forms import contract_filename
from tokensmith.common.schema import Chain, FeeQuote, TokenForm, TokenType

LOGGER = logging.getLogger("tokensmith.client.coordinator")

FEE_WAIVED_NOTICE = "Admin wallet detected: generation fees were waived."
NO_FEE_NOTICE = "No generation fee was due; the payment step was skipped."


class PaymentState(str, Enum):
    IDLE = "Idle"
    VALIDATING = "Validating"
    NOT_CONNECTED = "NotConnected"
    NO_PRICE_DATA = "NoPriceData"
    PAYING = "Paying"
    AWAITING_CONFIRMATION = "AwaitingConfirmation"
    GENERATING = "Generating"
    SUCCESS = "Success"
    PAYMENT_FAILED = "PaymentFailed"
    GENERATION_FAILED = "GenerationFailed"


BUSY_STATES = {
    PaymentState.VALIDATING,
    PaymentState.PAYING,
    PaymentState.AWAITING_CONFIRMATION,
    PaymentState.GENERATING,
}


class CoordinatorBusy(RuntimeError):
    """A submission is already in flight."""


@dataclass
class GenerationOutcome:
    state: PaymentState
    solidity_code: str = ""
    error: str = ""
    fee_waived: bool = False
    admin: bool = False
    tx_hash: str | None = None
    token_name: str | None = None

    @property
    def ok(self) -> bool:
        return self.state is PaymentState.SUCCESS

    @property
    def filename(self) -> str:
        return contract_filename(self.token_name)

    @property
    def notice(self) -> str:
        if not (self.fee_waived and self.ok):
            return ""
        return FEE_WAIVED_NOTICE if self.admin else NO_FEE_NOTICE


def to_smallest_unit(amount: float | str | Decimal, decimals: int) -> int:
    """Convert a native-currency amount to integer base units, rounding half up."""
    scaled = Decimal(str(amount)) * (Decimal(10) ** decimals)
    return int(scaled.quantize(Decimal(1), rounding=ROUND_HALF_UP))


StateListener = Callable[[PaymentState], None]


class PaymentCoordinator:
    """
    Gate contract generation behind a confirmed payment or an admin waiver.

    Args:
        wallet: Session context; read at submit time, never cached.
        gateway: Client for the generation endpoint.
        settings: Treasury address and fee currency.
        quote: Fee quote fetched once for the session; None if it failed.
        on_state: Called on every state transition.
    """

    def __init__(
        self,
        wallet: WalletSessionContext,
        gateway: GatewayClient,
        settings: PaymentSettings,
        quote: FeeQuote | None = None,
        on_state: StateListener | None = None,
    ) -> None:
        self.wallet = wallet
        self.gateway = gateway
        self.settings = settings
        self.quote = quote
        self.on_state = on_state
        self.state = PaymentState.IDLE
        self._lock = threading.Lock()

    @classmethod
    def with_fetched_quote(
        cls,
        wallet: WalletSessionContext,
        gateway: GatewayClient,
        settings: PaymentSettings,
        on_state: StateListener | None = None,
    ) -> "PaymentCoordinator":
        """Build a coordinator, loading the session's fee quote from the gateway."""
        try:
            quote: FeeQuote | None = gateway.fetch_prices()
        except NoPriceData:
            quote = None
        return cls(wallet, gateway, settings, quote=quote, on_state=on_state)

    @property
    def busy(self) -> bool:
        return self.state in BUSY_STATES

    def is_admin(self, address: str | None) -> bool:
        return same_address(address, self.settings.treasury_address)

    def effective_quote(self, address: str | None) -> FeeQuote | None:
        if self.is_admin(address):
            return FeeQuote.waived()
        return self.quote

    def fee_in_base_units(self, token_type: TokenType, address: str | None) -> int:
        quote = self.effective_quote(address)
        if quote is None:
            raise NoPriceData()
        try:
            amount = to_smallest_unit(quote.amount_for(token_type), self.settings.currency.decimals)
        except (ArithmeticError, ValueError) as e:
            LOGGER.error("Unusable fee quote %r: %s", quote, e)
            raise NoPriceData()
        if amount < 0:
            LOGGER.error("Negative fee quote %r", quote)
            raise NoPriceData()
        return amount

    def submit(self, token_type: TokenType, form: TokenForm, chain: Chain | None = None) -> GenerationOutcome:
        """
        Pay (unless waived) and then generate.

        Never raises for payment or generation problems; they come back as a
        terminal outcome with a display-ready ``error``.

        Raises:
            CoordinatorBusy: another submission has not settled yet.
        """
        if not self._lock.acquire(blocking=False):
            raise CoordinatorBusy("A generation request is already in progress.")
        try:
            return self._run(token_type, form, chain)
        finally:
            self._lock.release()

    def _transition(self, state: PaymentState) -> None:
        LOGGER.info("Payment state: %s -> %s", self.state.value, state.value)
        self.state = state
        if self.on_state is not None:
            self.on_state(state)

    def _fail(self, state: PaymentState, message: str, tx_hash: str | None = None) -> GenerationOutcome:
        LOGGER.error("%s: %s", state.value, message)
        self._transition(state)
        return GenerationOutcome(state=state, error=message, tx_hash=tx_hash)

    def _run(self, token_type: TokenType, form: TokenForm, chain: Chain | None) -> GenerationOutcome:
        self._transition(PaymentState.VALIDATING)

        if not self.wallet.is_connected:
            return self._fail(PaymentState.NOT_CONNECTED, NotConnected.default_message)
        address = self.wallet.address
        admin = self.is_admin(address)

        try:
            amount = self.fee_in_base_units(token_type, address)
        except NoPriceData as e:
            return self._fail(PaymentState.NO_PRICE_DATA, e.message)

        self._transition(PaymentState.PAYING)
        tx_hash = None
        if amount == 0:
            LOGGER.info("No fee due (admin=%s); skipping transfer", admin)
        else:
            session = self.wallet.session
            if session is None:
                return self._fail(PaymentState.NOT_CONNECTED, NotConnected.default_message)
            LOGGER.info(
                "Paying %s base units of %s to %s",
                amount,
                self.settings.currency.symbol,
                self.settings.treasury_address,
            )
            try:
                confirmation = session.send_native_transfer(
                    amount,
                    self.settings.treasury_address,
                    on_broadcast=lambda _: self._transition(PaymentState.AWAITING_CONFIRMATION),
                )
                tx_hash = confirmation.tx_hash
            except TokensmithError as e:
                return self._fail(PaymentState.PAYMENT_FAILED, f"Process Failed: {e.message}")
            except Exception as e:
                LOGGER.exception("Unexpected wallet error")
                return self._fail(
                    PaymentState.PAYMENT_FAILED,
                    f"Process Failed: {str(e) or 'An unknown error occurred.'}",
                )

        self._transition(PaymentState.GENERATING)
        try:
            code = self.gateway.generate_token_contract(token_type, form, chain)
        except GenerationFailed as e:
            return self._fail(PaymentState.GENERATION_FAILED, f"Process Failed: {e.message}", tx_hash=tx_hash)
        except Exception as e:
            LOGGER.exception("Unexpected gateway error")
            return self._fail(
                PaymentState.GENERATION_FAILED,
                f"Process Failed: {str(e) or 'An unknown error occurred.'}",
                tx_hash=tx_hash,
            )

        self._transition(PaymentState.SUCCESS)
        return GenerationOutcome(
            state=PaymentState.SUCCESS,
            solidity_code=code,
            fee_waived=amount == 0,
            admin=admin,
            tx_hash=tx_hash,
            token_name=form.name,
        )
