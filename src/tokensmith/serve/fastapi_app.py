"""FastAPI app for the contract generation gateway.

Endpoints:
- GET /health
- GET /api/get-prices[?address=0x...]
- POST /api/generate-token  { "tokenType": "...", "formData": {...}, "selectedChain": "..." }

Every error is answered as JSON ``{"error": "..."}``.
"""
from __future__ import annotations
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tokensmith.common.config import (
    PAYMENT_CONFIG_PATH,
    PaymentSettings,
    fee_quote_from_env,
    load_payment_settings,
    payment_settings_from_dict,
    same_address,
)
from tokensmith.common.errors import ConfigError, TokensmithError, UnknownError
from tokensmith.common.logging_setup import setup_logging
from tokensmith.common.schema import (
    ErrorResponse,
    FeeQuote,
    GenerationRequest,
    GenerationResponse,
    PriceResponse,
)
from tokensmith.serve import gateway

LOGGER = logging.getLogger("tokensmith.serve.app")
setup_logging()

_settings: PaymentSettings | None = None


def payment_settings() -> PaymentSettings:
    """Payment settings shared with the client, loaded once from PAYMENT_CONFIG_PATH."""
    global _settings
    if _settings is None:
        try:
            _settings = load_payment_settings(PAYMENT_CONFIG_PATH)
        except (OSError, ConfigError) as e:
            LOGGER.warning("Cannot load payment config %s (%s); using env/default treasury", PAYMENT_CONFIG_PATH, e)
            _settings = payment_settings_from_dict({})
    return _settings


app = FastAPI(title="tokensmith")

_ERRORS = {400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}, 502: {"model": ErrorResponse}}


@app.exception_handler(TokensmithError)
def _tokensmith_error(request: Request, exc: TokensmithError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(StarletteHTTPException)
def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = ", ".join(".".join(str(p) for p in err.get("loc", ())) for err in exc.errors())
    LOGGER.warning("Rejected request body: %s", fields)
    return JSONResponse(
        status_code=400,
        content={"error": f"Invalid request body. `tokenType` and `formData` are required. ({fields})"},
    )


@app.on_event("startup")
def _check_config_on_startup() -> None:
    """Warn early about settings that make every generation request fail."""
    if not gateway.MODEL_API_KEY:
        LOGGER.warning("MODEL_API_KEY is not set; /api/generate-token will answer 500")
    LOGGER.info("Treasury: %s", payment_settings().treasury_address)
    try:
        quote = fee_quote_from_env()
        LOGGER.info("Fees: standard=%s liquidity=%s", quote.standard, quote.liquidity)
    except TokensmithError as e:
        LOGGER.warning("Price configuration is invalid: %s", e.message)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok", "model": gateway.MODEL_ID}


@app.get("/api/get-prices", response_model=PriceResponse, responses=_ERRORS)
def get_prices(address: str | None = None) -> PriceResponse:
    if same_address(address, payment_settings().treasury_address):
        quote = FeeQuote.waived()
    else:
        try:
            quote = fee_quote_from_env()
        except TokensmithError as e:
            LOGGER.error("Error in /api/get-prices: %s", e.message)
            raise TokensmithError("Could not retrieve prices from server.")
    return PriceResponse(standard=quote.standard, liquidity=quote.liquidity)


@app.post("/api/generate-token", response_model=GenerationResponse, responses=_ERRORS)
def generate_token(body: GenerationRequest) -> GenerationResponse:
    try:
        code = gateway.generate_contract(body)
    except TokensmithError as e:
        LOGGER.error("Error in /api/generate-token: %s", e.message)
        raise
    except Exception as e:
        LOGGER.exception("Unexpected error in /api/generate-token")
        raise UnknownError(f"An unknown server error occurred. {e}")
    return GenerationResponse(solidityCode=code)
