"""Error taxonomy shared by the gateway and the payment client.

Every error carries a display-ready message and the HTTP status the gateway
answers with when it is raised server side.
"""
from __future__ import annotations


class TokensmithError(Exception):
    """Base error with a user-facing message and an HTTP status."""

    status_code: int = 500
    default_message: str = "An unknown error occurred."

    def __init__(self, message: str | None = None, status_code: int | None = None) -> None:
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class NotConnected(TokensmithError):
    status_code = 401
    default_message = "Please connect your wallet to proceed."


class NoPriceData(TokensmithError):
    status_code = 503
    default_message = "Could not load pricing information. Please try again later."


class PaymentRejectedByUser(TokensmithError):
    status_code = 402
    default_message = "Transaction was rejected by the user."


class PaymentBroadcastOrConfirmFailed(TokensmithError):
    status_code = 402
    default_message = "The payment transaction could not be confirmed."


class InvalidRequest(TokensmithError):
    status_code = 400
    default_message = "Invalid request body. `tokenType` and `formData` are required."


class ConfigError(TokensmithError):
    status_code = 500
    default_message = "Server configuration error: Missing API key."


class UpstreamError(TokensmithError):
    status_code = 500
    default_message = "Failed to communicate with the AI model."


class UpstreamFormatError(TokensmithError):
    status_code = 502
    default_message = "Invalid response format from AI. Expected a JSON object with a 'solidityCode' key."


class GenerationFailed(TokensmithError):
    """Raised client side when the gateway answers with an error or bad payload."""

    default_message = "An unknown error occurred while generating the smart contract."


class UnknownError(TokensmithError):
    pass
