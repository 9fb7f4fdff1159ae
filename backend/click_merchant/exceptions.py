"""
Click Merchant Exception Hierarchy

Error codes follow the Click merchant API contract. Callback errors are
converted into the fixed response envelope by the callback handler; merchant
errors are rendered as HTTP 400 by the application exception handlers.
"""
from enum import IntEnum
from typing import Optional, Dict, Any


class ClickErrorCode(IntEnum):
    """Error codes the Click gateway expects in the `error` field."""

    SUCCESS = 0
    SIGN_CHECK_FAILED = -1
    INCORRECT_AMOUNT = -2
    ALREADY_PAID = -4
    TRANSACTION_NOT_FOUND = -6
    UPDATE_FAILED = -7
    BAD_REQUEST = -8
    CLICK_ERROR = -9


class ClickError(Exception):
    """
    Base exception for all callback protocol errors.

    Every subclass carries the gateway error code and the note that is echoed
    back in `error_note`.
    """

    error_code: ClickErrorCode = ClickErrorCode.CLICK_ERROR
    error_note: str = "Click error"

    def __init__(
        self,
        error_note: Optional[str] = None,
        error_code: Optional[ClickErrorCode] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        if error_note is not None:
            self.error_note = error_note
        if error_code is not None:
            self.error_code = error_code
        self.details = details or {}
        super().__init__(self.error_note)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to the `error`/`error_note` pair."""
        return {
            "error": int(self.error_code),
            "error_note": self.error_note,
        }


class SignCheckFailedError(ClickError):
    """Signature in the callback does not match the one we computed."""

    error_code = ClickErrorCode.SIGN_CHECK_FAILED
    error_note = "SIGN CHECK FAILED!"


class IncorrectAmountError(ClickError):
    """Callback amount differs from the product price."""

    error_code = ClickErrorCode.INCORRECT_AMOUNT
    error_note = "Incorrect parameter amount"


class AlreadyPaidError(ClickError):
    """Transaction has already been confirmed."""

    error_code = ClickErrorCode.ALREADY_PAID
    error_note = "Transaction already paid"


class TransactionNotFoundError(ClickError):
    """No transaction matches `merchant_trans_id`."""

    error_code = ClickErrorCode.TRANSACTION_NOT_FOUND
    error_note = "Transaction does not exist"


class UpdateFailedError(ClickError):
    """Storage failed while reading or writing the transaction."""

    error_code = ClickErrorCode.UPDATE_FAILED
    error_note = "Failed to update transaction"


class BadRequestError(ClickError):
    """Callback body is missing fields or has values of the wrong type."""

    error_code = ClickErrorCode.BAD_REQUEST
    error_note = "Error in request from click"


class UpstreamError(ClickError):
    """
    Gateway reported an error of its own in the Complete callback.

    Click's -1 (user declined) maps to -4, everything else to -9.
    """

    error_note = "Click error"

    def __init__(self, upstream_code: int):
        code = ClickErrorCode.ALREADY_PAID if upstream_code == -1 else ClickErrorCode.CLICK_ERROR
        super().__init__(error_code=code, details={"upstream_error": upstream_code})


class MerchantError(Exception):
    """
    Base exception for merchant-facing operations (catalog, order creation).

    Rendered as HTTP 400 with `{error, error_note}`.
    """

    def __init__(self, error_code: int, error_note: str):
        self.error_code = error_code
        self.error_note = error_note
        super().__init__(error_note)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.error_code, "error_note": self.error_note}


class ProductNotFoundError(MerchantError):
    """Order references a product id that does not exist."""

    def __init__(self):
        super().__init__(-1, "Product not found")


class NotificationError(Exception):
    """Outbound notification could not be delivered."""


class StorageError(Exception):
    """
    Raised by the transaction store when the database operation failed.

    The failed unit of work has been rolled back when this is raised.
    """
