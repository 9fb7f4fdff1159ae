"""
Pydantic Models for Click Callbacks

Request and response shapes of the Prepare (action=0) and Complete (action=1)
callbacks. Click may send ids and amounts either as JSON numbers or as text
(form-encoded bodies are always text), so the fields that take part in the
signature are normalized to decimal text here.
"""
import math
import re
from decimal import Decimal
from typing import Any, Optional
from pydantic import BaseModel, Field, field_validator

# Range of a signed 64-bit SQL INTEGER/BIGINT column
MAX_DB_INTEGER = 2 ** 63 - 1

_INTEGER_TEXT = re.compile(r"-?[0-9]+")
_DECIMAL_TEXT = re.compile(r"-?[0-9]+(\.[0-9]+)?")


def decimal_text(value: Any) -> str:
    """
    Render a numeric callback value as decimal text.

    Integers and integral floats render without a fractional part, other
    floats use their shortest round-trip form. Text is kept as sent, minus
    surrounding whitespace.
    """
    if isinstance(value, bool):
        raise ValueError("boolean is not a number")
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError("must be a finite number")
        return str(int(value)) if value.is_integer() else repr(value)
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise ValueError("must be a finite number")
        return str(int(value)) if value == value.to_integral_value() else format(value, "f")
    if isinstance(value, str):
        return value.strip()
    raise ValueError(f"unsupported value type: {type(value).__name__}")


class ClickCallbackRequest(BaseModel):
    """Fields shared by Prepare and Complete."""
    click_trans_id: int = Field(
        ge=-MAX_DB_INTEGER - 1, le=MAX_DB_INTEGER, description="Click transaction id"
    )
    service_id: int = Field(description="Merchant service id assigned by Click")
    click_paydoc_id: Optional[int] = Field(default=None, description="Payment number in Click")
    merchant_trans_id: str = Field(description="Our transaction id, as text")
    amount: str = Field(description="Payment amount as decimal text")
    action: Optional[int] = None
    error: int = 0
    error_note: Optional[str] = None
    sign_time: str = Field(description="Payment date, YYYY-MM-DD HH:mm:ss")
    sign_string: str = Field(description="MD5 signature of the callback")

    @field_validator("merchant_trans_id", mode="before")
    @classmethod
    def normalize_merchant_trans_id(cls, v: Any) -> str:
        text = decimal_text(v)
        if _INTEGER_TEXT.fullmatch(text):
            return str(int(text))
        return text

    @field_validator("amount", mode="before")
    @classmethod
    def normalize_amount(cls, v: Any) -> str:
        text = decimal_text(v)
        if not _DECIMAL_TEXT.fullmatch(text):
            raise ValueError("amount must be a decimal number")
        return text

    @property
    def transaction_id(self) -> Optional[int]:
        """merchant_trans_id as a storable row id, or None when it cannot be one."""
        if not _INTEGER_TEXT.fullmatch(self.merchant_trans_id):
            return None
        value = int(self.merchant_trans_id)
        if not 1 <= value <= MAX_DB_INTEGER:
            return None
        return value

    @property
    def amount_value(self) -> Decimal:
        return Decimal(self.amount)


class PrepareRequest(ClickCallbackRequest):
    """Prepare callback (action=0)."""

    model_config = {
        "json_schema_extra": {
            "example": {
                "click_trans_id": 2241,
                "service_id": 101,
                "click_paydoc_id": 4411,
                "merchant_trans_id": "1",
                "amount": 100000,
                "action": 0,
                "error": 0,
                "error_note": "Success",
                "sign_time": "2026-10-19 12:00:00",
                "sign_string": "0c4a1b37d3c8e1e3f1b8b7e2a3d9f7c1",
            }
        }
    }


class CompleteRequest(ClickCallbackRequest):
    """Complete callback (action=1); error < 0 means Click itself failed."""
    merchant_prepare_id: int = Field(description="Id returned from Prepare")


class PrepareResponse(BaseModel):
    click_trans_id: int
    merchant_trans_id: str
    merchant_prepare_id: int
    error: int
    error_note: str


class CompleteResponse(BaseModel):
    click_trans_id: int
    merchant_trans_id: str
    merchant_confirm_id: int
    error: int
    error_note: str
