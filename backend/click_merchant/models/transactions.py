"""
Pydantic Transaction Models

Records returned by the transaction store and the request/response shapes of
the merchant-facing POST /transactions route.
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from .products import ProductRecord


class UserRecord(BaseModel):
    """Buyer identified by phone number."""
    id: int
    phone: str
    first_name: str
    last_name: str

    model_config = {"from_attributes": True}


class TransactionRecord(BaseModel):
    """
    Transaction with its product and user loaded.

    State:
    - CREATED: amount is None, paid is False
    - PREPARED: amount set by Prepare, paid is False
    - PAID: paid is True
    """
    id: int
    product_id: int
    user_id: int
    date: datetime
    click_trans_id: Optional[int] = None
    sign_time: Optional[str] = None
    amount: Optional[int] = None
    paid: bool = False
    product: ProductRecord
    user: UserRecord

    model_config = {"from_attributes": True}


class TransactionCreateRequest(BaseModel):
    """Body of POST /transactions."""
    product_id: int = Field(gt=0, description="ID of the product")
    phone: str = Field(min_length=1, description="Phone number of the customer")
    first_name: str = Field(description="First name of the customer")
    last_name: str = Field(description="Last name of the customer")
    date: datetime = Field(description="Date of the trip")

    model_config = {
        "json_schema_extra": {
            "example": {
                "product_id": 1,
                "phone": "+998901112233",
                "first_name": "Aziz",
                "last_name": "Karimov",
                "date": "2026-11-01T09:00:00",
            }
        }
    }


class TransactionCreateResponse(BaseModel):
    """Result of POST /transactions; amount is what Click should collect."""
    transaction_id: int
    user_id: int
    amount: int
