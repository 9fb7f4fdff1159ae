"""
Transactions API Endpoints

Merchant-facing order creation. The returned transaction_id is what the
merchant passes to Click as merchant_trans_id.
"""
from fastapi import APIRouter, Depends
import logging

from ..models.transactions import TransactionCreateRequest, TransactionCreateResponse
from ..services.callback_service import CallbackHandler
from .deps import get_callback_handler

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=TransactionCreateResponse)
async def create_transaction_endpoint(
    body: TransactionCreateRequest,
    handler: CallbackHandler = Depends(get_callback_handler)
) -> TransactionCreateResponse:
    """
    Create an unpaid transaction for a product.

    Returns:
        {
            "transaction_id": int,
            "user_id": int,
            "amount": int  # product price Click should collect
        }

    Errors:
        400 {"error": -1, "error_note": "Product not found"}

    Example:
        POST /transactions
        {"product_id": 1, "phone": "+998901112233", "first_name": "Aziz",
         "last_name": "Karimov", "date": "2026-11-01T09:00:00"}
    """
    logger.debug(f"Creating transaction for product {body.product_id}")
    return await handler.create_transaction(body)
