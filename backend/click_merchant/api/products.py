"""
Products API Endpoints

Minimal catalog: create a product, list products without prices.
"""
from fastapi import APIRouter, Depends
import logging

from ..models.products import ProductCreateRequest, ProductCreateResponse, ProductListResponse
from ..services.callback_service import CallbackHandler
from .deps import get_callback_handler

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=ProductCreateResponse)
async def create_product_endpoint(
    body: ProductCreateRequest,
    handler: CallbackHandler = Depends(get_callback_handler)
) -> ProductCreateResponse:
    """
    Create a product.

    Body:
        city: str, country: str, price: positive int (minor units)

    Returns:
        {"product_id": int}
    """
    return await handler.create_product(body)


@router.get("", response_model=ProductListResponse)
async def list_products_endpoint(
    handler: CallbackHandler = Depends(get_callback_handler)
) -> ProductListResponse:
    """
    List all products.

    Returns:
        {"products": [{"id": int, "city": str, "country": str}]}
    """
    logger.debug("Listing products")
    return await handler.list_products()
