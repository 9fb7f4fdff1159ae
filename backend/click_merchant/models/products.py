"""
Pydantic Product Models

Catalog records and the shapes of the /products routes.
"""
from typing import List
from pydantic import BaseModel, Field


class ProductRecord(BaseModel):
    """Product as stored; price in minor currency units."""
    id: int
    price: int
    city: str
    country: str

    model_config = {"from_attributes": True}


class ProductCreateRequest(BaseModel):
    city: str = Field(description="City of the customer")
    country: str = Field(description="Country of the customer")
    price: int = Field(gt=0, description="Price of the product")

    model_config = {"strict": True}


class ProductCreateResponse(BaseModel):
    product_id: int


class ProductSummary(BaseModel):
    """Public view of a product; price is not exposed."""
    id: int
    city: str
    country: str

    model_config = {"from_attributes": True}


class ProductListResponse(BaseModel):
    products: List[ProductSummary]
