from pydantic import Field, validator
from typing import Optional
from datetime import datetime
from decimal import Decimal

from zabibu_fresh.services.users.schemas import UserSummary
from zabibu_fresh.utils.response_helpers import RowModel


def _required_text(v, name):
    if v is None or not str(v).strip():
        raise ValueError(f"{name} is required")
    return str(v).strip()


class ProductCreate(RowModel):
    title: str = Field(..., max_length=200)
    description: str
    price: Decimal = Field(..., ge=0)
    quantity: int = Field(..., ge=0)
    location: str = Field(..., max_length=200)

    @validator('title')
    def validate_title(cls, v):
        return _required_text(v, "Title")

    @validator('description')
    def validate_description(cls, v):
        return _required_text(v, "Description")

    @validator('location')
    def validate_location(cls, v):
        return _required_text(v, "Location")


class ProductUpdate(RowModel):
    title: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0)
    quantity: Optional[int] = Field(None, ge=0)
    location: Optional[str] = Field(None, max_length=200)

    @validator('title', 'description', 'location')
    def validate_not_blank(cls, v):
        if v is not None and not v.strip():
            raise ValueError("Field cannot be empty")
        return v.strip() if v is not None else v


class ProductResponse(RowModel):
    id: str
    title: str
    description: Optional[str] = None
    image: Optional[str] = None
    price: Decimal
    quantity: int
    location: Optional[str] = None
    seller_id: Optional[str] = None
    created_at: Optional[datetime] = None
    seller: Optional[UserSummary] = None

    @property
    def owner_id(self) -> Optional[str]:
        if self.seller_id:
            return self.seller_id
        return self.seller.id if self.seller else None


class ProductImage(RowModel):
    """Image picked in the UI, handed to the service for upload"""
    content: bytes
    content_type: str = "image/jpeg"
    filename: Optional[str] = None
