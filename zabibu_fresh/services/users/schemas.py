from pydantic import validator
from typing import Optional
from datetime import datetime

from zabibu_fresh.services.auth.helpers import is_valid_phone, normalize_phone
from zabibu_fresh.utils.response_helpers import RowModel


class UserProfileCreate(RowModel):
    id: str
    full_name: str
    phone: str
    role: str

    @validator('role')
    def validate_role(cls, v):
        if v not in ("seller", "buyer"):
            raise ValueError("Role must be seller or buyer")
        return v


class UserProfileUpdate(RowModel):
    """Only these fields are editable by the user; role and id never change"""
    full_name: Optional[str] = None
    phone: Optional[str] = None

    @validator('full_name')
    def validate_full_name(cls, v):
        if v is not None and not v.strip():
            raise ValueError("Full name cannot be empty")
        return v.strip() if v is not None else v

    @validator('phone')
    def validate_phone(cls, v):
        if v is None:
            return v
        if not is_valid_phone(v):
            raise ValueError("Please enter a valid phone number")
        return normalize_phone(v)


class UserProfileResponse(RowModel):
    id: str
    full_name: str
    phone: Optional[str] = None
    role: str
    created_at: Optional[datetime] = None


class UserSummary(RowModel):
    """Embedded seller/sender/receiver, usually a subset of the profile columns"""
    id: Optional[str] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None


class DashboardStats(RowModel):
    """Home screen counters; sellers see listings and received messages, buyers their sent messages"""
    role: str
    total_products: int = 0
    total_messages: int = 0
