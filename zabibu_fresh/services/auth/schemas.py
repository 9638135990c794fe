from pydantic import BaseModel, EmailStr, root_validator, validator
from typing import Optional, Literal

from zabibu_fresh.config import MIN_PASSWORD_LENGTH
from zabibu_fresh.services.auth.helpers import is_valid_phone, normalize_phone
from zabibu_fresh.services.users.schemas import UserProfileResponse


def _validate_phone(v: str) -> str:
    if not is_valid_phone(v):
        raise ValueError("Please enter a valid phone number")
    return normalize_phone(v)


def _validate_password(v: str) -> str:
    if len(v) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    return v


# Request schemas
class SignUpRequest(BaseModel):
    full_name: str
    phone: str
    password: str
    confirm_password: str
    role: Literal["seller", "buyer"]

    @validator('full_name')
    def validate_full_name(cls, v):
        if not v or not v.strip():
            raise ValueError("Full name is required")
        return v.strip()

    @validator('phone')
    def validate_phone(cls, v):
        return _validate_phone(v)

    @validator('password')
    def validate_password(cls, v):
        return _validate_password(v)

    @validator('confirm_password')
    def validate_confirmation(cls, v, values):
        if 'password' in values and v != values['password']:
            raise ValueError("Passwords do not match")
        return v


class SignInRequest(BaseModel):
    """Exactly one of email or phone identifies the account"""
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    password: str

    @validator('phone')
    def validate_phone(cls, v):
        if v is None:
            return v
        return _validate_phone(v)

    @root_validator(skip_on_failure=True)
    def validate_identifier(cls, values):
        if (values.get("email") is None) == (values.get("phone") is None):
            raise ValueError("Enter your email or phone number")
        return values

    @validator('password')
    def validate_password(cls, v):
        if not v:
            raise ValueError("Password is required")
        return v


class OtpRequest(BaseModel):
    phone: str

    @validator('phone')
    def validate_phone(cls, v):
        return _validate_phone(v)


class VerifyOtpRequest(BaseModel):
    phone: str
    token: str

    @validator('phone')
    def validate_phone(cls, v):
        return _validate_phone(v)

    @validator('token')
    def validate_token(cls, v):
        v = v.strip()
        if not v.isdigit():
            raise ValueError("Enter the numeric code from the SMS")
        return v


class PasswordResetRequest(BaseModel):
    email: EmailStr


class ChangePasswordRequest(BaseModel):
    new_password: str
    confirm_password: str

    @validator('new_password')
    def validate_password(cls, v):
        return _validate_password(v)

    @validator('confirm_password')
    def validate_confirmation(cls, v, values):
        if 'new_password' in values and v != values['new_password']:
            raise ValueError("Passwords do not match")
        return v


# Response schemas
class AuthResult(BaseModel):
    user_id: str
    phone: Optional[str] = None
    email: Optional[str] = None
    has_session: bool = False
    needs_confirmation: bool = False
    profile: Optional[UserProfileResponse] = None
    message: Optional[str] = None
