"""
Database Schemas

MongoDB collection schemas and request payloads as Pydantic models.

Collections:
- Product -> "products"
- User -> "user"
- Session -> "session"
- Account -> "account" (password credentials, never returned by the API)
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator


def _normalize_email(value):
    return value.strip().lower() if isinstance(value, str) else value


class Product(BaseModel):
    """
    Products collection schema
    Collection name: "products"
    """
    id: str = Field(..., description="Store-generated identifier")
    name: str = Field(..., description="Product name, unique ignoring case")
    description: str = Field("", description="Product description")
    category: str = Field(..., description="Product category")
    price: float = Field(..., ge=0, description="Price in dollars")
    createdOn: datetime
    lastUpdatedOn: datetime


class User(BaseModel):
    """
    Users collection schema
    Collection name: "user"
    """
    id: str
    fullName: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Lower-cased, trimmed email address")
    roles: List[str] = Field(default_factory=lambda: ["customer"], min_length=1)
    createdOn: Optional[datetime] = None
    lastUpdatedOn: Optional[datetime] = None


class Session(BaseModel):
    """
    Sessions collection schema
    Collection name: "session"
    """
    token: str = Field(..., description="Opaque session token")
    user_id: str = Field(..., description="Owning user id")
    expires_at: datetime


class Account(BaseModel):
    """
    Credential accounts collection schema
    Collection name: "account"
    """
    user_id: str
    provider_id: str = "credential"
    password_hash: str = Field(..., description="Password hash (internal)")
    salt: str = Field(..., description="Password salt (internal)")


# ---------- Request payloads ----------

class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class ProductCreate(_Payload):
    name: str = Field(..., min_length=1)
    description: str = ""
    category: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)

    @field_validator("name", "description", "category", mode="before")
    @classmethod
    def strip_text(cls, value):
        return value.strip() if isinstance(value, str) else value


class ProductUpdate(_Payload):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    category: Optional[str] = Field(None, min_length=1)
    price: Optional[float] = Field(None, ge=0)

    @field_validator("name", "description", "category", mode="before")
    @classmethod
    def strip_text(cls, value):
        return value.strip() if isinstance(value, str) else value

    @model_validator(mode="after")
    def require_one_field(self):
        if not self.model_dump(exclude_none=True):
            raise ValueError("at least one field must be provided")
        return self


class SignUpRequest(_Payload):
    fullName: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=8)

    @field_validator("fullName", mode="before")
    @classmethod
    def strip_name(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value):
        return _normalize_email(value)


class SignInRequest(_Payload):
    email: EmailStr
    password: str = Field(..., min_length=8)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value):
        return _normalize_email(value)


class UserUpdate(_Payload):
    fullName: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=8)

    @field_validator("fullName", mode="before")
    @classmethod
    def strip_name(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value):
        return _normalize_email(value)

    @model_validator(mode="after")
    def require_one_field(self):
        if not self.model_dump(exclude_none=True):
            raise ValueError("at least one field must be provided")
        return self


# ---------- Responses ----------

class SearchResult(BaseModel):
    items: List[Product]
    total: int
    pageSize: int
    pageNumber: int
    totalPages: int


class MutationResult(BaseModel):
    message: str
    productId: str
