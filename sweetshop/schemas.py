"""
Pydantic schemas for request/response validation in the Sweets service.

These schemas define the structure of data for API requests and responses.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, EmailStr, Field, StrictInt


class SweetBase(BaseModel):
    """Base schema with common sweet attributes."""
    name: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    price: Decimal = Field(..., ge=0)


class SweetCreate(SweetBase):
    """Schema for creating a new sweet. The initial quantity is required."""
    quantity: int = Field(..., ge=0)


class SweetUpdate(BaseModel):
    """
    Schema for updating a sweet's metadata. All fields are optional.

    Quantity is deliberately absent: stock only changes through purchase
    and restock. Unknown fields are rejected.
    """
    name: Optional[str] = None
    category: Optional[str] = None
    price: Optional[Decimal] = None

    class Config:
        extra = "forbid"


class Sweet(SweetBase):
    """
    Schema for sweet responses, includes all database fields.

    Attributes:
        id (int): Sweet's unique identifier
        name (str): Display name
        category (str): Category
        price (Decimal): Unit price
        quantity (int): Units in stock
        created_at (datetime): When the sweet was created
    """
    id: int
    quantity: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SweetSearch(BaseModel):
    """Optional, AND-composed catalog filters. Price bounds are inclusive."""
    name: Optional[str] = None
    category: Optional[str] = None
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None


class StockChange(BaseModel):
    """Body of a purchase or restock request."""
    quantity: StrictInt


class UserRegister(BaseModel):
    """Schema for user registration with password."""
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=1)
    role: Optional[str] = None


class UserLogin(BaseModel):
    """Schema for user login."""
    email: EmailStr
    password: str


class User(BaseModel):
    """Schema for user responses, never includes the password hash."""
    id: int
    name: str
    email: str
    role: str

    class Config:
        from_attributes = True


class AuthResponse(BaseModel):
    """Registered or logged-in user together with a bearer token."""
    user: User
    token: str
    token_type: str = "bearer"
