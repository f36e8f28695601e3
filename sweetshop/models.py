"""
SQLAlchemy ORM models for the Sweets service.

Defines the database schema for the catalog and for user accounts.
"""
from datetime import datetime
from sqlalchemy import BigInteger, CheckConstraint, Column, DateTime, Integer, Numeric, String
from .database import Base

# Largest value the quantity column can hold (signed 64-bit)
MAX_QUANTITY = 2**63 - 1


class Sweet(Base):
    """
    Catalog item with a tracked stock quantity.

    Attributes:
        id (int): Primary key, assigned on creation and never changed
        name (str): Display name
        category (str): Category used for exact-match filtering
        price (Decimal): Unit price, never negative
        quantity (int): Units in stock, never negative
        created_at (datetime): Timestamp when the sweet was created
    """
    __tablename__ = "sweets"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_sweets_quantity_non_negative"),
        CheckConstraint("price >= 0", name="ck_sweets_price_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    category = Column(String, nullable=False, index=True)
    price = Column(Numeric(10, 2), nullable=False)
    quantity = Column(BigInteger, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)


class User(Base):
    """
    User account used to issue access tokens.

    Attributes:
        id (int): Primary key, auto-incremented user ID
        name (str): User's full name
        email (str): User's email address (unique)
        password_hash (str): Hashed password
        role (str): User role (admin, customer)
        created_at (datetime): Timestamp when the user was created
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    role = Column(String, default="customer", nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
