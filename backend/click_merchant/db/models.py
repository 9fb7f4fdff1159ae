"""
SQLAlchemy ORM Models for the Click merchant service

Products, users and the transactions that tie them to Click payments.
"""
from datetime import datetime
from sqlalchemy import (
    Column,
    String,
    Integer,
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    CheckConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class ProductModel(Base):
    """
    ORM model for products table.

    Price is stored in minor currency units and never changes after creation.
    """
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, autoincrement=True)
    price = Column(Integer, nullable=False)
    city = Column(String, nullable=False)
    country = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("price > 0", name="price_positive_check"),
    )


class UserModel(Base):
    """ORM model for users table, keyed naturally by phone number."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    phone = Column(String, nullable=False, unique=True, index=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class TransactionModel(Base):
    """
    ORM model for transactions table.

    click_trans_id, sign_time and amount stay NULL until a successful Prepare;
    paid flips to true once, on a successful Complete.
    """
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    date = Column(DateTime, nullable=False)
    click_trans_id = Column(BigInteger)
    sign_time = Column(String)
    amount = Column(Integer)
    paid = Column(Boolean, nullable=False, default=False, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    product = relationship(ProductModel, lazy="joined")
    user = relationship(UserModel, lazy="joined")
