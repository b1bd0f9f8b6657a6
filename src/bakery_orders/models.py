from datetime import datetime, timezone
from sqlalchemy import Boolean, Column, ForeignKey, Integer, Numeric, String, TIMESTAMP
from sqlalchemy.orm import relationship
from bakery_orders.db import Base
from bakery_orders.transitions import OrderStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Company(Base):
    """Client company (tenant) that owns orders."""
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True)
    legal_name = Column(String(200), nullable=False)
    trade_name = Column(String(200), nullable=False)
    tax_id = Column(String(20), nullable=False, unique=True)
    email = Column(String(200), nullable=True)
    notify_by_email = Column(Boolean, nullable=False, default=True)
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)
    deleted_at = Column(TIMESTAMP(timezone=True), nullable=True)

    orders = relationship("Order", back_populates="company")


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    measure_unit = Column(String(10), nullable=False, default="un")
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)
    deleted_at = Column(TIMESTAMP(timezone=True), nullable=True)


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    created_by = Column(Integer, nullable=True)
    status = Column(String(20), nullable=False, default=OrderStatus.PENDENTE.value)
    total_value = Column(Numeric(12, 2), nullable=False, default=0)
    pdf_path = Column(String(500), nullable=False, default="")
    pdf_url = Column(String(1000), nullable=True)
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow, index=True)
    updated_at = Column(TIMESTAMP(timezone=True), nullable=True)
    deleted_at = Column(TIMESTAMP(timezone=True), nullable=True)

    company = relationship("Company", back_populates="orders")
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    # fractional for weight-based products
    quantity = Column(Numeric(10, 3), nullable=False)
    # frozen at order creation, later price changes don't touch it
    unit_price = Column(Numeric(10, 2), nullable=False)
    subtotal = Column(Numeric(12, 2), nullable=False)

    order = relationship("Order", back_populates="items")
    product = relationship("Product")
