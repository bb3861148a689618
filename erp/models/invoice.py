from datetime import datetime

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from erp.core.database import Base


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    contact_id = Column(Integer, ForeignKey("contacts.id"), nullable=True)

    number = Column(String, nullable=False)
    type = Column(String(16), nullable=False, default="invoice_out")  # invoice_out | invoice_in
    status = Column(String(16), nullable=False, default="DRAFT")  # DRAFT | VALIDATED | CANCELLED
    payment_status = Column(String(16), nullable=False, default="UNPAID")
    date = Column(DateTime, nullable=False)
    due_date = Column(DateTime, nullable=True)
    currency = Column(String(8), nullable=False, default="USD")
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    contact = relationship("Contact")
    items = relationship("InvoiceItem", back_populates="invoice", cascade="all, delete-orphan")


class InvoiceItem(Base):
    __tablename__ = "invoice_items"

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=True, index=True)

    description = Column(String, nullable=False, default="")
    quantity = Column(Float, nullable=False, default=1)
    price = Column(Float, nullable=False, default=0)
    tax = Column(Float, nullable=False, default=0)  # porcentaje
    total = Column(Float, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    invoice = relationship("Invoice", back_populates="items")
    product = relationship("Product")
