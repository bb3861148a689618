from datetime import datetime

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from erp.core.database import Base

PAYMENT_TYPES = ("ENTRADA", "SALIDA")
PAYMENT_STATES = ("BORRADOR", "VALIDADO")


class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        UniqueConstraint("company_id", "type", "number", name="uq_payments_company_type_number"),
    )

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)

    number = Column(String(32), nullable=False)
    type = Column(String(16), nullable=False)
    estado = Column(String(16), nullable=False, default="BORRADOR")
    amount = Column(Float, nullable=False)
    currency = Column(String(8), nullable=True)
    date = Column(DateTime, nullable=False)

    contact_id = Column(Integer, ForeignKey("contacts.id"), nullable=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=True)
    journal_id = Column(Integer, ForeignKey("journals.id"), nullable=True)
    budget_item_id = Column(Integer, ForeignKey("budget_items.id"), nullable=True)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=True)

    description = Column(Text, nullable=True)
    concepto = Column(String, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    contact = relationship("Contact")
    project = relationship("Project")
    journal = relationship("Journal")
    budget_item = relationship("BudgetItem")
    property = relationship("Property")
