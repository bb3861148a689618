from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from erp.core.database import Base


class Company(Base):
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, index=True)
    # Dueño raíz del tenant; los miembros resuelven a este usuario.
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    currency = Column(String(8), nullable=False, default="USD")
    active = Column(Boolean, nullable=False, default=False)

    # Numeración de pagos
    payment_entrada_prefix = Column(String(16), nullable=False, default="ENT")
    payment_entrada_next_number = Column(Integer, nullable=False, default=1)
    payment_salida_prefix = Column(String(16), nullable=False, default="SAL")
    payment_salida_next_number = Column(Integer, nullable=False, default=1)

    # Integraciones
    odoo_url = Column(String, nullable=True)
    odoo_db = Column(String, nullable=True)
    odoo_username = Column(String, nullable=True)
    odoo_api_key = Column(String, nullable=True)
    smtp_host = Column(String, nullable=True)
    smtp_port = Column(Integer, nullable=True)
    smtp_user = Column(String, nullable=True)
    smtp_password = Column(String, nullable=True)
    smtp_from = Column(String, nullable=True)

    # API pública / genérica
    api_key = Column(String, unique=True, index=True, nullable=True)
    api_enabled = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    owner = relationship("User", foreign_keys=[user_id])
