from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String

from erp.core.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)

    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)

    role = Column(String, nullable=False, default="USER")  # ADMIN | USER
    active = Column(Boolean, nullable=False, default=True)

    # Dueño que aprovisionó esta cuenta; NULL para el dueño raíz.
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    default_company_id = Column(Integer, nullable=True, index=True)

    email_verified = Column(Boolean, nullable=False, default=True)
    verification_code = Column(String(6), nullable=True)
    verification_code_expiry = Column(DateTime, nullable=True)

    attendance_token = Column(String, unique=True, index=True, nullable=True)
    hourly_rate = Column(Float, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
