from datetime import datetime

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, Text

from erp.core.database import Base


class Attendance(Base):
    __tablename__ = "attendances"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)

    # Inicio del día local del fichaje
    date = Column(DateTime, nullable=False, index=True)
    check_in = Column(DateTime, nullable=False)
    check_out = Column(DateTime, nullable=True)
    # Copia de User.hourly_rate al fichar la entrada
    hourly_rate = Column(Float, nullable=True)
    # Texto append-only: las notas de salida se agregan con salto de línea
    notes = Column(Text, nullable=True)

    project_id = Column(Integer, ForeignKey("projects.id"), nullable=True)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
