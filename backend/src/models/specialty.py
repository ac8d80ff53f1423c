"""
Specialty model for the medical specialties an appointment is booked under.
"""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from core.database import Base
from utils.id_utils import new_id


class Specialty(Base):
    """Medical specialty (e.g. Cardiología, Pediatría)."""

    __tablename__ = "specialties"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}

    def __repr__(self) -> str:
        return f"<Specialty(id={self.id}, name='{self.name}')>"
