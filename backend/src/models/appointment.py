"""
Appointment model linking a patient, a clinician and a specialty to a time slot.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, ForeignKey, TIMESTAMP, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base
from utils.datetime_utils import ensure_utc
from utils.id_utils import new_id


APPOINTMENT_STATUSES = ("pending", "confirmed", "cancelled", "completed")


class Appointment(Base):
    """
    Appointment entity.

    Appointments always belong to the clinician in whose conversation they
    were created; the assistant never accepts a clinician id from the model.
    """

    __tablename__ = "appointments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    """Unique identifier for the appointment."""

    patient_id: Mapped[str] = mapped_column(ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    clinician_id: Mapped[str] = mapped_column(ForeignKey("clinicians.id", ondelete="CASCADE"), nullable=False)
    specialty_id: Mapped[str] = mapped_column(ForeignKey("specialties.id"), nullable=False)

    start_time: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    """Optional reason for the visit."""

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    """One of: 'pending', 'confirmed', 'cancelled', 'completed'."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    patient = relationship("Patient", back_populates="appointments")
    clinician = relationship("Clinician", back_populates="appointments")
    specialty = relationship("Specialty")

    __table_args__ = (
        Index('idx_appointments_clinician_start', 'clinician_id', 'start_time'),
        Index('idx_appointments_patient', 'patient_id'),
    )

    def to_dict(self) -> dict:
        start = ensure_utc(self.start_time)
        end = ensure_utc(self.end_time)
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "patient_name": self.patient.full_name if self.patient else None,
            "specialty": self.specialty.name if self.specialty else None,
            "start_time": start.isoformat() if start else None,
            "end_time": end.isoformat() if end else None,
            "reason": self.reason,
            "status": self.status,
        }

    def __repr__(self) -> str:
        return f"<Appointment(id={self.id}, status='{self.status}')>"
