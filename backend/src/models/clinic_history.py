"""
Clinic history model: the record written for a consultation.

Diagnostics, physical exams, vital signs and the optional prescription are
stored as JSON documents on the record rather than as child tables; they are
only ever read and written as a whole.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import String, Text, ForeignKey, TIMESTAMP, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base
from utils.id_utils import new_id


class ClinicHistory(Base):
    """Clinical history entry tied to an appointment."""

    __tablename__ = "clinic_histories"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)

    appointment_id: Mapped[str] = mapped_column(ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False, index=True)
    patient_id: Mapped[str] = mapped_column(ForeignKey("patients.id", ondelete="CASCADE"), nullable=False, index=True)
    clinician_id: Mapped[str] = mapped_column(ForeignKey("clinicians.id", ondelete="CASCADE"), nullable=False, index=True)
    specialty_id: Mapped[str] = mapped_column(ForeignKey("specialties.id"), nullable=False)

    consultation_reason: Mapped[str] = mapped_column(Text, nullable=False)
    symptoms: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    treatment: Mapped[str] = mapped_column(Text, nullable=False)

    diagnostics: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    """[{"name": ..., "description": ...}]"""

    physical_exams: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    """[{"name": ..., "description": ...}]"""

    vital_signs: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    """[{"name": ..., "value": ..., "unit": ..., "measurement": ..., "description": ...}]"""

    prescription: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    """{"name": ..., "description": ..., "medications": [...]} or None."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    patient = relationship("Patient", back_populates="clinic_histories")
    appointment = relationship("Appointment")

    def to_dict(self, detailed: bool = True) -> dict:
        data = {
            "id": self.id,
            "appointment_id": self.appointment_id,
            "patient_id": self.patient_id,
            "patient_name": self.patient.full_name if self.patient else None,
            "consultation_reason": self.consultation_reason,
            "symptoms": list(self.symptoms or []),
            "treatment": self.treatment,
            "diagnostics": list(self.diagnostics or []),
            "vital_signs": list(self.vital_signs or []),
        }
        if detailed:
            data["physical_exams"] = list(self.physical_exams or [])
            data["prescription"] = self.prescription
        return data

    def __repr__(self) -> str:
        return f"<ClinicHistory(id={self.id}, patient_id={self.patient_id})>"
