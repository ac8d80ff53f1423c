"""
Patient model representing individuals treated by clinicians.

Patients are registered through the assistant by a clinician. A clinician may
access a patient they registered or one they have an appointment with.
"""

from sqlalchemy import String, ForeignKey, TIMESTAMP, Date, Integer, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import datetime, date
from typing import List, Optional

from core.database import Base
from utils.id_utils import new_id


class Patient(Base):
    """
    Patient entity with contact details and medical antecedents.

    Antecedents (allergies, medications, medical and family history) are stored
    as JSON lists of free-text entries.
    """

    __tablename__ = "patients"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    """Unique identifier for the patient."""

    patient_number: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    """Sequential human-friendly number shown to clinicians instead of the id."""

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    """First name of the patient."""

    last_name: Mapped[str] = mapped_column(String(255), nullable=False)
    """Last name of the patient."""

    email: Mapped[str] = mapped_column(String(255), nullable=False)
    """Email address of the patient."""

    phone: Mapped[str] = mapped_column(String(50), nullable=False)
    """Phone number in international format."""

    gender: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    """Optional gender of the patient. Valid values: 'male', 'female'."""

    birth_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    """Optional birth date (date only, no time)."""

    allergies: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    medications: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    medical_history: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    family_history: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    registered_by_clinician_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("clinicians.id", ondelete="SET NULL"), nullable=True, index=True
    )
    """Clinician who registered the patient (grants access)."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    appointments = relationship("Appointment", back_populates="patient", cascade="all, delete-orphan")
    clinic_histories = relationship("ClinicHistory", back_populates="patient", cascade="all, delete-orphan")

    @property
    def full_name(self) -> str:
        return f"{self.name} {self.last_name}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "patient_number": self.patient_number,
            "name": self.name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "gender": self.gender,
            "birth_date": self.birth_date.isoformat() if self.birth_date else None,
        }

    def antecedents_dict(self) -> dict:
        return {
            "allergies": list(self.allergies or []),
            "medications": list(self.medications or []),
            "medical_history": list(self.medical_history or []),
            "family_history": list(self.family_history or []),
        }

    def __repr__(self) -> str:
        return f"<Patient(id={self.id}, patient_number={self.patient_number}, name='{self.full_name}')>"
