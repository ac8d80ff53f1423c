"""
Clinic history service for the assistant's consultation record tools.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session, joinedload

from models import ClinicHistory
from services.appointment_service import AppointmentService
from utils.patient_validators import require_text, validate_string_list

logger = logging.getLogger(__name__)


def _validate_entries(value: Any, required_keys: tuple) -> List[Dict[str, Any]]:
    """Validate a list of {name, description, ...} objects from tool arguments."""
    if value is None:
        return []
    if not isinstance(value, list):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="bad-request")
    entries = []
    for item in value:
        if not isinstance(item, dict) or any(not item.get(key) for key in required_keys):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="bad-request")
        entries.append({key: item[key] for key in item if item[key] is not None})
    return entries


class ClinicHistoryService:
    """Service class for clinic history operations."""

    @staticmethod
    def create_clinic_history(
        db: Session,
        clinician_id: str,
        appointment_id: Any,
        consultation_reason: Any,
        symptoms: Any,
        treatment: Any,
        diagnostics: Optional[Any] = None,
        physical_exams: Optional[Any] = None,
        vital_signs: Optional[Any] = None,
        prescription: Optional[Any] = None,
    ) -> ClinicHistory:
        """
        Write the consultation record for one of the clinician's appointments.

        Patient and specialty are taken from the appointment.

        Raises:
            HTTPException: 404/403 for the appointment, 409 if it already
                has a record, 400 for malformed fields
        """
        appointment = AppointmentService.get_appointment(db, clinician_id, appointment_id)

        existing = db.query(ClinicHistory.id).filter(ClinicHistory.appointment_id == appointment.id).first()
        if existing:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="appointment-already-has-clinic-history"
            )

        if prescription is not None and not isinstance(prescription, dict):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="bad-request")

        history = ClinicHistory(
            appointment_id=appointment.id,
            patient_id=appointment.patient_id,
            clinician_id=clinician_id,
            specialty_id=appointment.specialty_id,
            consultation_reason=require_text(consultation_reason),
            symptoms=validate_string_list(symptoms) or [],
            treatment=require_text(treatment),
            diagnostics=_validate_entries(diagnostics, ("name",)),
            physical_exams=_validate_entries(physical_exams, ("name",)),
            vital_signs=_validate_entries(vital_signs, ("name", "value")),
            prescription=prescription,
        )
        try:
            db.add(history)
            db.commit()
            db.refresh(history)
        except Exception as e:
            db.rollback()
            logger.exception(f"Failed to create clinic history for appointment {appointment.id}: {e}")
            raise

        logger.info(f"Created clinic history {history.id} for appointment {appointment.id}")
        return history

    @staticmethod
    def list_clinic_histories(db: Session, clinician_id: str) -> List[ClinicHistory]:
        return db.query(ClinicHistory).options(
            joinedload(ClinicHistory.patient)
        ).filter(
            ClinicHistory.clinician_id == clinician_id
        ).order_by(ClinicHistory.created_at.desc()).all()

    @staticmethod
    def get_clinic_history(db: Session, clinician_id: str, clinic_history_id: Any) -> ClinicHistory:
        """
        Get a clinic history owned by the clinician.

        Raises:
            HTTPException: 404 if missing, 403 if written by another clinician
        """
        history = None
        if isinstance(clinic_history_id, str) and clinic_history_id.strip():
            history = db.query(ClinicHistory).filter(ClinicHistory.id == clinic_history_id.strip()).first()
        if not history:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="clinic-history-not-found")
        if history.clinician_id != clinician_id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="clinic-history-not-owned-by-doctor")
        return history

    @staticmethod
    def list_patient_clinic_histories(db: Session, clinician_id: str, patient_id: Any) -> List[ClinicHistory]:
        if not isinstance(patient_id, str) or not patient_id.strip():
            return []
        return db.query(ClinicHistory).filter(
            ClinicHistory.clinician_id == clinician_id,
            ClinicHistory.patient_id == patient_id.strip(),
        ).order_by(ClinicHistory.created_at.desc()).all()
