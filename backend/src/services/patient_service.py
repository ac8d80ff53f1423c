"""
Patient service for the assistant's patient tools.

A clinician can access a patient they registered or one they have an
appointment with. Every operation checks that before reading or writing.
Errors are raised as HTTPException with kebab-case error codes in detail.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session

from models import Appointment, Patient
from utils.id_utils import is_uuid
from utils.patient_validators import (
    name_matches,
    require_text,
    validate_birth_date,
    validate_email,
    validate_gender,
    validate_string_list,
)

logger = logging.getLogger(__name__)

MAX_SEARCH_CANDIDATES = 200
MAX_SEARCH_RESULTS = 50


class PatientService:
    """
    Service class for patient operations.

    All methods are scoped to the clinician of the current conversation.
    """

    @staticmethod
    def _accessible_patients(db: Session, clinician_id: str) -> Query:
        """Patients registered by the clinician or with an appointment with them."""
        has_appointment = db.query(Appointment.id).filter(
            Appointment.patient_id == Patient.id,
            Appointment.clinician_id == clinician_id,
        ).exists()
        return db.query(Patient).filter(
            or_(Patient.registered_by_clinician_id == clinician_id, has_appointment)
        )

    @staticmethod
    def ensure_patient_ownership(db: Session, patient_id: Any, clinician_id: str) -> Patient:
        """
        Load a patient and check the clinician may access it.

        Raises:
            HTTPException: 404 if the patient does not exist, 403 if not accessible
        """
        if not isinstance(patient_id, str) or not patient_id.strip():
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="patient-not-found")

        patient = db.query(Patient).filter(Patient.id == patient_id.strip()).first()
        if not patient:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="patient-not-found")

        if patient.registered_by_clinician_id == clinician_id:
            return patient

        has_appointment = db.query(Appointment.id).filter(
            Appointment.patient_id == patient.id,
            Appointment.clinician_id == clinician_id,
        ).first()
        if not has_appointment:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="patient-not-owned-by-doctor")
        return patient

    @staticmethod
    def resolve_patient_reference(db: Session, clinician_id: str, reference: Any) -> str:
        """
        Resolve a patient reference to a patient id.

        The assistant may pass the id (UUID), the patient number ("3"), or a
        name. Names are matched accent-insensitively among accessible patients.

        Raises:
            HTTPException: 400 with patient-number-not-found,
                appointment-use-id-not-name or appointment-patient-ambiguous
        """
        if isinstance(reference, int):
            reference = str(reference)
        if not isinstance(reference, str) or not reference.strip():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="appointment-use-id-not-name")

        reference = reference.strip()
        if is_uuid(reference):
            return reference

        if re.fullmatch(r'\d+', reference):
            patient = PatientService._accessible_patients(db, clinician_id).filter(
                Patient.patient_number == int(reference)
            ).first()
            if not patient:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="patient-number-not-found")
            return patient.id

        matches = [
            patient for patient in PatientService._accessible_patients(db, clinician_id).all()
            if name_matches(reference, patient.name, patient.last_name)
        ]
        if len(matches) == 1:
            return matches[0].id
        if not matches:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="appointment-use-id-not-name")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="appointment-patient-ambiguous")

    @staticmethod
    def register_patient(
        db: Session,
        clinician_id: str,
        email: Any,
        name: Any,
        last_name: Any,
        phone: Any,
        gender: Optional[Any] = None,
        birth_date: Optional[Any] = None,
    ) -> Patient:
        """
        Register a new patient for the clinician.

        Patient numbers are sequential across the system.

        Raises:
            HTTPException: 400 for invalid fields, 409 if a concurrent
                registration took the same patient number
        """
        patient = Patient(
            email=validate_email(email),
            name=require_text(name, "patient-invalid-name"),
            last_name=require_text(last_name, "patient-invalid-name"),
            phone=require_text(phone, "patient-invalid-phone"),
            gender=validate_gender(gender),
            birth_date=validate_birth_date(birth_date),
            allergies=[],
            medications=[],
            medical_history=[],
            family_history=[],
            registered_by_clinician_id=clinician_id,
        )

        try:
            max_number = db.query(func.max(Patient.patient_number)).scalar()
            patient.patient_number = (max_number or 0) + 1
            db.add(patient)
            db.commit()
            db.refresh(patient)
        except IntegrityError as e:
            db.rollback()
            logger.warning(f"Patient registration conflict: {e}")
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="conflict")

        logger.info(f"Registered patient {patient.id} (#{patient.patient_number}) for clinician {clinician_id}")
        return patient

    @staticmethod
    def search_patients(db: Session, clinician_id: str, query: Optional[Any] = None) -> List[Dict[str, Any]]:
        """
        List accessible patients, optionally filtered by name.

        Returns:
            [{"id", "patient_number", "name", "last_name"}] ordered by number
        """
        patients = PatientService._accessible_patients(db, clinician_id).order_by(
            Patient.patient_number.asc()
        ).all()
        if isinstance(query, str) and query.strip():
            patients = [p for p in patients if name_matches(query, p.name, p.last_name)]
        return [
            {"id": p.id, "patient_number": p.patient_number, "name": p.name, "last_name": p.last_name}
            for p in patients
        ]

    @staticmethod
    def find_patients(db: Session, clinician_id: str, query: Optional[Any] = None) -> List[Dict[str, Any]]:
        """
        Search accessible patients by name with contact details.

        An empty query returns an empty list rather than every patient.
        """
        if not isinstance(query, str) or not query.strip():
            return []
        candidates = PatientService._accessible_patients(db, clinician_id).order_by(
            Patient.patient_number.asc()
        ).limit(MAX_SEARCH_CANDIDATES).all()
        matches = [p for p in candidates if name_matches(query, p.name, p.last_name)]
        return [p.to_dict() for p in matches[:MAX_SEARCH_RESULTS]]

    @staticmethod
    def get_patient(db: Session, clinician_id: str, patient_id: Any) -> Patient:
        return PatientService.ensure_patient_ownership(db, patient_id, clinician_id)

    @staticmethod
    def update_patient(db: Session, clinician_id: str, patient_id: Any, **fields: Any) -> Patient:
        """
        Update contact fields of an accessible patient.

        Only fields present (not None) are changed.
        """
        patient = PatientService.ensure_patient_ownership(db, patient_id, clinician_id)

        if fields.get("email") is not None:
            patient.email = validate_email(fields["email"])
        if fields.get("name") is not None:
            patient.name = require_text(fields["name"], "patient-invalid-name")
        if fields.get("last_name") is not None:
            patient.last_name = require_text(fields["last_name"], "patient-invalid-name")
        if fields.get("phone") is not None:
            patient.phone = require_text(fields["phone"], "patient-invalid-phone")
        if fields.get("gender") is not None:
            patient.gender = validate_gender(fields["gender"])
        if fields.get("birth_date") is not None:
            patient.birth_date = validate_birth_date(fields["birth_date"])

        db.commit()
        db.refresh(patient)
        logger.info(f"Updated patient {patient.id} for clinician {clinician_id}")
        return patient

    @staticmethod
    def delete_patient(db: Session, clinician_id: str, patient_id: Any) -> Dict[str, Any]:
        patient = PatientService.ensure_patient_ownership(db, patient_id, clinician_id)
        deleted = {"id": patient.id, "deleted": True}
        try:
            db.delete(patient)
            db.commit()
        except Exception:
            db.rollback()
            raise
        logger.info(f"Deleted patient {deleted['id']} for clinician {clinician_id}")
        return deleted

    @staticmethod
    def get_antecedents(db: Session, clinician_id: str, patient_id: Any) -> Dict[str, List[str]]:
        patient = PatientService.ensure_patient_ownership(db, patient_id, clinician_id)
        return patient.antecedents_dict()

    @staticmethod
    def update_antecedents(
        db: Session,
        clinician_id: str,
        patient_id: Any,
        allergies: Optional[Any] = None,
        medications: Optional[Any] = None,
        medical_history: Optional[Any] = None,
        family_history: Optional[Any] = None,
    ) -> Dict[str, List[str]]:
        """Replace the given antecedent lists; omitted lists are kept."""
        patient = PatientService.ensure_patient_ownership(db, patient_id, clinician_id)

        updates = {
            "allergies": validate_string_list(allergies),
            "medications": validate_string_list(medications),
            "medical_history": validate_string_list(medical_history),
            "family_history": validate_string_list(family_history),
        }
        for field, value in updates.items():
            if value is not None:
                setattr(patient, field, value)

        db.commit()
        db.refresh(patient)
        return patient.antecedents_dict()
