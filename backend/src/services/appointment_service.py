"""
Appointment service for the assistant's appointment tools.

Appointments always belong to the clinician of the conversation that created
them. Patient and specialty references coming from the LLM may be ids,
patient numbers or names; they are resolved here before anything is written.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from models import Appointment, Specialty
from models.appointment import APPOINTMENT_STATUSES
from services.patient_service import PatientService
from utils.datetime_utils import ensure_utc, parse_iso_date, parse_iso_datetime, utc_now
from utils.id_utils import is_uuid

logger = logging.getLogger(__name__)

# Statuses that occupy the clinician's time slot
ACTIVE_STATUSES = ("pending", "confirmed")

NO_APPOINTMENTS_TODAY_MESSAGE = "No hay consultas para hoy."


def _parse_time(value: Any) -> datetime:
    try:
        return parse_iso_datetime(value)
    except (TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid-date")


def format_appointments_for_whatsapp(appointments: List[Appointment]) -> str:
    """
    Render a day's appointments as numbered plain-text lines.

    Example line: "1. 2026-02-01 09:00 | Ana Pérez | Control | pending"
    """
    if not appointments:
        return NO_APPOINTMENTS_TODAY_MESSAGE

    lines = []
    for i, appointment in enumerate(appointments, start=1):
        start = ensure_utc(appointment.start_time)
        patient_name = appointment.patient.full_name if appointment.patient else "-"
        reason = appointment.reason or "-"
        lines.append(
            f"{i}. {start.strftime('%Y-%m-%d %H:%M')} | {patient_name} | {reason} | {appointment.status}"
        )
    return "\n".join(lines)


class AppointmentService:
    """
    Service class for appointment operations.

    Contains the booking rules shared by every appointment tool.
    """

    @staticmethod
    def list_specialties(db: Session) -> List[Dict[str, Any]]:
        specialties = db.query(Specialty).order_by(Specialty.name.asc()).all()
        return [specialty.to_dict() for specialty in specialties]

    @staticmethod
    def resolve_specialty_reference(db: Session, reference: Any) -> str:
        """
        Resolve a specialty id or name to a specialty id.

        Names are matched case-insensitively, exact match first, then a
        unique substring match.

        Raises:
            HTTPException: 400 appointment-use-id-not-name when nothing
                matches uniquely, appointment-specialty-ambiguous when several
                specialties share the exact name
        """
        if not isinstance(reference, str) or not reference.strip():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="appointment-use-id-not-name")

        reference = reference.strip()
        if is_uuid(reference):
            return reference

        lowered = reference.lower()
        exact = db.query(Specialty).filter(func.lower(Specialty.name) == lowered).all()
        if len(exact) == 1:
            return exact[0].id
        if len(exact) > 1:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="appointment-specialty-ambiguous")

        containing = db.query(Specialty).filter(func.lower(Specialty.name).contains(lowered)).all()
        if len(containing) == 1:
            return containing[0].id
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="appointment-use-id-not-name")

    @staticmethod
    def _check_no_conflict(
        db: Session,
        clinician_id: str,
        start_time: datetime,
        end_time: datetime,
        exclude_appointment_id: Optional[str] = None,
    ) -> None:
        """
        Raise 409 if the slot overlaps another pending or confirmed appointment.

        Two slots overlap when each starts before the other ends.
        """
        query = db.query(Appointment.id).filter(
            Appointment.clinician_id == clinician_id,
            Appointment.status.in_(ACTIVE_STATUSES),
            Appointment.start_time < end_time,
            Appointment.end_time > start_time,
        )
        if exclude_appointment_id:
            query = query.filter(Appointment.id != exclude_appointment_id)
        if query.first():
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="appointment-conflict")

    @staticmethod
    def create_appointment(
        db: Session,
        clinician_id: str,
        patient_ref: Any,
        specialty_ref: Any,
        start_time: Any,
        end_time: Any,
        reason: Optional[str] = None,
    ) -> Appointment:
        """
        Book an appointment for the clinician.

        Args:
            db: Database session
            clinician_id: Clinician of the conversation
            patient_ref: Patient id, patient number or name
            specialty_ref: Specialty id or name
            start_time: ISO 8601 start
            end_time: ISO 8601 end
            reason: Optional reason for the visit

        Returns:
            The created appointment (status 'pending')

        Raises:
            HTTPException: 400/403/404/409 with the matching error code
        """
        patient_id = PatientService.resolve_patient_reference(db, clinician_id, patient_ref)
        specialty_id = AppointmentService.resolve_specialty_reference(db, specialty_ref)

        PatientService.ensure_patient_ownership(db, patient_id, clinician_id)

        if db.get(Specialty, specialty_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="specialty-not-found")

        start = _parse_time(start_time)
        end = _parse_time(end_time)
        if start >= end:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid-date-range")

        AppointmentService._check_no_conflict(db, clinician_id, start, end)

        appointment = Appointment(
            patient_id=patient_id,
            clinician_id=clinician_id,
            specialty_id=specialty_id,
            start_time=start,
            end_time=end,
            reason=reason.strip() if isinstance(reason, str) and reason.strip() else None,
            status="pending",
        )
        try:
            db.add(appointment)
            db.commit()
            db.refresh(appointment)
        except Exception as e:
            db.rollback()
            logger.exception(f"Failed to create appointment for clinician {clinician_id}: {e}")
            raise

        logger.info(f"Created appointment {appointment.id} for clinician {clinician_id}")
        return appointment

    @staticmethod
    def list_appointments(db: Session, clinician_id: str) -> List[Appointment]:
        """All appointments of the clinician, most recent first."""
        return db.query(Appointment).options(
            joinedload(Appointment.patient),
            joinedload(Appointment.specialty),
        ).filter(
            Appointment.clinician_id == clinician_id
        ).order_by(Appointment.start_time.desc()).all()

    @staticmethod
    def get_appointment(db: Session, clinician_id: str, appointment_id: Any) -> Appointment:
        """
        Get an appointment owned by the clinician.

        Raises:
            HTTPException: 404 if missing, 403 if owned by another clinician
        """
        appointment = None
        if isinstance(appointment_id, str) and appointment_id.strip():
            appointment = db.query(Appointment).filter(Appointment.id == appointment_id.strip()).first()
        if not appointment:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="appointment-not-found")
        if appointment.clinician_id != clinician_id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="appointment-not-owned-by-doctor")
        return appointment

    @staticmethod
    def update_appointment(
        db: Session,
        clinician_id: str,
        appointment_id: Any,
        start_time: Optional[Any] = None,
        end_time: Optional[Any] = None,
        status_value: Optional[Any] = None,
        reason: Optional[Any] = None,
    ) -> Appointment:
        """
        Reschedule or change the status or reason of an appointment.

        A new time range is checked against the clinician's other active
        appointments.
        """
        appointment = AppointmentService.get_appointment(db, clinician_id, appointment_id)

        if start_time is not None or end_time is not None:
            start = _parse_time(start_time) if start_time is not None else ensure_utc(appointment.start_time)
            end = _parse_time(end_time) if end_time is not None else ensure_utc(appointment.end_time)
            if start >= end:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid-date-range")
            AppointmentService._check_no_conflict(
                db, clinician_id, start, end, exclude_appointment_id=appointment.id
            )
            appointment.start_time = start
            appointment.end_time = end

        if status_value is not None:
            if status_value not in APPOINTMENT_STATUSES:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="bad-request")
            appointment.status = status_value

        if reason is not None:
            appointment.reason = str(reason).strip() or None

        try:
            db.commit()
            db.refresh(appointment)
        except Exception:
            db.rollback()
            raise
        return appointment

    @staticmethod
    def cancel_appointment(db: Session, clinician_id: str, appointment_id: Any) -> Appointment:
        """
        Cancel an appointment.

        Raises:
            HTTPException: 400 if already cancelled or completed
        """
        appointment = AppointmentService.get_appointment(db, clinician_id, appointment_id)
        if appointment.status == "cancelled":
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="appointment-already-cancelled")
        if appointment.status == "completed":
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="appointment-cannot-cancel-completed")

        appointment.status = "cancelled"
        db.commit()
        db.refresh(appointment)
        logger.info(f"Cancelled appointment {appointment.id} for clinician {clinician_id}")
        return appointment

    @staticmethod
    def list_patient_appointments(db: Session, clinician_id: str, patient_id: Any) -> List[Appointment]:
        """Appointments between the clinician and one patient, oldest first."""
        if not isinstance(patient_id, str) or not patient_id.strip():
            return []
        return db.query(Appointment).filter(
            Appointment.clinician_id == clinician_id,
            Appointment.patient_id == patient_id.strip(),
        ).order_by(Appointment.start_time.asc()).all()

    @staticmethod
    def list_for_day(db: Session, clinician_id: str, day: Optional[Any] = None) -> List[Appointment]:
        """
        Appointments of the clinician on a UTC calendar day.

        Args:
            day: ISO 8601 date; defaults to today (UTC)
        """
        if day:
            try:
                target: date = parse_iso_date(day)
            except (TypeError, ValueError):
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid-date")
        else:
            target = utc_now().date()

        start_of_day = datetime.combine(target, time.min, tzinfo=timezone.utc)
        end_of_day = start_of_day + timedelta(days=1)

        return db.query(Appointment).options(
            joinedload(Appointment.patient),
        ).filter(
            Appointment.clinician_id == clinician_id,
            Appointment.start_time >= start_of_day,
            Appointment.start_time < end_of_day,
        ).order_by(Appointment.start_time.asc()).all()
