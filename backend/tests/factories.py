"""
Helpers for inserting test data directly, bypassing service rules.
"""

from sqlalchemy.orm import Session

from models import Appointment, Clinician, Patient, Specialty


def create_appointment_record(
    db_session: Session,
    patient: Patient,
    clinician: Clinician,
    specialty: Specialty,
    start_time,
    end_time,
    status: str = "pending",
    reason: str = "Control",
) -> Appointment:
    """
    Insert an appointment directly, bypassing the booking rules.

    Useful to set up overlapping or historical data.
    """
    appointment = Appointment(
        patient_id=patient.id,
        clinician_id=clinician.id,
        specialty_id=specialty.id,
        start_time=start_time,
        end_time=end_time,
        status=status,
        reason=reason,
    )
    db_session.add(appointment)
    db_session.commit()
    return appointment
