"""
Services package for shared business logic.

This package contains the service classes behind the WhatsApp assistant
tools and the conversation lifecycle.
"""

from .patient_service import PatientService
from .appointment_service import AppointmentService
from .clinic_history_service import ClinicHistoryService
from .conversation_service import ConversationService
from .auth_session_service import AuthSessionService

__all__ = [
    "PatientService",
    "AppointmentService",
    "ClinicHistoryService",
    "ConversationService",
    "AuthSessionService",
]
