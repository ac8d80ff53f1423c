# Package initialization
# Import all models to ensure relationships are properly established
from .clinician import Clinician
from .patient import Patient
from .specialty import Specialty
from .appointment import Appointment
from .clinic_history import ClinicHistory
from .conversation import Conversation
from .conversation_message import ConversationMessage
from .processed_webhook_message import ProcessedWebhookMessage
from .whatsapp_auth_session import WhatsAppAuthSession
from .whatsapp_contact_window import WhatsAppContactWindow

__all__ = [
    "Clinician",
    "Patient",
    "Specialty",
    "Appointment",
    "ClinicHistory",
    "Conversation",
    "ConversationMessage",
    "ProcessedWebhookMessage",
    "WhatsAppAuthSession",
    "WhatsAppContactWindow",
]
