"""
Tool catalogue exposed to the LLM.

Each tool pairs an OpenAI function schema with a handler that calls the
data-access services on behalf of the clinician of the conversation. The
clinician id always comes from the resolved identity, never from the model.

Handler failures are mapped to {"success": False, "error", "message"} results
by map_tool_error; the Spanish messages tell the model how to recover.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List

from fastapi import HTTPException
from sqlalchemy.orm import Session

from services.appointment_service import AppointmentService, format_appointments_for_whatsapp
from services.clinic_history_service import ClinicHistoryService
from services.patient_service import PatientService

logger = logging.getLogger(__name__)

ToolHandler = Callable[[Session, str, Dict[str, Any]], Any]


@dataclass(frozen=True)
class ClinicTool:
    """A function the LLM may call."""

    name: str
    description: str
    parameters: Dict[str, Any]
    handler: ToolHandler

    def to_openai_tool(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


def _schema(properties: Dict[str, Any], required: List[str]) -> Dict[str, Any]:
    return {"type": "object", "properties": properties, "required": required}


def _string(description: str) -> Dict[str, Any]:
    return {"type": "string", "description": description}


def _string_list(description: str) -> Dict[str, Any]:
    return {"type": "array", "items": {"type": "string"}, "description": description}


_PATIENT_ID = _string("El id (UUID) del paciente")
_APPOINTMENT_ID = _string("El id (UUID) de la cita")


# Error code -> message shown to the model in the tool result
TOOL_ERROR_MESSAGES: Dict[str, str] = {
    "patient-not-found": "El paciente no fue encontrado. Verifique que seleccionó un paciente de la lista.",
    "patient-number-not-found": "No se encontró un paciente con ese número. Verifique el número en la lista.",
    "patient-not-owned-by-doctor": "No tiene acceso a ese paciente. Seleccione un paciente de la lista que le mostré.",
    "patient-invalid-email": "El email del paciente no es válido.",
    "patient-invalid-name": "El nombre y el apellido del paciente son obligatorios.",
    "patient-invalid-phone": "El teléfono del paciente es obligatorio.",
    "patient-invalid-gender": "El género debe ser 'male' o 'female'.",
    "specialty-not-found": "La especialidad no fue encontrada. Verifique que seleccionó una especialidad de la lista.",
    "appointment-not-found": "La cita no fue encontrada.",
    "appointment-not-owned-by-doctor": "Esa cita pertenece a otro médico.",
    "appointment-conflict": "Ya existe una cita en ese horario. Elija otra fecha u hora.",
    "invalid-date-range": "La hora de fin debe ser posterior a la hora de inicio.",
    "invalid-date": "La fecha no es válida. Use el formato ISO 8601 (ej. 2026-02-01T09:00:00).",
    "appointment-already-cancelled": "La cita ya está cancelada.",
    "appointment-cannot-cancel-completed": "No se puede cancelar una cita ya completada.",
    "appointment-use-id-not-name": (
        'Use el id (UUID) del resultado de search_patients/get_all_patients y list_specialties, '
        'no el nombre. Llame a esas funciones y pase el campo "id" en create_appointment.'
    ),
    "appointment-patient-ambiguous": (
        "Varios pacientes coinciden con ese nombre. Use search_patients y pase el id del paciente elegido."
    ),
    "appointment-specialty-ambiguous": (
        "Varias especialidades coinciden. Use list_specialties y pase el id de la especialidad elegida."
    ),
    "appointment-already-has-clinic-history": "Esa cita ya tiene una historia clínica registrada.",
    "clinic-history-not-found": "La historia clínica no fue encontrada.",
    "clinic-history-not-owned-by-doctor": "Esa historia clínica pertenece a otro médico.",
    "conflict": "Conflicto con los datos. Intente de nuevo.",
    "not-found": "Recurso no encontrado.",
    "bad-request": "Datos inválidos. Verifique e intente de nuevo.",
}

UNKNOWN_ERROR_CODE = "unknown"
UNKNOWN_ERROR_MESSAGE = "Ocurrió un error al procesar la solicitud. Intente de nuevo."


def map_tool_error(exc: Exception) -> Dict[str, str]:
    """
    Map a handler exception to an error code and a recovery message.

    HTTPException details are error codes; unknown codes fall back to the
    generic bad-request message. Any other exception is reported as unknown.
    """
    if isinstance(exc, HTTPException):
        code = str(exc.detail)
        return {"error": code, "message": TOOL_ERROR_MESSAGES.get(code, TOOL_ERROR_MESSAGES["bad-request"])}

    code = str(exc)
    if code in TOOL_ERROR_MESSAGES:
        return {"error": code, "message": TOOL_ERROR_MESSAGES[code]}
    return {"error": UNKNOWN_ERROR_CODE, "message": UNKNOWN_ERROR_MESSAGE}


# Patients

def _register_patient(db: Session, clinician_id: str, args: Dict[str, Any]) -> Dict[str, Any]:
    patient = PatientService.register_patient(
        db,
        clinician_id,
        email=args.get("email"),
        name=args.get("name"),
        last_name=args.get("last_name"),
        phone=args.get("phone"),
        gender=args.get("gender"),
        birth_date=args.get("birth_date"),
    )
    return patient.to_dict()


def _get_all_patients(db: Session, clinician_id: str, args: Dict[str, Any]) -> List[Dict[str, Any]]:
    return PatientService.find_patients(db, clinician_id, args.get("query"))


def _get_patient(db: Session, clinician_id: str, args: Dict[str, Any]) -> Dict[str, Any]:
    return PatientService.get_patient(db, clinician_id, args.get("patient_id")).to_dict()


def _update_patient(db: Session, clinician_id: str, args: Dict[str, Any]) -> Dict[str, Any]:
    fields = {
        key: args.get(key)
        for key in ("email", "name", "last_name", "phone", "gender", "birth_date")
    }
    return PatientService.update_patient(db, clinician_id, args.get("patient_id"), **fields).to_dict()


def _delete_patient(db: Session, clinician_id: str, args: Dict[str, Any]) -> Dict[str, Any]:
    return PatientService.delete_patient(db, clinician_id, args.get("patient_id"))


def _get_patient_antecedents(db: Session, clinician_id: str, args: Dict[str, Any]) -> Dict[str, Any]:
    return PatientService.get_antecedents(db, clinician_id, args.get("patient_id"))


def _update_patient_antecedents(db: Session, clinician_id: str, args: Dict[str, Any]) -> Dict[str, Any]:
    return PatientService.update_antecedents(
        db,
        clinician_id,
        args.get("patient_id"),
        allergies=args.get("allergies"),
        medications=args.get("medications"),
        medical_history=args.get("medical_history"),
        family_history=args.get("family_history"),
    )


# Lookups

def _list_specialties(db: Session, clinician_id: str, args: Dict[str, Any]) -> List[Dict[str, Any]]:
    return AppointmentService.list_specialties(db)


def _search_patients(db: Session, clinician_id: str, args: Dict[str, Any]) -> List[Dict[str, Any]]:
    return PatientService.search_patients(db, clinician_id, args.get("query"))


# Appointments

def _create_appointment(db: Session, clinician_id: str, args: Dict[str, Any]) -> Dict[str, Any]:
    appointment = AppointmentService.create_appointment(
        db,
        clinician_id,
        patient_ref=args.get("patient_id"),
        specialty_ref=args.get("specialty_id"),
        start_time=args.get("start_time"),
        end_time=args.get("end_time"),
        reason=args.get("reason"),
    )
    return appointment.to_dict()


def _get_all_appointments(db: Session, clinician_id: str, args: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [a.to_dict() for a in AppointmentService.list_appointments(db, clinician_id)]


def _get_appointment(db: Session, clinician_id: str, args: Dict[str, Any]) -> Dict[str, Any]:
    return AppointmentService.get_appointment(db, clinician_id, args.get("appointment_id")).to_dict()


def _update_appointment(db: Session, clinician_id: str, args: Dict[str, Any]) -> Dict[str, Any]:
    appointment = AppointmentService.update_appointment(
        db,
        clinician_id,
        args.get("appointment_id"),
        start_time=args.get("start_time"),
        end_time=args.get("end_time"),
        status_value=args.get("status"),
        reason=args.get("reason"),
    )
    return appointment.to_dict()


def _cancel_appointment(db: Session, clinician_id: str, args: Dict[str, Any]) -> Dict[str, Any]:
    return AppointmentService.cancel_appointment(db, clinician_id, args.get("appointment_id")).to_dict()


def _get_patient_appointments(db: Session, clinician_id: str, args: Dict[str, Any]) -> List[Dict[str, Any]]:
    appointments = AppointmentService.list_patient_appointments(db, clinician_id, args.get("patient_id"))
    return [a.to_dict() for a in appointments]


def _get_todays_appointments(db: Session, clinician_id: str, args: Dict[str, Any]) -> Dict[str, Any]:
    day = args.get("date") if isinstance(args.get("date"), str) else None
    appointments = AppointmentService.list_for_day(db, clinician_id, day)
    return {"formatted_message": format_appointments_for_whatsapp(appointments)}


# Clinic histories

def _create_clinic_history(db: Session, clinician_id: str, args: Dict[str, Any]) -> Dict[str, Any]:
    history = ClinicHistoryService.create_clinic_history(
        db,
        clinician_id,
        appointment_id=args.get("appointment_id"),
        consultation_reason=args.get("consultation_reason"),
        symptoms=args.get("symptoms"),
        treatment=args.get("treatment"),
        diagnostics=args.get("diagnostics"),
        physical_exams=args.get("physical_exams"),
        vital_signs=args.get("vital_signs"),
        prescription=args.get("prescription"),
    )
    return history.to_dict()


def _get_all_clinic_histories(db: Session, clinician_id: str, args: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [h.to_dict(detailed=False) for h in ClinicHistoryService.list_clinic_histories(db, clinician_id)]


def _get_clinic_history(db: Session, clinician_id: str, args: Dict[str, Any]) -> Dict[str, Any]:
    return ClinicHistoryService.get_clinic_history(db, clinician_id, args.get("clinic_history_id")).to_dict()


def _get_patient_clinic_histories(db: Session, clinician_id: str, args: Dict[str, Any]) -> List[Dict[str, Any]]:
    histories = ClinicHistoryService.list_patient_clinic_histories(db, clinician_id, args.get("patient_id"))
    return [h.to_dict(detailed=False) for h in histories]


_NAME_DESCRIPTION_ITEM = {
    "type": "object",
    "properties": {
        "name": _string("Nombre"),
        "description": _string("Descripción o hallazgos"),
    },
    "required": ["name", "description"],
}

CLINIC_TOOLS: List[ClinicTool] = [
    ClinicTool(
        name="register_patient",
        description="Registra un nuevo paciente del médico.",
        parameters=_schema(
            {
                "email": _string("Email del paciente"),
                "name": _string("Nombre del paciente"),
                "last_name": _string("Apellido del paciente"),
                "phone": _string("Teléfono en formato internacional (ej. +584241234567)"),
                "gender": {"type": "string", "enum": ["male", "female"], "description": "Género del paciente"},
                "birth_date": _string("Fecha de nacimiento ISO 8601 (ej. 1990-05-15)"),
            },
            ["email", "name", "last_name", "phone"],
        ),
        handler=_register_patient,
    ),
    ClinicTool(
        name="get_all_patients",
        description=(
            "Busca pacientes del médico por nombre o apellido y devuelve sus datos de contacto. "
            "Sin query devuelve una lista vacía. NUNCA muestres los ids al médico."
        ),
        parameters=_schema({"query": _string("Texto a buscar en nombre o apellido")}, []),
        handler=_get_all_patients,
    ),
    ClinicTool(
        name="get_patient",
        description="Obtiene un paciente por su id.",
        parameters=_schema({"patient_id": _PATIENT_ID}, ["patient_id"]),
        handler=_get_patient,
    ),
    ClinicTool(
        name="update_patient",
        description="Actualiza los datos de contacto de un paciente. Solo se cambian los campos enviados.",
        parameters=_schema(
            {
                "patient_id": _PATIENT_ID,
                "email": _string("Nuevo email"),
                "name": _string("Nuevo nombre"),
                "last_name": _string("Nuevo apellido"),
                "phone": _string("Nuevo teléfono"),
                "gender": {"type": "string", "enum": ["male", "female"], "description": "Género"},
                "birth_date": _string("Fecha de nacimiento ISO 8601"),
            },
            ["patient_id"],
        ),
        handler=_update_patient,
    ),
    ClinicTool(
        name="delete_patient",
        description="Elimina un paciente y sus citas e historias clínicas.",
        parameters=_schema({"patient_id": _PATIENT_ID}, ["patient_id"]),
        handler=_delete_patient,
    ),
    ClinicTool(
        name="get_patient_antecedents",
        description="Obtiene alergias, medicamentos, historial médico e historial familiar de un paciente.",
        parameters=_schema({"patient_id": _PATIENT_ID}, ["patient_id"]),
        handler=_get_patient_antecedents,
    ),
    ClinicTool(
        name="update_patient_antecedents",
        description="Reemplaza las listas de antecedentes enviadas; las no enviadas se conservan.",
        parameters=_schema(
            {
                "patient_id": _PATIENT_ID,
                "allergies": _string_list("Alergias conocidas"),
                "medications": _string_list("Medicamentos actuales"),
                "medical_history": _string_list("Antecedentes personales"),
                "family_history": _string_list("Antecedentes familiares"),
            },
            ["patient_id"],
        ),
        handler=_update_patient_antecedents,
    ),
    ClinicTool(
        name="list_specialties",
        description="Lista las especialidades disponibles (id y nombre).",
        parameters=_schema({}, []),
        handler=_list_specialties,
    ),
    ClinicTool(
        name="search_patients",
        description=(
            "Lista los pacientes del médico (id, patient_number, nombre, apellido), "
            "opcionalmente filtrados por nombre. Úsalo antes de crear una cita."
        ),
        parameters=_schema({"query": _string("Texto opcional a buscar en nombre o apellido")}, []),
        handler=_search_patients,
    ),
    ClinicTool(
        name="create_appointment",
        description="Crea una cita para el médico de la conversación.",
        parameters=_schema(
            {
                "patient_id": _string("El id (UUID) o el patient_number del paciente elegido"),
                "specialty_id": _string("El id de la especialidad elegida en list_specialties"),
                "start_time": _string("Inicio ISO 8601 (ej. 2026-02-01T09:00:00)"),
                "end_time": _string("Fin ISO 8601"),
                "reason": _string("Motivo de la cita"),
            },
            ["patient_id", "specialty_id", "start_time", "end_time"],
        ),
        handler=_create_appointment,
    ),
    ClinicTool(
        name="get_all_appointments",
        description="Lista todas las citas del médico.",
        parameters=_schema({}, []),
        handler=_get_all_appointments,
    ),
    ClinicTool(
        name="get_appointment",
        description="Obtiene una cita por su id.",
        parameters=_schema({"appointment_id": _APPOINTMENT_ID}, ["appointment_id"]),
        handler=_get_appointment,
    ),
    ClinicTool(
        name="update_appointment",
        description="Reprograma una cita o cambia su estado o motivo.",
        parameters=_schema(
            {
                "appointment_id": _APPOINTMENT_ID,
                "start_time": _string("Nuevo inicio ISO 8601"),
                "end_time": _string("Nuevo fin ISO 8601"),
                "status": {
                    "type": "string",
                    "enum": ["pending", "confirmed", "cancelled", "completed"],
                    "description": "Nuevo estado",
                },
                "reason": _string("Nuevo motivo"),
            },
            ["appointment_id"],
        ),
        handler=_update_appointment,
    ),
    ClinicTool(
        name="cancel_appointment",
        description="Cancela una cita.",
        parameters=_schema({"appointment_id": _APPOINTMENT_ID}, ["appointment_id"]),
        handler=_cancel_appointment,
    ),
    ClinicTool(
        name="get_patient_appointments",
        description="Lista las citas del médico con un paciente.",
        parameters=_schema({"patient_id": _PATIENT_ID}, ["patient_id"]),
        handler=_get_patient_appointments,
    ),
    ClinicTool(
        name="get_todays_appointments",
        description=(
            "Devuelve las consultas del médico para hoy (u otro día) ya formateadas "
            "en formatted_message."
        ),
        parameters=_schema({"date": _string("Fecha ISO 8601 opcional (ej. 2026-02-01). Por defecto hoy.")}, []),
        handler=_get_todays_appointments,
    ),
    ClinicTool(
        name="create_clinic_history",
        description="Crea la historia clínica de una cita del médico.",
        parameters=_schema(
            {
                "appointment_id": _APPOINTMENT_ID,
                "consultation_reason": _string("Motivo de la consulta"),
                "symptoms": _string_list("Síntomas referidos por el paciente"),
                "treatment": _string("Tratamiento indicado"),
                "diagnostics": {"type": "array", "items": _NAME_DESCRIPTION_ITEM, "description": "Diagnósticos"},
                "physical_exams": {"type": "array", "items": _NAME_DESCRIPTION_ITEM, "description": "Exámenes físicos"},
                "vital_signs": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "name": _string("Nombre del signo vital"),
                            "value": _string("Valor medido"),
                            "unit": _string("Unidad"),
                            "measurement": _string("Método o lugar de medición"),
                            "description": _string("Notas"),
                        },
                        "required": ["name", "value", "unit", "measurement"],
                    },
                    "description": "Signos vitales",
                },
                "prescription": {
                    "type": "object",
                    "properties": {
                        "name": _string("Título de la prescripción"),
                        "description": _string("Notas generales"),
                        "medications": {
                            "type": "array",
                            "items": {
                                "type": "object",
                                "properties": {
                                    "name": _string("Medicamento"),
                                    "quantity": {"type": "number", "description": "Cantidad por dosis"},
                                    "unit": _string("Unidad"),
                                    "frequency": _string("Frecuencia"),
                                    "duration": _string("Duración"),
                                    "indications": _string("Indicaciones"),
                                    "administration_route": _string("Vía de administración"),
                                },
                                "required": ["name", "quantity", "unit", "frequency", "duration"],
                            },
                        },
                    },
                    "required": ["name", "medications"],
                    "description": "Prescripción opcional",
                },
            },
            [
                "appointment_id",
                "consultation_reason",
                "symptoms",
                "treatment",
                "diagnostics",
                "physical_exams",
                "vital_signs",
            ],
        ),
        handler=_create_clinic_history,
    ),
    ClinicTool(
        name="get_all_clinic_histories",
        description="Lista las historias clínicas escritas por el médico.",
        parameters=_schema({}, []),
        handler=_get_all_clinic_histories,
    ),
    ClinicTool(
        name="get_clinic_history",
        description="Obtiene una historia clínica completa por su id.",
        parameters=_schema({"clinic_history_id": _string("El id (UUID) de la historia clínica")}, ["clinic_history_id"]),
        handler=_get_clinic_history,
    ),
    ClinicTool(
        name="get_patient_clinic_histories",
        description="Lista las historias clínicas de un paciente escritas por el médico.",
        parameters=_schema({"patient_id": _PATIENT_ID}, ["patient_id"]),
        handler=_get_patient_clinic_histories,
    ),
]

TOOLS_BY_NAME: Dict[str, ClinicTool] = {tool.name: tool for tool in CLINIC_TOOLS}


def get_openai_tools() -> List[Dict[str, Any]]:
    """Tool definitions in the chat completions format."""
    return [tool.to_openai_tool() for tool in CLINIC_TOOLS]


def execute_tool(db: Session, clinician_id: str, name: str, args: Dict[str, Any]) -> Any:
    """
    Run a tool by name for a clinician.

    Unknown names return an error result instead of raising. Handler
    exceptions propagate to the caller, which maps them per call.
    """
    tool = TOOLS_BY_NAME.get(name)
    if tool is None:
        logger.warning(f"Unknown tool requested: {name}")
        return {"error": f"Función no reconocida: {name}"}
    return tool.handler(db, clinician_id, args)
