"""
Prompt templates for the HealthFlow assistant.

Each builder returns the role-tagged message list sent to the chat completion
endpoint: one system message describing the task and output format, followed
by the user message.
"""

from typing import Any, Dict, List, Mapping, Optional

from healthflow.models import default_knowledge_base


CHAT_MAX_TOKENS = 300
CHAT_TEMPERATURE = 0.7
SUMMARY_MAX_TOKENS = 500
SUMMARY_TEMPERATURE = 0.3
INTAKE_MAX_TOKENS = 800
INTAKE_TEMPERATURE = 0.5

SUMMARY_SECTIONS = (
    "Chief Complaint",
    "Key Findings",
    "Assessment/Diagnosis",
    "Treatment Plan",
    "Follow-up Instructions",
)


def _clinic_facts(knowledge_base: Optional[Mapping[str, Any]]) -> str:
    """Render the practice information block from a bot knowledge base."""

    base = default_knowledge_base()
    kb = knowledge_base or base
    info = kb.get("clinicInfo") if isinstance(kb.get("clinicInfo"), Mapping) else base["clinicInfo"]
    insurance = kb.get("insurance") if isinstance(kb.get("insurance"), list) else base["insurance"]
    lines = [
        f"- Hours: {info.get('hours') or base['clinicInfo']['hours']}",
        f"- Location: {info.get('address') or base['clinicInfo']['address']}",
        f"- Phone: {info.get('phone') or base['clinicInfo']['phone']}",
        f"- Accepted Insurance: Most major plans including {', '.join(str(i) for i in insurance)}",
    ]
    services = kb.get("services")
    if isinstance(services, list) and services:
        lines.append(f"- Services: {', '.join(str(s) for s in services)}")
    return "\n".join(lines)


def build_chat_prompt(
    message: str,
    knowledge_base: Optional[Mapping[str, Any]] = None,
) -> List[Dict[str, str]]:
    """Return messages for a patient-facing front desk reply."""

    system = (
        "You are a helpful medical office assistant AI. You help patients with:\n"
        "- Clinic hours and location information\n"
        "- Insurance and billing questions\n"
        "- Appointment scheduling guidance\n"
        "- General medical office procedures\n"
        "- Preparation instructions for visits\n\n"
        "Practice Information:\n"
        f"{_clinic_facts(knowledge_base)}\n\n"
        "Keep responses helpful, professional, and concise. If you cannot answer a "
        "medical question, direct them to speak with their healthcare provider."
    )
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": message},
    ]


def build_summary_prompt(text: str) -> List[Dict[str, str]]:
    """Return messages requesting the five-part clinical note summary."""

    sections = "\n".join(f"{idx}. {name}" for idx, name in enumerate(SUMMARY_SECTIONS, start=1))
    system = (
        "You are a medical AI assistant that summarizes clinical notes. Create a "
        "concise, structured summary that includes:\n\n"
        f"{sections}\n\n"
        "Keep the summary professional, accurate, and focused on actionable "
        "information for healthcare providers."
    )
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": f"Please summarize the following clinical note:\n\n{text}"},
    ]


def build_intake_prompt(patient_type: str) -> List[Dict[str, str]]:
    """Return messages requesting intake questions as a JSON array."""

    system = (
        f"Generate relevant intake form questions for a {patient_type} patient visit. "
        "Return only a JSON array of question objects with the following structure:\n"
        "{\n"
        '  "id": "unique_id",\n'
        '  "question": "Question text",\n'
        '  "type": "text|select|checkbox|date",\n'
        '  "required": true/false,\n'
        '  "options": ["option1", "option2"]\n'
        "}\n"
        "Include \"options\" for select and checkbox questions only.\n\n"
        "Focus on essential medical history, current symptoms, medications, and "
        "relevant health information."
    )
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": f"Generate intake questions for: {patient_type}"},
    ]
