"""
Assistant persona, voice parameters and declared function tools.

Everything the model is told at session start lives here: the instructions text,
the voice/turn-detection configuration and the JSON-schema tool declarations.
The emergency contact table is shared by the emergency function and by operator
transfer resolution.
"""

import os

from voicebridge.config.constants import AUDIO_FORMAT_G711_ULAW

HOSPITAL_INFO = {
    "name": "Lilavati Hospital and Research Centre",
    "short_name": "Lilavati Hospital",
    "location": "Mumbai, Maharashtra, India",
    "established": "1978",
    "type": "Multi-specialty Tertiary Care Hospital",
}

SYSTEM_PROMPT = """You are Maya, the AI voice assistant for Lilavati Hospital and Research Centre in Mumbai, India. You answer the hospital's main telephone line.

## WHAT YOU DO
1. Understand what the caller needs through natural, short conversation.
2. Route callers to the right department or person.
3. Give information about doctors, departments, branches, timings and contact numbers.
4. Guide callers on booking appointments.
5. Connect emergencies to the emergency department immediately.

## HOW YOU SPEAK
- Warm, calm and professional; patient with elderly or distressed callers.
- Short sentences, no medical jargon, no long monologues.
- Start in English. If the caller speaks Hindi or Marathi, switch to their language.
- Open with: "Hello! You've reached Lilavati Hospital. I'm Maya, your AI assistant. How may I help you today?"

## FUNCTIONS
- search_doctors: questions about doctors or specialists.
- get_departments: questions about departments or services.
- get_hospital_locations: branches and addresses.
- get_contact_details: specific phone numbers.
- check_doctor_availability: a doctor's timings.
- emergency_protocol: chest pain, severe bleeding, accident, unconsciousness, breathing difficulty or stroke symptoms. Call it IMMEDIATELY and do not ask unnecessary questions.
- transfer_to_operator: when you cannot help or the caller asks for a person.
- search_hospital_info: facilities, visiting hours, policies.

## RULES
- Never give medical advice or a diagnosis.
- If you do not have the information, say so and offer to connect the caller to a person.
- If a function fails, apologise briefly and offer the human alternative it suggests.

## HOSPITAL FACTS
- Main hospital: Bandra West, Mumbai. Emergency services 24/7.
- OPD: 9:00 AM to 5:00 PM, Monday to Saturday. Visiting hours: 4:00 PM to 6:00 PM.
"""

VOICE_CONFIG = {
    "voice": os.getenv("DEFAULT_VOICE", "alloy"),
    "input_audio_format": AUDIO_FORMAT_G711_ULAW,
    "output_audio_format": AUDIO_FORMAT_G711_ULAW,
    "turn_detection": {
        "type": "server_vad",
        "threshold": float(os.getenv("VOICE_VAD_THRESHOLD", "0.5")),
        "prefix_padding_ms": int(os.getenv("VOICE_PREFIX_PADDING_MS", "300")),
        "silence_duration_ms": int(os.getenv("VOICE_SILENCE_DURATION_MS", "500")),
    },
    "temperature": 0.7,
    "max_response_output_tokens": 1000,
}

# Synthetic first user turn; makes the model greet the caller proactively
OPENING_USER_TURN = "Hello"

FUNCTION_TOOLS = [
    {
        "type": "function",
        "name": "search_doctors",
        "description": "Search for doctors by specialization, name, or hospital branch. Use when the caller asks about doctors or specialists.",
        "parameters": {
            "type": "object",
            "properties": {
                "specialization": {
                    "type": "string",
                    "description": "Medical specialization (e.g. 'cardiology', 'orthopedics')",
                },
                "doctorName": {
                    "type": "string",
                    "description": "Doctor's name (partial match supported)",
                },
                "locationBranch": {
                    "type": "string",
                    "description": "Hospital branch/location",
                },
            },
        },
    },
    {
        "type": "function",
        "name": "get_departments",
        "description": "List hospital departments and their services. Use when the caller asks about departments or services.",
        "parameters": {
            "type": "object",
            "properties": {
                "locationId": {
                    "type": "string",
                    "description": "Specific hospital location ID (optional)",
                },
            },
        },
    },
    {
        "type": "function",
        "name": "get_hospital_locations",
        "description": "Get hospital branches, addresses and phone numbers. Use when the caller asks where the hospital is.",
        "parameters": {
            "type": "object",
            "properties": {
                "branch": {
                    "type": "string",
                    "description": "Branch name (optional, returns all if not specified)",
                },
            },
        },
    },
    {
        "type": "function",
        "name": "get_contact_details",
        "description": "Get contact numbers for departments or services. Use when the caller needs a phone number.",
        "parameters": {
            "type": "object",
            "properties": {
                "category": {
                    "type": "string",
                    "description": "Contact category (e.g. 'Emergency', 'Appointments', 'General Inquiry')",
                },
            },
        },
    },
    {
        "type": "function",
        "name": "check_doctor_availability",
        "description": "Check a doctor's weekly schedule. Use when the caller asks about a doctor's timings.",
        "parameters": {
            "type": "object",
            "properties": {
                "doctorId": {
                    "type": "string",
                    "description": "Doctor's unique ID",
                },
                "dayOfWeek": {
                    "type": "integer",
                    "description": "Day of week (0=Sunday, 6=Saturday). Optional.",
                },
            },
            "required": ["doctorId"],
        },
    },
    {
        "type": "function",
        "name": "emergency_protocol",
        "description": "Activate the emergency protocol for urgent medical situations. Use IMMEDIATELY when the caller mentions an emergency.",
        "parameters": {
            "type": "object",
            "properties": {
                "emergencyType": {
                    "type": "string",
                    "enum": ["cardiac", "trauma", "stroke", "breathing", "bleeding", "general"],
                    "description": "Type of emergency",
                },
                "callerPhone": {
                    "type": "string",
                    "description": "Caller's phone number for callback",
                },
            },
            "required": ["emergencyType"],
        },
    },
    {
        "type": "function",
        "name": "transfer_to_operator",
        "description": "Transfer the call to a human operator. Use when you cannot help or the caller asks for a person.",
        "parameters": {
            "type": "object",
            "properties": {
                "reason": {
                    "type": "string",
                    "description": "Reason for the transfer",
                },
                "department": {
                    "type": "string",
                    "description": "Department to transfer to (optional)",
                },
            },
            "required": ["reason"],
        },
    },
    {
        "type": "function",
        "name": "search_hospital_info",
        "description": "Search general hospital information: facilities, services, visiting hours, policies.",
        "parameters": {
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "Search query (e.g. 'visiting hours', 'parking', 'cafeteria')",
                },
            },
            "required": ["query"],
        },
    },
]

EMERGENCY_CONTACTS = {
    "main": "+91-22-2640-0000",
    "ambulance": "+91-22-2640-1111",
    "trauma": "+91-22-2640-2222",
    "cardiac": "+91-22-2640-3333",
}

# Last resort when neither the directory nor the keyword table resolves a number
MAIN_HOSPITAL_NUMBER = "+91-22-2640-0000"

# Department keywords, checked in order, mapped to an EMERGENCY_CONTACTS key
DEPARTMENT_CONTACT_KEYWORDS = [
    (("emergency", "urgent"), "main"),
    (("cardiac", "heart"), "cardiac"),
    (("trauma", "accident"), "trauma"),
    (("ambulance",), "ambulance"),
]

LANGUAGE_DETECTION_KEYWORDS = {
    "hi": ["namaste", "kaise", "chahiye", "kripya", "dhanyavaad"],
    "mr": ["namaskaar", "kasa", "pahije", "krupaya", "aabhari"],
}
