"""Static keyword answers plus topic tagging for free-form model replies."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from campus_assistant.domain.models import AssistantResponse, UserQuery


ASSISTANT_NAME = "Campus AI"
FAQ_SOURCE = "Campus FAQ"

GREETING_PATTERN = re.compile(r"\b(hello|hi|hey)\b", re.IGNORECASE)
THANKS_PATTERN = re.compile(r"\bthank", re.IGNORECASE)

# First matching keyword wins.
FAQ_ANSWERS: tuple[tuple[str, str], ...] = (
    (
        "course",
        "To register for courses, log into the student portal and open the Student Center. "
        "From there, select Enroll and follow the instructions to search for and add courses to your cart. "
        "Check for any prerequisites before finalizing your registration.",
    ),
    (
        "library",
        "The Goddard Library is open Monday-Friday 8am-10pm, Saturday 10am-8pm, and Sunday 10am-10pm. "
        "It offers study spaces, research materials, computer labs, and help from librarians. "
        "Online resources are available with your campus credentials even when off-campus.",
    ),
    (
        "portal",
        "The student portal is where you register for classes, view your academic record, pay bills, "
        "access email, and find campus resources. If you're having trouble with your credentials, "
        "contact the IT Help Desk.",
    ),
    (
        "onecard",
        "Your OneCard is the official campus ID card. It provides access to buildings, dining services, "
        "and campus facilities, and you can add funds to it for purchases. If you've lost your card, "
        "visit the OneCard Office in the University Center to request a replacement (a fee may apply).",
    ),
    (
        "appointment",
        "To schedule an appointment with academic advisors, career services, or other departments, "
        "use the online scheduling system in the student portal or contact the office directly.",
    ),
    (
        "schedule",
        "Faculty course schedules are managed through the Registrar's Office. You can view and request changes "
        "to your teaching schedule through the portal. For scheduling conflicts or room changes, "
        "contact the Registrar.",
    ),
    (
        "shuttle",
        "The campus shuttle runs on a regular schedule during the academic year with more limited service "
        "during breaks. Use the shuttle tracking app to see live locations and estimated arrival times.",
    ),
    (
        "bus",
        "Regional bus routes connect campus to downtown and the surrounding areas. The nearest stops are on "
        "Main Street and Park Avenue, and students get discounted fares with a valid ID.",
    ),
    (
        "restaurant",
        "Near campus you can find coffee shops, a bakery, and Middle Eastern, Vietnamese, Mexican, "
        "Japanese and seafood restaurants, most within a short walk along Main Street.",
    ),
    (
        "shop",
        "Shopping options near campus include the on-campus convenience store, two grocery supermarkets, "
        "and a public market with local vendors. Larger retailers are about two miles away.",
    ),
)

# (keywords, intent, subcategory, category override)
TOPIC_RULES: tuple[tuple[tuple[str, ...], str, str, Optional[str]], ...] = (
    (("course", "class"), "course_inquiry", "courses", None),
    (("library",), "library_inquiry", "campus_resources", None),
    (("portal", "login", "password"), "credentials_inquiry", "credentials", None),
    (("onecard", "id card"), "onecard_inquiry", "onecard", None),
    (("appointment", "schedule"), "appointment_inquiry", "appointments", None),
    (("shuttle", "bus", "train"), "transportation_inquiry", "commuter", "other"),
    (("restaurant", "eat", "food", "shop", "store"), "places_inquiry", "places_near", "other"),
)


@dataclass(frozen=True)
class Topic:
    intent: str
    subcategory: Optional[str]
    category: str


def detect_topic(text: str, user_type: str = "student") -> Topic:
    lowered = text.lower()
    for keywords, intent, subcategory, category in TOPIC_RULES:
        if any(keyword in lowered for keyword in keywords):
            return Topic(intent, subcategory, category or user_type)
    return Topic("general_inquiry", None, user_type)


def subcategory_for(intent: str) -> Optional[str]:
    """`student_library` -> `library`; intents without an underscore have none."""
    parts = intent.split("_")
    return parts[1] if len(parts) > 1 else None


class FaqResponder:
    def __init__(self, answers: tuple[tuple[str, str], ...] = FAQ_ANSWERS) -> None:
        self._answers = answers

    def respond(self, query: UserQuery) -> AssistantResponse:
        category = query.user_type
        lowered = query.text.lower()
        confidence = 0.8

        if GREETING_PATTERN.search(lowered):
            text = f"Hello! I'm {ASSISTANT_NAME}, your {category} assistant. How can I help you today?"
            intent = "greeting"
        elif THANKS_PATTERN.search(lowered):
            text = "You're welcome! Let me know if you need anything else."
            intent = "gratitude"
        else:
            match = next(((keyword, answer) for keyword, answer in self._answers if keyword in lowered), None)
            if match is not None:
                keyword, text = match
                intent = f"{category}_{keyword}"
            else:
                text = (
                    "I understand you're asking about something important, but I don't have an answer for that "
                    "yet. Try asking about courses, the library, your OneCard, study room bookings, "
                    "or how busy campus spaces are right now."
                )
                intent = "fallback"
                confidence = 0.4

        return AssistantResponse(
            text=text,
            intent=intent,
            category=category,
            subcategory=subcategory_for(intent),
            confidence=confidence,
            sources=(FAQ_SOURCE,),
        )
