"""Chat orchestration: route a message, persist both turns, build the reply."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from campus_assistant.domain.models import AssistantResponse, ChatMessage, ChatSessionSummary, USER_TYPES, UserQuery
from campus_assistant.repository.chat_repository import ChatRepository
from campus_assistant.services.booking_dialogue import BookingDialogueService
from campus_assistant.services.faq_service import FaqResponder, detect_topic
from campus_assistant.services.insight_service import CampusInsightService
from campus_assistant.services.llm_client import LanguageModelClient, LanguageModelError
from campus_assistant.utils.config import Settings, get_settings
from campus_assistant.utils.logger import get_logger


logger = get_logger(__name__)

LLM_SOURCE = "Campus AI Model"
APOLOGY_TEXT = "I'm sorry, I encountered an error processing your request. Please try again later."


class ChatValidationError(Exception):
    """Raised when an inbound chat message is malformed."""


@dataclass(frozen=True)
class ChatReply:
    message_id: int
    text: str
    timestamp: datetime
    metadata: dict[str, Any]
    session_id: str
    sender: str = "ai"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.message_id,
            "text": self.text,
            "sender": self.sender,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
            "session_id": self.session_id,
        }


class ChatService:
    """Routes user text to booking, campus insight, language model or FAQ handlers."""

    def __init__(
        self,
        repository: ChatRepository,
        booking_dialogue: BookingDialogueService,
        insight_service: CampusInsightService,
        faq_responder: Optional[FaqResponder] = None,
        llm_client: Optional[LanguageModelClient] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository
        self._booking_dialogue = booking_dialogue
        self._insight_service = insight_service
        self._faq_responder = faq_responder or FaqResponder()
        self._llm_client = llm_client or LanguageModelClient(settings=self._settings)
        self._clock = clock

    def route(self, query: UserQuery) -> AssistantResponse:
        if self._booking_dialogue.is_booking_request(query.text):
            logger.info("Routing message | session_id=%s | handler=booking_start", query.session_id)
            return self._booking_dialogue.handle(query)
        if self._booking_dialogue.has_active_conversation(query.session_id):
            logger.info("Routing message | session_id=%s | handler=booking_active", query.session_id)
            return self._booking_dialogue.handle(query)
        if self._insight_service.is_campus_query(query.text):
            logger.info("Routing message | session_id=%s | handler=campus_insight", query.session_id)
            return self._insight_service.handle_campus_query(query)
        if self._llm_client.enabled:
            try:
                return self._ask_language_model(query)
            except LanguageModelError as exc:
                logger.warning(
                    "Language model unavailable, using FAQ | session_id=%s | error=%s",
                    query.session_id,
                    exc,
                )
        return self._faq_responder.respond(query)

    def _ask_language_model(self, query: UserQuery) -> AssistantResponse:
        text = self._llm_client.complete(query.text)
        topic = detect_topic(query.text, query.user_type)
        logger.info("Routing message | session_id=%s | handler=language_model", query.session_id)
        return AssistantResponse(
            text=text,
            intent=topic.intent,
            category=topic.category,
            subcategory=topic.subcategory,
            confidence=0.7,
            sources=(LLM_SOURCE,),
        )

    def process_user_message(
        self,
        text: str,
        user_id: str,
        user_type: str = "student",
        session_id: Optional[str] = None,
        user_email: Optional[str] = None,
    ) -> ChatReply:
        if not text or not text.strip():
            raise ChatValidationError("Message text must not be empty")
        if not user_id:
            raise ChatValidationError("user_id is required")
        if user_type not in USER_TYPES:
            raise ChatValidationError(f"user_type must be one of {', '.join(USER_TYPES)}")

        session_id = session_id or str(uuid.uuid4())
        query = UserQuery(
            text=text.strip(),
            user_id=user_id,
            session_id=session_id,
            user_type=user_type,
            user_email=user_email,
        )

        try:
            user_message = self._repository.save_message(
                user_id=user_id,
                user_type=user_type,
                session_id=session_id,
                content=query.text,
                timestamp=self._clock(),
                is_user_message=True,
            )
            response = self.route(query)
            ai_message = self._repository.save_message(
                user_id=user_id,
                user_type=user_type,
                session_id=session_id,
                content=response.text,
                timestamp=self._clock(),
                is_user_message=False,
                intent=response.intent,
                category=response.category,
                subcategory=response.subcategory,
                response_to=user_message.message_id,
            )
            self._repository.update_message_intent(
                user_message.message_id,
                response.intent,
                response.category,
                response.subcategory,
            )
        except Exception:
            logger.exception("Chat message processing failed | session_id=%s", session_id)
            return ChatReply(
                message_id=0,
                text=APOLOGY_TEXT,
                timestamp=self._clock(),
                metadata={"intent": "error", "category": user_type, "confidence": 0.0, "sources": []},
                session_id=session_id,
            )

        return ChatReply(
            message_id=ai_message.message_id,
            text=ai_message.content,
            timestamp=ai_message.timestamp,
            metadata=response.metadata(),
            session_id=session_id,
        )

    def get_chat_history(
        self,
        user_id: str,
        session_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[ChatMessage]:
        return self._repository.list_messages(
            user_id,
            session_id=session_id,
            limit=limit or self._settings.chat_history_limit,
        )

    def get_user_sessions(self, user_id: str) -> list[ChatSessionSummary]:
        return self._repository.list_sessions(user_id)

    def get_proactive_insight(self, session_id: str) -> Optional[str]:
        return self._insight_service.get_proactive_insight(session_id)
