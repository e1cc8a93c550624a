"""HTTP and WebSocket controllers for chat."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field, ValidationError, field_validator

from campus_assistant.controllers.dependencies import get_chat_service
from campus_assistant.domain.models import USER_TYPES, ChatMessage
from campus_assistant.services.chat_service import ChatService, ChatValidationError
from campus_assistant.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["chat"])


class ChatMessageRequest(BaseModel):
    text: str = Field(min_length=1, max_length=2000)
    user_id: str = Field(min_length=1)
    user_type: str = "student"
    session_id: Optional[str] = None
    user_email: Optional[str] = None

    @field_validator("text")
    @classmethod
    def validate_text_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("text must not be blank")
        return value

    @field_validator("user_type")
    @classmethod
    def validate_user_type(cls, value: str) -> str:
        if value not in USER_TYPES:
            raise ValueError(f"user_type must be one of {', '.join(USER_TYPES)}")
        return value


class ChatHistoryRequest(BaseModel):
    user_id: str = Field(min_length=1)
    session_id: Optional[str] = None
    limit: Optional[int] = Field(default=None, gt=0, le=500)


class InsightRequest(BaseModel):
    session_id: str = Field(min_length=1)


class ChatReplyResponse(BaseModel):
    id: int
    text: str
    sender: str
    timestamp: datetime
    metadata: dict[str, Any]
    session_id: str


class ChatMessageResponse(BaseModel):
    id: int
    user_id: str
    user_type: str
    session_id: str
    text: str
    sender: str
    timestamp: datetime
    intent: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    response_to: Optional[int] = None

    @classmethod
    def from_message(cls, message: ChatMessage) -> "ChatMessageResponse":
        return cls(**message.to_dict())


class ChatSessionResponse(BaseModel):
    session_id: str
    last_activity: datetime
    message_count: int = Field(ge=0)


class InsightResponse(BaseModel):
    insight: Optional[str] = None


@router.post(
    "/chat/messages",
    response_model=ChatReplyResponse,
    status_code=status.HTTP_200_OK,
)
async def send_message(
    payload: ChatMessageRequest,
    service: ChatService = Depends(get_chat_service),
) -> ChatReplyResponse:
    try:
        reply = await run_in_threadpool(
            service.process_user_message,
            payload.text,
            payload.user_id,
            payload.user_type,
            payload.session_id,
            payload.user_email,
        )
        return ChatReplyResponse(**reply.to_dict())
    except ChatValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected chat failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Chat processing failed",
        ) from exc


@router.get(
    "/chat/history",
    response_model=list[ChatMessageResponse],
    status_code=status.HTTP_200_OK,
)
async def chat_history(
    user_id: str = Query(min_length=1),
    session_id: Optional[str] = Query(default=None),
    limit: Optional[int] = Query(default=None, gt=0, le=500),
    service: ChatService = Depends(get_chat_service),
) -> list[ChatMessageResponse]:
    try:
        messages = await run_in_threadpool(service.get_chat_history, user_id, session_id, limit)
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected chat history failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Chat history lookup failed",
        ) from exc
    return [ChatMessageResponse.from_message(message) for message in messages]


@router.get(
    "/chat/sessions/{user_id}",
    response_model=list[ChatSessionResponse],
    status_code=status.HTTP_200_OK,
)
async def chat_sessions(
    user_id: str,
    service: ChatService = Depends(get_chat_service),
) -> list[ChatSessionResponse]:
    try:
        sessions = await run_in_threadpool(service.get_user_sessions, user_id)
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected chat sessions failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Chat sessions lookup failed",
        ) from exc
    return [
        ChatSessionResponse(
            session_id=item.session_id,
            last_activity=item.last_activity,
            message_count=item.message_count,
        )
        for item in sessions
    ]


@router.get(
    "/chat/insight",
    response_model=InsightResponse,
    status_code=status.HTTP_200_OK,
)
async def chat_insight(
    session_id: str = Query(min_length=1),
    service: ChatService = Depends(get_chat_service),
) -> InsightResponse:
    return InsightResponse(insight=service.get_proactive_insight(session_id))


def _history_payload(messages: list[ChatMessage]) -> list[dict[str, Any]]:
    return [message.to_dict() for message in messages]


async def _send_error(websocket: WebSocket, message: str) -> None:
    await websocket.send_json({"event": "chat:error", "data": {"message": message}})


@router.websocket("/ws/chat")
async def chat_socket(websocket: WebSocket) -> None:
    """Event channel: {"event": name, "data": {...}} in both directions."""
    service: Optional[ChatService] = getattr(websocket.app.state, "chat_service", None)
    if service is None:
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return

    await websocket.accept()
    logger.info("Chat socket connected")
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                envelope = json.loads(raw)
            except ValueError:
                await _send_error(websocket, "Payload must be a JSON object")
                continue
            if not isinstance(envelope, dict):
                await _send_error(websocket, "Payload must be a JSON object")
                continue

            event = envelope.get("event")
            data = envelope.get("data") or {}
            try:
                if event == "message:send":
                    request = ChatMessageRequest(**data)
                    reply = await run_in_threadpool(
                        service.process_user_message,
                        request.text,
                        request.user_id,
                        request.user_type,
                        request.session_id,
                        request.user_email,
                    )
                    await websocket.send_json({"event": "message:receive", "data": reply.to_dict()})
                elif event == "chat:history":
                    request = ChatHistoryRequest(**data)
                    messages = await run_in_threadpool(
                        service.get_chat_history,
                        request.user_id,
                        request.session_id,
                        request.limit,
                    )
                    await websocket.send_json({"event": "chat:history", "data": _history_payload(messages)})
                elif event == "insight:request":
                    request = InsightRequest(**data)
                    insight = service.get_proactive_insight(request.session_id)
                    await websocket.send_json({"event": "insight:receive", "data": {"insight": insight}})
                else:
                    await _send_error(websocket, f"Unknown event: {event}")
            except (ValidationError, TypeError, ChatValidationError) as exc:
                await _send_error(websocket, f"Invalid {event} payload: {exc}")
            except RuntimeError:
                logger.exception("Chat socket event failed | event=%s", event)
                await _send_error(websocket, f"Could not process {event}, please try again")
    except WebSocketDisconnect:
        logger.info("Chat socket disconnected")
