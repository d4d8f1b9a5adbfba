"""Team chat endpoints."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from panthers.api.deps import get_client, get_hub, require_access
from panthers.domain.access.models import UserAccess
from panthers.domain.chat import policy
from panthers.domain.chat.models import Message
from panthers.domain.chat.service import ChatService
from panthers.hub import Hub
from panthers.infra.backend import BackendClient

router = APIRouter(prefix="/chats", tags=["chats"])


class CreateChatRequest(BaseModel):
	name: Optional[str] = Field(default=None, max_length=120)
	chat_type: str = Field(default="group", pattern="^(direct|group|team)$")
	participants: List[str] = Field(default_factory=list)
	team_id: Optional[str] = None


class SendMessageRequest(BaseModel):
	content: str = Field(default="", max_length=4000)
	message_type: str = Field(default="text", max_length=32)
	media_url: Optional[str] = None


class EditMessageRequest(BaseModel):
	content: str = Field(..., min_length=1, max_length=4000)


def get_chat_service(
	hub: Hub = Depends(get_hub),
	client: BackendClient = Depends(get_client),
) -> ChatService:
	return ChatService(client, retry_policy=hub.retry_policy)


def _message_payload(message: Message, user_id: str) -> dict:
	now = datetime.now(timezone.utc)
	payload = message.to_dict()
	payload["can_edit"] = policy.can_edit(message, user_id, now)
	payload["can_recall"] = policy.can_recall(message, user_id, now)
	if payload["can_edit"]:
		payload["minutes_left_to_edit"] = policy.minutes_left_to_edit(message, now)
	if payload["can_recall"]:
		payload["minutes_left_to_recall"] = policy.minutes_left_to_recall(message, now)
	return payload


@router.get("")
async def list_chats(
	include_archived: bool = Query(default=False),
	access: UserAccess = Depends(require_access()),
	service: ChatService = Depends(get_chat_service),
) -> dict:
	chats = await service.list_chats(access.user_id, include_archived=include_archived)
	return {"items": [chat.to_dict() for chat in chats]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_chat(
	payload: CreateChatRequest,
	access: UserAccess = Depends(require_access()),
	service: ChatService = Depends(get_chat_service),
) -> dict:
	chat = await service.create_chat(
		access.user_id,
		name=payload.name,
		chat_type=payload.chat_type,
		participants=payload.participants,
		team_id=payload.team_id,
	)
	return chat.to_dict()


@router.get("/{chat_id}/messages")
async def list_messages(
	chat_id: str,
	limit: int = Query(default=50, ge=1, le=200),
	before: Optional[str] = Query(default=None),
	access: UserAccess = Depends(require_access()),
	service: ChatService = Depends(get_chat_service),
) -> dict:
	messages = await service.messages(chat_id, access.user_id, limit=limit, before=before)
	return {"items": [_message_payload(message, access.user_id) for message in messages]}


@router.post("/{chat_id}/messages", status_code=status.HTTP_201_CREATED)
async def send_message(
	chat_id: str,
	payload: SendMessageRequest,
	access: UserAccess = Depends(require_access()),
	service: ChatService = Depends(get_chat_service),
) -> dict:
	message = await service.send(
		chat_id,
		access.user_id,
		payload.content,
		message_type=payload.message_type,
		media_url=payload.media_url,
	)
	return _message_payload(message, access.user_id)


@router.patch("/messages/{message_id}")
async def edit_message(
	message_id: str,
	payload: EditMessageRequest,
	access: UserAccess = Depends(require_access()),
	service: ChatService = Depends(get_chat_service),
) -> dict:
	message = await service.edit(message_id, access.user_id, payload.content)
	return _message_payload(message, access.user_id)


@router.post("/messages/{message_id}/recall")
async def recall_message(
	message_id: str,
	access: UserAccess = Depends(require_access()),
	service: ChatService = Depends(get_chat_service),
) -> dict:
	message = await service.recall(message_id, access.user_id)
	return _message_payload(message, access.user_id)


@router.post("/{chat_id}/archive")
async def archive_chat(
	chat_id: str,
	access: UserAccess = Depends(require_access()),
	service: ChatService = Depends(get_chat_service),
) -> dict:
	return (await service.archive(chat_id, access.user_id)).to_dict()


@router.post("/{chat_id}/unarchive")
async def unarchive_chat(
	chat_id: str,
	access: UserAccess = Depends(require_access()),
	service: ChatService = Depends(get_chat_service),
) -> dict:
	return (await service.archive(chat_id, access.user_id, archived=False)).to_dict()
