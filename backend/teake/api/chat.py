"""Direct messages between users."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from teake.api.deps import get_verified_user, message_repository
from teake.api.schemas import SendMessageRequest, envelope, paginated
from teake.domain.chat.repo import MessageFilter, MessageRepository
from teake.domain.common.query import TextSearchFilter
from teake.domain.identity.models import User
from teake.infra.auth import AuthenticatedUser, get_current_user
from teake.obs import metrics as obs_metrics

router = APIRouter(prefix="/messages", tags=["messages"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def send_message(
	payload: SendMessageRequest,
	sender: User = Depends(get_verified_user),
	messages: MessageRepository = Depends(message_repository),
) -> dict:
	message = await messages.send_message(
		{
			"id": str(uuid.uuid4()),
			"sender_id": sender.id,
			"receiver_id": payload.receiver_id,
			"text": payload.text,
			"expires_at": payload.expires_at,
		}
	)
	obs_metrics.inc_message_sent()
	return envelope(message)


@router.get("/conversations")
async def list_conversations(
	page: int = Query(default=1),
	limit: int = Query(default=20),
	search: Optional[str] = Query(default=None),
	user: AuthenticatedUser = Depends(get_current_user),
	messages: MessageRepository = Depends(message_repository),
) -> dict:
	result = await messages.fetch_conversations(user.id, TextSearchFilter(page=page, limit=limit, search=search))
	return paginated(result)


@router.get("/unread-count")
async def unread_count(
	user: AuthenticatedUser = Depends(get_current_user),
	messages: MessageRepository = Depends(message_repository),
) -> dict:
	return envelope({"unread_count": await messages.get_unread_message_count(user.id)})


@router.get("/with/{other_user_id}")
async def chat_history(
	other_user_id: str,
	page: int = Query(default=1),
	limit: int = Query(default=50),
	include_expired: bool = Query(default=False),
	start_date: Optional[datetime] = Query(default=None),
	end_date: Optional[datetime] = Query(default=None),
	user: AuthenticatedUser = Depends(get_current_user),
	messages: MessageRepository = Depends(message_repository),
) -> dict:
	result = await messages.fetch_chat_history(
		user.id,
		other_user_id,
		MessageFilter(
			page=page,
			limit=limit,
			start_date=start_date,
			end_date=end_date,
			include_expired=include_expired,
		),
	)
	return paginated(result)


@router.delete("/{message_id}")
async def delete_message(
	message_id: str,
	user: AuthenticatedUser = Depends(get_current_user),
	messages: MessageRepository = Depends(message_repository),
) -> dict:
	if not await messages.delete_message(message_id, user.id):
		raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="message_not_found")
	return envelope(deleted=True)
