"""Domain models for direct messages."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional

from teake.domain.identity.models import User

MAX_MESSAGE_LENGTH = 1000


@dataclass(slots=True)
class Message:
	id: str
	sender_id: str
	receiver_id: str
	text: str
	expires_at: Optional[datetime] = None
	created_at: Optional[datetime] = None
	sender: Optional[User] = None
	receiver: Optional[User] = None

	@classmethod
	def from_record(cls, record: Mapping[str, Any]) -> "Message":
		return cls(
			id=str(record["id"]),
			sender_id=str(record["sender_id"]),
			receiver_id=str(record["receiver_id"]),
			text=record["text"],
			expires_at=record.get("expires_at"),
			created_at=record.get("created_at"),
		)

	@classmethod
	def from_history_record(cls, record: Mapping[str, Any]) -> "Message":
		message = cls.from_record(record)
		message.sender = User.from_record(record, prefix="sender_user_")
		message.receiver = User.from_record(record, prefix="receiver_user_")
		return message

	def to_dict(self) -> dict:
		payload: dict[str, Any] = {
			"id": self.id,
			"sender_id": self.sender_id,
			"receiver_id": self.receiver_id,
			"text": self.text,
			"expires_at": self.expires_at.isoformat() if self.expires_at else None,
			"created_at": self.created_at.isoformat() if self.created_at else None,
		}
		if self.sender is not None:
			payload["sender"] = {"id": self.sender.id, "nickname": self.sender.nickname}
		if self.receiver is not None:
			payload["receiver"] = {"id": self.receiver.id, "nickname": self.receiver.nickname}
		return payload


@dataclass(slots=True)
class LastMessage:
	id: str
	content: str
	created_at: datetime
	is_from_current_user: bool


@dataclass(slots=True)
class ConversationSummary:
	other_user_id: str
	other_user_nickname: Optional[str]
	last_message: LastMessage
	unread_count: int
	total_messages: int

	def to_dict(self) -> dict:
		return {
			"other_user_id": self.other_user_id,
			"other_user": {"id": self.other_user_id, "nickname": self.other_user_nickname},
			"last_message": {
				"id": self.last_message.id,
				"content": self.last_message.content,
				"created_at": self.last_message.created_at.isoformat(),
				"is_from_current_user": self.last_message.is_from_current_user,
			},
			"unread_count": self.unread_count,
			"total_messages": self.total_messages,
		}


@dataclass(slots=True)
class MessageStats:
	total: int
	today_count: int
	active_conversations: int
	expired_messages: int
	average_messages_per_conversation: float
