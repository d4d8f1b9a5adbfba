"""Chat domain exports."""

from .models import Chat, Message, MessageStatus
from .policy import ChatPolicyError, can_edit, can_recall, minutes_left_to_edit, minutes_left_to_recall
from .service import ChatService

__all__ = [
	"Chat",
	"ChatPolicyError",
	"ChatService",
	"Message",
	"MessageStatus",
	"can_edit",
	"can_recall",
	"minutes_left_to_edit",
	"minutes_left_to_recall",
]
