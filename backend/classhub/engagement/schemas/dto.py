"""Wire schemas for the engagement API and realtime payloads.

Field names are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

from base64 import b64encode
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from classhub.engagement.domain import models


class _WireModel(BaseModel):
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EngagementRecordResponse(_WireModel):
	id: int
	post_id: int
	user_id: str
	created_at: datetime
	upvote: Optional[bool] = None

	@classmethod
	def from_model(cls, record: models.EngagementRecord) -> "EngagementRecordResponse":
		return cls(
			id=record.id,
			post_id=record.post_id,
			user_id=record.user_id,
			created_at=record.created_at,
			upvote=record.upvote,
		)


class LikeResponse(_WireModel):
	like: Optional[EngagementRecordResponse] = None
	liked: bool
	action: Literal["liked", "unliked"]
	like_count: int


class BookmarkResponse(_WireModel):
	bookmark: Optional[EngagementRecordResponse] = None
	bookmarked: bool
	bookmark_count: int
	action: Literal["added", "removed"]


class VoteResponse(_WireModel):
	id: int
	post_id: int
	user_id: str
	upvote: bool
	created_at: datetime
	action: Literal["added"] = "added"
	flipped: bool = False
	upvote_count: int
	downvote_count: int


class PostResponse(_WireModel):
	id: int
	author_id: str
	content: str
	image_url: Optional[str] = None
	status: models.PostStatus
	pinned: bool
	like_count: int
	comment_count: int
	bookmark_count: int
	upvote_count: int
	downvote_count: int
	created_at: datetime
	updated_at: datetime

	@classmethod
	def from_model(cls, post: models.Post) -> "PostResponse":
		return cls(**post.model_dump())


class CounterResponse(_WireModel):
	like_count: int
	comment_count: int
	bookmark_count: int
	upvote_count: int
	downvote_count: int

	@classmethod
	def from_model(cls, counters: models.CounterView) -> "CounterResponse":
		return cls(**counters.model_dump())


class CommentNode(_WireModel):
	id: int
	content: str
	author_id: str
	post_id: int
	parent_comment_id: Optional[int] = None
	is_reply: bool
	created_date: datetime
	replies: list["CommentNode"] = Field(default_factory=list)

	@classmethod
	def from_model(cls, comment: models.Comment, replies: list["CommentNode"] | None = None) -> "CommentNode":
		return cls(
			id=comment.id,
			content=comment.content,
			author_id=comment.author_id,
			post_id=comment.post_id,
			parent_comment_id=comment.parent_comment_id,
			is_reply=comment.is_reply,
			created_date=comment.created_at,
			replies=replies or [],
		)


class SubjectRef(_WireModel):
	kind: str
	id: str


class NotificationResponse(_WireModel):
	id: int
	kind: models.NotificationKind
	audience: models.Audience
	audience_key: str
	origin_user_id: str
	origin_user_name: Optional[str] = None
	subject: Optional[SubjectRef] = None
	chat_id: Optional[str] = None
	post_id: Optional[int] = None
	group_id: Optional[int] = None
	message_type: Optional[models.MessageType] = None
	content: Optional[str] = None
	media: Optional[str] = None
	message: str
	is_read: bool
	created_at: datetime
	updated_at: datetime

	@classmethod
	def from_model(cls, notification: models.Notification) -> "NotificationResponse":
		subject = None
		if notification.subject_kind and notification.subject_id:
			subject = SubjectRef(kind=notification.subject_kind, id=notification.subject_id)
		return cls(
			id=notification.id,
			kind=notification.kind,
			audience=notification.audience,
			audience_key=notification.audience_key,
			origin_user_id=notification.origin_user_id,
			origin_user_name=notification.origin_user_name,
			subject=subject,
			chat_id=notification.chat_id,
			post_id=notification.post_id,
			group_id=notification.group_id,
			message_type=notification.message_type,
			content=notification.content,
			media=b64encode(notification.media).decode() if notification.media else None,
			message=notification.message,
			is_read=notification.is_read,
			created_at=notification.created_at,
			updated_at=notification.updated_at,
		)


class ChatResponse(_WireModel):
	id: str
	sender_id: str
	recipient_id: str
	created_at: datetime
	# messages addressed to the caller that are not SEEN yet
	unread_count: int = 0

	@classmethod
	def from_model(cls, chat: models.Chat, *, unread_count: int = 0) -> "ChatResponse":
		return cls(**chat.model_dump(), unread_count=unread_count)


class OpenChatRequest(_WireModel):
	recipient_id: str = Field(min_length=1)


class MessageResponse(_WireModel):
	id: int
	chat_id: str
	sender_id: str
	receiver_id: str
	type: models.MessageType
	content: Optional[str] = None
	media_path: Optional[str] = None
	state: models.MessageState
	created_at: datetime

	@classmethod
	def from_model(cls, message: models.Message) -> "MessageResponse":
		return cls(**message.model_dump())


class SendMessageRequest(_WireModel):
	content: str = Field(min_length=1, max_length=4000)
	type: models.MessageType = models.MessageType.TEXT


class GroupCreateRequest(_WireModel):
	name: str = Field(min_length=1, max_length=120)
	description: Optional[str] = Field(default=None, max_length=2000)


class GroupResponse(_WireModel):
	id: int
	name: str
	description: Optional[str] = None
	owner_id: str
	archived: bool
	created_at: datetime

	@classmethod
	def from_model(cls, group: models.Group) -> "GroupResponse":
		return cls(**group.model_dump())


class AddMemberRequest(_WireModel):
	user_id: str = Field(min_length=1)
	co_admin: bool = False


class GroupMemberResponse(_WireModel):
	group_id: int
	user_id: str
	is_admin: bool
	is_co_admin: bool
	status: models.MemberStatus
	joined_at: datetime

	@classmethod
	def from_model(cls, member: models.GroupMember) -> "GroupMemberResponse":
		return cls(**member.model_dump())


__all__ = [
	"AddMemberRequest",
	"BookmarkResponse",
	"ChatResponse",
	"CommentNode",
	"CounterResponse",
	"EngagementRecordResponse",
	"GroupCreateRequest",
	"GroupMemberResponse",
	"GroupResponse",
	"LikeResponse",
	"MessageResponse",
	"NotificationResponse",
	"OpenChatRequest",
	"PostResponse",
	"SendMessageRequest",
	"SubjectRef",
	"VoteResponse",
]
