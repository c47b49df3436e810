"""Domain models for posts, engagement records, notifications, chats and groups."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class RelationKind(str, Enum):
	LIKE = "like"
	BOOKMARK = "bookmark"
	VOTE = "vote"


class ToggleAction(str, Enum):
	ADDED = "added"
	REMOVED = "removed"
	CHANGED = "changed"


class CounterField(str, Enum):
	"""Denormalised counter columns on ``posts``."""

	LIKES = "like_count"
	COMMENTS = "comment_count"
	BOOKMARKS = "bookmark_count"
	UPVOTES = "upvote_count"
	DOWNVOTES = "downvote_count"


class PostStatus(str, Enum):
	PENDING = "PENDING"
	APPROVED = "APPROVED"
	REJECTED = "REJECTED"


class NotificationKind(str, Enum):
	NEW_POST = "NEW_POST"
	POST_LIKED = "POST_LIKED"
	POST_BOOKMARKED = "POST_BOOKMARKED"
	POST_UPVOTED = "POST_UPVOTED"
	POST_DOWNVOTED = "POST_DOWNVOTED"
	NEW_COMMENT = "NEW_COMMENT"
	POST_APPROVED = "POST_APPROVED"
	MESSAGE = "MESSAGE"
	SEEN = "SEEN"
	IMAGE = "IMAGE"
	MEMBER_ADDED = "MEMBER_ADDED"
	MEMBER_REMOVED = "MEMBER_REMOVED"
	MEMBER_LEFT = "MEMBER_LEFT"
	CO_ADMIN_ASSIGNED = "CO_ADMIN_ASSIGNED"
	GROUP_CREATED = "GROUP_CREATED"
	GROUP_DELETED = "GROUP_DELETED"
	GROUP_ARCHIVED = "GROUP_ARCHIVED"


ENGAGEMENT_KINDS = frozenset(
	{
		NotificationKind.POST_LIKED,
		NotificationKind.POST_BOOKMARKED,
		NotificationKind.POST_UPVOTED,
		NotificationKind.POST_DOWNVOTED,
		NotificationKind.NEW_COMMENT,
	}
)

CHAT_KINDS = frozenset({NotificationKind.MESSAGE, NotificationKind.SEEN, NotificationKind.IMAGE})


class Audience(str, Enum):
	USER = "user"
	TOPIC = "topic"
	GROUP = "group"
	BROADCAST = "broadcast"


class MessageType(str, Enum):
	TEXT = "TEXT"
	IMAGE = "IMAGE"
	FILE = "FILE"


class MessageState(str, Enum):
	SENT = "SENT"
	DELIVERED = "DELIVERED"
	SEEN = "SEEN"


class MemberStatus(str, Enum):
	ACTIVE = "ACTIVE"
	LEFT = "LEFT"


class CounterView(BaseModel):
	"""Aggregate counters stored on a post."""

	like_count: int = 0
	comment_count: int = 0
	bookmark_count: int = 0
	upvote_count: int = 0
	downvote_count: int = 0

	model_config = ConfigDict(from_attributes=True)

	def get(self, field: CounterField) -> int:
		return int(getattr(self, field.value))


class Post(BaseModel):
	"""Represents a social post with its denormalised counters."""

	id: int
	author_id: str
	content: str
	image_url: Optional[str] = None
	status: PostStatus = PostStatus.PENDING
	pinned: bool = False
	like_count: int = 0
	comment_count: int = 0
	bookmark_count: int = 0
	upvote_count: int = 0
	downvote_count: int = 0
	created_at: datetime
	updated_at: datetime

	model_config = ConfigDict(from_attributes=True)

	def counters(self) -> CounterView:
		return CounterView(
			like_count=self.like_count,
			comment_count=self.comment_count,
			bookmark_count=self.bookmark_count,
			upvote_count=self.upvote_count,
			downvote_count=self.downvote_count,
		)


class EngagementRecord(BaseModel):
	"""A like, bookmark or vote; ``upvote`` is only set for votes."""

	id: int
	kind: RelationKind
	post_id: int
	user_id: str
	upvote: Optional[bool] = None
	created_at: datetime

	model_config = ConfigDict(from_attributes=True)


class Comment(BaseModel):
	id: int
	post_id: int
	author_id: str
	content: str
	parent_comment_id: Optional[int] = None
	approved: bool = True
	created_at: datetime

	model_config = ConfigDict(from_attributes=True)

	@property
	def is_reply(self) -> bool:
		return self.parent_comment_id is not None


@dataclass(slots=True)
class NotificationDraft:
	"""Notification fields known before the store assigns id and timestamps."""

	kind: NotificationKind
	audience: Audience
	audience_key: str
	origin_user_id: str
	message: str
	origin_user_name: Optional[str] = None
	subject_kind: Optional[str] = None
	subject_id: Optional[str] = None
	chat_id: Optional[str] = None
	post_id: Optional[int] = None
	group_id: Optional[int] = None
	message_type: Optional[MessageType] = None
	content: Optional[str] = None
	media: Optional[bytes] = None


class Notification(BaseModel):
	"""Durable notification row paired with its routing audience."""

	id: int
	kind: NotificationKind
	audience: Audience
	audience_key: str
	origin_user_id: str
	origin_user_name: Optional[str] = None
	subject_kind: Optional[str] = None
	subject_id: Optional[str] = None
	chat_id: Optional[str] = None
	post_id: Optional[int] = None
	group_id: Optional[int] = None
	message_type: Optional[MessageType] = None
	content: Optional[str] = None
	media: Optional[bytes] = None
	message: str
	is_read: bool = False
	created_at: datetime
	updated_at: datetime

	model_config = ConfigDict(from_attributes=True)


class Chat(BaseModel):
	"""One-to-one conversation between two users."""

	id: str
	sender_id: str
	recipient_id: str
	created_at: datetime

	model_config = ConfigDict(from_attributes=True)

	def has_participant(self, user_id: str) -> bool:
		return user_id in (self.sender_id, self.recipient_id)

	def other_participant(self, user_id: str) -> str:
		return self.recipient_id if user_id == self.sender_id else self.sender_id


class Message(BaseModel):
	id: int
	chat_id: str
	sender_id: str
	receiver_id: str
	type: MessageType = MessageType.TEXT
	content: Optional[str] = None
	media_path: Optional[str] = None
	state: MessageState = MessageState.SENT
	created_at: datetime

	model_config = ConfigDict(from_attributes=True)


class Group(BaseModel):
	id: int
	name: str
	description: Optional[str] = None
	owner_id: str
	archived: bool = False
	created_at: datetime

	model_config = ConfigDict(from_attributes=True)


class GroupMember(BaseModel):
	group_id: int
	user_id: str
	is_admin: bool = False
	is_co_admin: bool = False
	status: MemberStatus = MemberStatus.ACTIVE
	joined_at: datetime

	model_config = ConfigDict(from_attributes=True)

	@property
	def is_active(self) -> bool:
		return self.status is MemberStatus.ACTIVE

	@property
	def can_manage(self) -> bool:
		return self.is_active and (self.is_admin or self.is_co_admin)
