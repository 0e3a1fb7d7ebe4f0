"""
marginalia.services.serializers — ORM → JSON-ready dict builders
=================================================================

One builder per model so every endpoint renders the same shape for the
same row.  Datetimes are emitted as ISO-8601 strings.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from marginalia.database.models import (
    Comment,
    Discussion,
    DiscussionParticipant,
    Note,
    Story,
    User,
)


def isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def user_summary(user: User | None) -> dict[str, Any] | None:
    if user is None:
        return None
    return {"id": user.id, "name": user.name, "image": user.image}


def user_profile(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "image": user.image,
        "created_at": isoformat(user.created_at),
    }


def discussion_to_dict(discussion: Discussion) -> dict[str, Any]:
    return {
        "id": discussion.id,
        "title": discussion.title,
        "content": discussion.content,
        "book_title": discussion.book_title,
        "book_author": discussion.book_author,
        "topics": list(discussion.topics or []),
        "tags": list(discussion.tags or []),
        "image_urls": list(discussion.image_urls or []),
        "privacy": discussion.privacy,
        "scheduled_at": isoformat(discussion.scheduled_at),
        "max_participants": discussion.max_participants,
        "author_id": discussion.author_id,
        "author": user_summary(discussion.author),
        "created_at": isoformat(discussion.created_at),
    }


def participant_to_dict(participant: DiscussionParticipant) -> dict[str, Any]:
    """Flat participant row (management views)."""
    user = participant.user
    return {
        "id": participant.id,
        "discussion_id": participant.discussion_id,
        "user_id": participant.user_id,
        "name": user.name if user else None,
        "image": user.image if user else None,
        "status": participant.status,
        "created_at": isoformat(participant.created_at),
    }


def participation_record(participant: DiscussionParticipant | None) -> dict[str, Any] | None:
    """The bare participation record, without user details."""
    if participant is None:
        return None
    return {
        "id": participant.id,
        "discussion_id": participant.discussion_id,
        "user_id": participant.user_id,
        "status": participant.status,
        "created_at": isoformat(participant.created_at),
    }


def story_to_dict(story: Story) -> dict[str, Any]:
    return {
        "id": story.id,
        "title": story.title,
        "content": story.content,
        "category": story.category,
        "image_urls": list(story.image_urls or []),
        "author_id": story.author_id,
        "author": user_summary(story.author),
        "created_at": isoformat(story.created_at),
        "updated_at": isoformat(story.updated_at),
    }


def comment_to_dict(comment: Comment) -> dict[str, Any]:
    return {
        "id": comment.id,
        "content": comment.content,
        "story_id": comment.story_id,
        "user_id": comment.user_id,
        "user": user_summary(comment.user),
        "created_at": isoformat(comment.created_at),
    }


def note_to_dict(note: Note) -> dict[str, Any]:
    return {
        "id": note.id,
        "sender_id": note.sender_id,
        "sender_name": note.sender.name if note.sender else "Unknown",
        "receiver_id": note.receiver_id,
        "receiver_name": note.receiver.name if note.receiver else "Unknown",
        "title": note.title,
        "content": note.content,
        "created_at": isoformat(note.created_at),
        "is_read": note.is_read,
    }
