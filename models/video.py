"""
Video Model - Database Schema for Uploaded Videos

EXPLANATION:
============
A video row holds metadata only; the media itself lives on an external CDN
and is referenced by URL.

Ownership: `user_id` is a user reference string. Videos uploaded after the
switch to object ids store the owner's id; older videos store the owner's
email. It is deliberately not a foreign key.

Engagement lives on the row itself:
- likes:    JSON list of user keys (emails) that liked the video
- comments: JSON list of embedded comment objects, in insertion
            (chronological) order

Comments are immutable once written; the only change is removal.
"""

from sqlalchemy import Column, String, Text, Boolean, DateTime, Integer, JSON
from datetime import datetime
from typing import Any, Dict, List, Optional
import uuid

from .database import Base

DEFAULT_TRANSFORMATION = {"height": 1920, "width": 1080, "quality": "100"}


def new_comment(user_id: str, user_name: str, text: str) -> Dict[str, Any]:
    """Build an embedded comment with a fresh id and the current time."""
    return {
        "id": str(uuid.uuid4()),
        "userId": user_id,
        "userName": user_name,
        "text": text,
        "createdAt": datetime.utcnow().isoformat()
    }


class Video(Base):

    __tablename__ = "videos"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Ownership (object id or legacy email)
    user_id = Column(String(255), nullable=True, index=True)
    user_name = Column(String(100), nullable=True)  # Uploader name snapshot

    # Metadata
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    video_url = Column(String(1000), nullable=False)
    thumbnail_url = Column(String(1000), nullable=True)
    controls = Column(Boolean, default=True)
    transformation = Column(JSON, default=lambda: dict(DEFAULT_TRANSFORMATION))

    # Engagement
    views = Column(Integer, default=0, nullable=False)
    likes = Column(JSON, default=list)
    comments = Column(JSON, default=list)

    # Audit fields
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Video(id={self.id}, title={self.title})>"

    @property
    def likes_list(self) -> List[str]:
        return list(self.likes or [])

    @property
    def comments_list(self) -> List[Dict[str, Any]]:
        return list(self.comments or [])

    def find_comment(self, comment_id: str) -> Optional[Dict[str, Any]]:
        for comment in self.comments_list:
            if comment.get("id") == comment_id:
                return comment
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "userName": self.user_name,
            "title": self.title,
            "description": self.description,
            "videoUrl": self.video_url,
            "thumbnailUrl": self.thumbnail_url,
            "controls": self.controls if self.controls is not None else True,
            "transformation": self.transformation or dict(DEFAULT_TRANSFORMATION),
            "views": self.views or 0,
            "likes": self.likes_list,
            "comments": self.comments_list,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
