"""
User Model - Database Schema for Identities and the Social Graph

EXPLANATION:
============
One row per account. Besides credentials and profile fields, a user row
carries its side of the social graph as JSON lists of user references:

- followers:     refs of users who follow this user
- following:     refs of users this user follows
- blocked_users: refs this user has blocked (visible only to this user)

"A follows B" is stored twice: B's id in A.following and A's id in
B.followers. The relationship agent always writes both rows in one
transaction.

Legacy rows may hold NULL instead of a list, and may hold emails instead of
object ids inside the lists; the *_list properties and models.user_ref
smooth over both.

Security: passwords are only stored as bcrypt hashes and the hash never
leaves this class through to_dict().
"""

from sqlalchemy import Column, String, DateTime, JSON
from datetime import datetime
from typing import List
import uuid

from .database import Base


class User(Base):

    __tablename__ = "users"

    # Primary Key - the "object id" form of a user reference
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Authentication fields
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)  # Bcrypt hash

    # Profile fields
    name = Column(String(100), nullable=True)
    username = Column(String(50), unique=True, nullable=True, index=True)
    image = Column(String(500), nullable=True)

    # Social graph (lists of user reference strings)
    followers = Column(JSON, default=list)
    following = Column(JSON, default=list)
    blocked_users = Column(JSON, default=list)

    # Audit fields
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email})>"

    @property
    def followers_list(self) -> List[str]:
        return list(self.followers or [])

    @property
    def following_list(self) -> List[str]:
        return list(self.following or [])

    @property
    def blocked_list(self) -> List[str]:
        return list(self.blocked_users or [])

    def to_dict(self) -> dict:
        """
        Full record for the owner of the account, without the password hash.

        Relationship lists are included so clients can render the
        followers/following dialogs.
        """
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "username": self.username,
            "image": self.image,
            "followers": self.followers_list,
            "following": self.following_list,
            "blockedUsers": self.blocked_list,
            "followersCount": len(self.followers_list),
            "followingCount": len(self.following_list),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

    def to_public_dict(self) -> dict:
        """Return only public information (for other users to see)."""
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "username": self.username,
            "image": self.image
        }
