"""
User References - One Way to Name a User

EXPLANATION:
============
User records were first identified by email and later by an opaque object
id (a uuid4 string). Old rows still carry the email form: a video's owner,
an entry in a followers list, a like. Instead of comparing raw strings in
every operation, all code goes through this module:

- UserRef: a tagged value {kind: OBJECT_ID | LEGACY_EMAIL, value}
- UserRef.parse(raw): classifies a stored or client-supplied string
- aliases(user): the set of every string that may name the user
- refers_to(raw, user) / contains_user(refs, user): membership tests
  that accept either form
- without_user(refs, user): a copy of a list with every alias removed

Resolution of a UserRef to a User row lives in the identity store
(IdentityStore.resolve), which tries the object id first and falls back
to the email.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Set


class UserRefKind(Enum):
    OBJECT_ID = "object_id"
    LEGACY_EMAIL = "legacy_email"


@dataclass(frozen=True)
class UserRef:
    kind: UserRefKind
    value: str

    @classmethod
    def parse(cls, raw: str) -> "UserRef":
        """Anything with an '@' is an email; everything else is an object id."""
        value = (raw or "").strip()
        if "@" in value:
            return cls(UserRefKind.LEGACY_EMAIL, value.lower())
        return cls(UserRefKind.OBJECT_ID, value)

    @property
    def is_email(self) -> bool:
        return self.kind is UserRefKind.LEGACY_EMAIL

    def __str__(self) -> str:
        return self.value


def aliases(user) -> Set[str]:
    """Every string that identifies `user` (object id and email)."""
    names = {user.id}
    if user.email:
        names.add(user.email.lower())
    return names


def _normalize(raw: Optional[str]) -> str:
    return str(UserRef.parse(raw)) if raw else ""


def refers_to(raw: Optional[str], user) -> bool:
    """True when the stored reference `raw` names `user` in either form."""
    return bool(raw) and _normalize(raw) in aliases(user)


def contains_user(refs: Optional[Iterable[str]], user) -> bool:
    """Membership test over a relationship list; a missing list is empty."""
    return any(refers_to(ref, user) for ref in (refs or []))


def without_user(refs: Optional[Iterable[str]], user) -> List[str]:
    """Copy of `refs` with every alias of `user` removed, order preserved."""
    return [ref for ref in (refs or []) if not refers_to(ref, user)]


def contains_ref(refs: Optional[Iterable[str]], raw: str) -> bool:
    """Membership test for a bare reference when no user row is at hand."""
    target = _normalize(raw)
    return any(_normalize(ref) == target for ref in (refs or []))


def without_ref(refs: Optional[Iterable[str]], raw: str) -> List[str]:
    target = _normalize(raw)
    return [ref for ref in (refs or []) if _normalize(ref) != target]
