"""
Tests for user references and the identity store's resolution rules.
"""

from types import SimpleNamespace

import pytest

from models.database import session_scope
from models.user_ref import (
    UserRef, UserRefKind, aliases, contains_ref, contains_user,
    refers_to, without_ref, without_user
)
from stores.identity_store import IdentityStore


def fake_user(user_id="0b7c", email="Pat@Example.com"):
    return SimpleNamespace(id=user_id, email=email)


class TestUserRef:

    def test_email_form_is_detected_and_lowercased(self):
        ref = UserRef.parse("  Pat@Example.com ")

        assert ref.kind is UserRefKind.LEGACY_EMAIL
        assert ref.value == "pat@example.com"
        assert ref.is_email

    def test_anything_else_is_an_object_id(self):
        ref = UserRef.parse("64f1c0ffee")

        assert ref.kind is UserRefKind.OBJECT_ID
        assert ref.value == "64f1c0ffee"

    def test_both_aliases_name_the_user(self):
        user = fake_user()

        assert aliases(user) == {"0b7c", "pat@example.com"}
        assert refers_to("0b7c", user)
        assert refers_to("PAT@example.com", user)
        assert not refers_to("someone@example.com", user)
        assert not refers_to(None, user)

    def test_list_helpers_handle_mixed_and_missing_lists(self):
        user = fake_user()
        refs = ["pat@example.com", "other", "0b7c"]

        assert contains_user(refs, user)
        assert not contains_user(None, user)
        assert without_user(refs, user) == ["other"]
        assert without_user(None, user) == []
        assert contains_ref(refs, " other ")
        assert not contains_ref(refs, "OTHER")
        assert without_ref(refs, "other") == ["pat@example.com", "0b7c"]


class TestIdentityResolution:

    @pytest.mark.asyncio
    async def test_resolve_by_id_then_email(self, make_user):
        user = await make_user(email="pat@example.com")

        async with session_scope() as session:
            identities = IdentityStore(session)
            by_id = await identities.resolve(user["id"])
            by_email = await identities.resolve("PAT@example.com")
            missing = await identities.resolve("nobody")

        assert by_id.id == user["id"]
        assert by_email.id == user["id"]
        assert missing is None

    @pytest.mark.asyncio
    async def test_get_many_deduplicates_aliases(self, make_user):
        user = await make_user(email="pat@example.com")

        async with session_scope() as session:
            found = await IdentityStore(session).get_many([user["id"], "pat@example.com"])

        assert [u.id for u in found] == [user["id"]]
