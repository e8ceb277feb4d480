import asyncio

import pytest

import security
from errors import ValidationError
from security import verify_password
from store import UserStore

pytestmark = pytest.mark.anyio

FIELDS = {
    "username": "  MockUsername ",
    "displayName": "Mock User",
    "email": " MockUser@Example.com ",
    "password": "mockPassword123",
}


async def test_create_canonicalizes_identity_and_hashes_password(store):
    user = await store.create(FIELDS, verification_token="abc")

    assert user.id is not None
    assert user.username == "mockusername"
    assert user.email == "mockuser@example.com"
    assert user.password_hash != "mockPassword123"
    assert verify_password("mockPassword123", user.password_hash)
    assert user.is_verified is False
    assert user.verification_token == "abc"
    assert user.verification_sent_at is not None


async def test_create_without_password_for_federated_accounts(store):
    user = await store.create(
        {"username": "fed", "displayName": "Fed", "email": "fed@example.com"}
    )
    assert user.password_hash is None
    assert user.has_password is False


@pytest.mark.parametrize(
    "overrides, field",
    [
        ({"username": "bad name!"}, "username"),
        ({"email": "not-an-email"}, "email"),
        ({"password": "short"}, "password"),
        ({"displayName": "x" * 51}, "displayName"),
        ({"bio": "x" * 161}, "bio"),
        ({"profileImage": "ftp://example.com/me.png"}, "profileImage"),
    ],
)
async def test_create_rejects_malformed_fields(store, overrides, field):
    with pytest.raises(ValidationError) as excinfo:
        await store.create({**FIELDS, **overrides})
    assert field in excinfo.value.details


async def test_create_requires_identity_fields(store):
    with pytest.raises(ValidationError) as excinfo:
        await store.create({"password": "mockPassword123"})
    assert {"username", "displayName", "email"} <= set(excinfo.value.details)


async def test_duplicate_email_is_a_validation_error(store):
    await store.create(FIELDS)
    with pytest.raises(ValidationError) as excinfo:
        await store.create({**FIELDS, "username": "someoneelse"})
    assert "email" in excinfo.value.details


async def test_duplicate_username_is_case_insensitive(store):
    await store.create(FIELDS)
    with pytest.raises(ValidationError) as excinfo:
        await store.create({**FIELDS, "username": "MOCKUSERNAME", "email": "b@example.com"})
    assert "username" in excinfo.value.details


async def test_lookups_are_case_insensitive(store):
    user = await store.create(FIELDS, verification_token="tok")

    assert (await store.find_by_email("MOCKUSER@example.com")).id == user.id
    assert (await store.find_by_username("MockUserName")).id == user.id
    assert (await store.find_by_token("tok")).id == user.id
    assert await store.find_by_token("other") is None
    assert await store.find_by_token("") is None


async def test_unrelated_update_keeps_existing_hash(store):
    user = await store.create(FIELDS)
    original_hash = user.password_hash

    await store.update(user, {"bio": "Eats greens."})

    assert user.password_hash == original_hash
    assert user.bio == "Eats greens."


async def test_password_update_rehashes(store):
    user = await store.create(FIELDS)
    original_hash = user.password_hash

    await store.update(user, {"password": "anotherPassword1"})

    assert user.password_hash != original_hash
    assert verify_password("anotherPassword1", user.password_hash)
    with pytest.raises(ValidationError):
        await store.update(user, {"password": "short"})


async def test_update_rejects_identity_fields(store):
    user = await store.create(FIELDS)
    with pytest.raises(ValidationError):
        await store.update(user, {"password_hash": "plain"})


@pytest.mark.parametrize(
    "fields, field",
    [
        ({"bio": "x" * 161}, "bio"),
        ({"display_name": "y" * 51}, "displayName"),
        ({"displayName": ""}, "displayName"),
        ({"display_name": None}, "displayName"),
        ({"profile_image": "javascript:alert(1)"}, "profileImage"),
    ],
)
async def test_update_enforces_profile_field_rules(store, session_factory, fields, field):
    user = await store.create({**FIELDS, "bio": "Original bio."})

    with pytest.raises(ValidationError) as excinfo:
        await store.update(user, fields)

    assert field in excinfo.value.details
    async with session_factory() as other:
        stored = await UserStore(other).get(user.id)
    assert stored.bio == "Original bio."
    assert stored.display_name == "Mock User"
    assert stored.profile_image is None


@pytest.mark.parametrize(
    "rejected",
    [
        {"bio": "leaked", "password_hash": "plain"},
        {"bio": "leaked", "password": "short"},
        {"bio": "leaked", "email": "other@example.com"},
    ],
)
async def test_rejected_update_leaves_the_user_untouched(store, rejected):
    user = await store.create(FIELDS)
    original_hash = user.password_hash

    with pytest.raises(ValidationError):
        await store.update(user, rejected)
    assert user.bio is None

    # a later unrelated commit on the same session must not carry the rejected values
    await store.link_auth_method(user, "google", "123")
    await store.session.refresh(user)
    assert user.bio is None
    assert user.email == "mockuser@example.com"
    assert user.password_hash == original_hash


async def test_mark_verified_clears_token(store):
    user = await store.create(FIELDS, verification_token="tok")

    assert await store.mark_verified(user) is True

    assert user.is_verified is True
    assert user.verification_token is None
    assert await store.find_by_token("tok") is None


async def test_link_auth_method_is_idempotent(store):
    user = await store.create(FIELDS)

    await store.link_auth_method(user, "google", "123")
    await store.link_auth_method(user, "google", "123")

    assert [(m.provider, m.provider_id) for m in user.auth_methods] == [("google", "123")]
    found = await store.find_by_auth_method("google", "123")
    assert found is not None and found.id == user.id
    assert await store.find_by_auth_method("google", "999") is None


async def test_verification_token_is_consumed_once(store, session_factory):
    user = await store.create(FIELDS, verification_token="tok")

    async with session_factory() as other:
        other_store = UserStore(other)
        stale = await other_store.find_by_token("tok")
        assert stale is not None

        assert await store.mark_verified(user) is True
        assert await other_store.mark_verified(stale) is False

    assert user.is_verified is True


async def test_hashing_failure_propagates_and_persists_nothing(store, monkeypatch):
    def broken_hash(secret, **kwargs):
        raise RuntimeError("hash backend unavailable")

    monkeypatch.setattr(security.pwd_context, "hash", broken_hash)

    with pytest.raises(RuntimeError):
        await store.create(FIELDS)
    assert await store.find_by_email("mockuser@example.com") is None


@pytest.mark.parametrize(
    "first, second",
    [
        ({"username": "firstuser"}, {"username": "seconduser"}),
        ({"email": "first@example.com"}, {"email": "second@example.com"}),
    ],
)
async def test_concurrent_creates_with_a_shared_identity_have_one_winner(
    session_factory, first, second
):
    async def create(overrides):
        async with session_factory() as session:
            return await UserStore(session).create({**FIELDS, **overrides})

    results = await asyncio.gather(create(first), create(second), return_exceptions=True)

    created = [r for r in results if not isinstance(r, BaseException)]
    rejected = [r for r in results if isinstance(r, BaseException)]
    assert len(created) == 1
    assert len(rejected) == 1
    assert isinstance(rejected[0], ValidationError)
