import pytest

from travelbunk.repositories.user_repository import UserExistsError, normalize_id


def test_normalize_id():
    assert normalize_id("  Alice@X.COM ") == "alice@x.com"
    assert normalize_id(None) == ""


async def test_create_and_find(directory):
    created = await directory.create("Alice@X.com", first_name="Alice", college="IIT Bombay")

    found = await directory.find("alice@x.com")

    assert found.id == created.id
    assert found.email == "alice@x.com"
    assert found.display_name == "Alice"
    assert found.incoming_requests == []
    assert found.outgoing_requests == []
    assert found.connections == []


async def test_create_rejects_duplicate_email(directory):
    await directory.create("alice@x.com", first_name="Alice")

    with pytest.raises(UserExistsError) as excinfo:
        await directory.create("ALICE@x.com", first_name="Alice again")

    assert excinfo.value.__suppress_context__
    assert excinfo.value.__cause__ is None


async def test_find_missing_user(directory):
    assert await directory.find("nobody@x.com") is None


async def test_find_for_update_returns_existing_users_only(directory, alice_and_bob):
    users = await directory.find_for_update(["bob@x.com", "alice@x.com", "nobody@x.com"])

    assert sorted(users) == ["alice@x.com", "bob@x.com"]


async def test_update_is_partial(directory, alice_and_bob, reload):
    await directory.update("alice@x.com", {"bio": "Backpacking across Kerala"})
    await directory.commit()

    alice = await reload("alice@x.com")
    assert alice.bio == "Backpacking across Kerala"
    assert alice.first_name == "Alice"


async def test_display_name_falls_back_to_email(directory):
    user = await directory.create("nameless@x.com")

    assert user.display_name == "nameless@x.com"
