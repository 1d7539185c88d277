"""Tests for the account store."""

import pytest

from connectauth.auth.errors import ConfigurationError, EmailAlreadyRegisteredError, ProviderAlreadyLinkedError
from connectauth.auth.providers import Provider
from connectauth.auth.store import AccountStore, UserSchema


@pytest.mark.asyncio
async def test_create_and_find_user(store):
    user = await store.create_user(username="gina_1a2b3c4d", email="gina@example.com")
    await store.commit()

    assert await store.find_user_by_id(user.id) is user
    assert await store.find_user_by_field("email", "gina@example.com") is user
    assert not store.has_password(user)


@pytest.mark.asyncio
async def test_duplicate_email_is_email_registered(store, test_user):
    with pytest.raises(EmailAlreadyRegisteredError):
        await store.create_user(username="someone", email=test_user.email)


@pytest.mark.asyncio
async def test_connection_lifecycle(store, test_user):
    connection = await store.create_connection(Provider.GITHUB, "99", test_user.id, "alice-gh")
    await store.commit()

    assert await store.find_connection(Provider.GITHUB, "99") is connection
    assert await store.find_user_connection(test_user.id, Provider.GITHUB) is connection
    assert await store.count_connections(test_user.id) == 1

    record = store.to_record(connection)
    assert record.provider == "github"
    assert record.user_id == test_user.id

    await store.delete_connection(connection)
    await store.commit()

    assert await store.find_connection(Provider.GITHUB, "99") is None
    assert await store.count_connections(test_user.id) == 0


@pytest.mark.asyncio
async def test_identity_cannot_point_at_two_users(store, make_user, connect, test_user):
    """Test that the unique constraint stops a racing second link."""
    other = await make_user("bob", email="bob@example.com")
    await connect(test_user, "google", "g-1")

    with pytest.raises(ProviderAlreadyLinkedError):
        await store.create_connection(Provider.GOOGLE, "g-1", other.id, "bob")


@pytest.mark.asyncio
async def test_one_connection_per_provider_per_user(store, connect, test_user):
    await connect(test_user, "google", "g-1")

    with pytest.raises(ProviderAlreadyLinkedError):
        await store.create_connection(Provider.GOOGLE, "g-2", test_user.id, "alice")


@pytest.mark.asyncio
async def test_list_connections_in_creation_order(store, connect, test_user):
    await connect(test_user, "github", "1")
    await connect(test_user, "apple", "2")

    providers = [c.provider for c in await store.list_connections(test_user.id)]

    assert providers == ["github", "apple"]


@pytest.mark.asyncio
async def test_unknown_user_field_rejected(db_session):
    with pytest.raises(ConfigurationError):
        AccountStore(db_session, UserSchema(username_field="login"))


@pytest.mark.asyncio
async def test_email_field_not_required_without_email_column(db_session):
    store = AccountStore(db_session, UserSchema(email_field="mail", has_email_field=False))

    assert store.schema.has_email_field is False
