"""Tests for the profile synchronizer."""

import pytest

from salesdesk.core.errors import ProfileInvalid, ProfileNotFound, StoreUnavailable
from salesdesk.schemas.principal import Principal
from salesdesk.schemas.profile import Role
from salesdesk.services.profile_sync import ProfileSynchronizer


@pytest.mark.asyncio
async def test_allow_listed_email_becomes_approved_admin(synchronizer, admin_principal):
    profile = await synchronizer.ensure_profile(admin_principal)

    assert profile.role == Role.admin
    assert profile.approved is True
    assert profile.uid == admin_principal.uid
    assert profile.created_at is not None


@pytest.mark.asyncio
async def test_other_email_becomes_unapproved_employee(synchronizer, bob):
    profile = await synchronizer.ensure_profile(bob)

    assert profile.role == Role.employee
    assert profile.approved is False


@pytest.mark.asyncio
async def test_allow_list_lookup_uses_the_exact_email(store):
    store.seed("admins", "alice@x.com", {})
    sync = ProfileSynchronizer(store)

    alice = await sync.ensure_profile(Principal(uid="a", email="alice@x.com"))
    mallory = await sync.ensure_profile(Principal(uid="m", email="mallory@x.com"))

    assert (alice.role, alice.approved) == (Role.admin, True)
    assert (mallory.role, mallory.approved) == (Role.employee, False)


@pytest.mark.asyncio
async def test_principal_without_email_is_employee_and_skips_lookup(store, synchronizer):
    profile = await synchronizer.ensure_profile(Principal(uid="anon"))

    assert profile.role == Role.employee
    assert not any(collection == "admins" for collection, _ in store.reads)


@pytest.mark.asyncio
async def test_second_call_is_a_pure_read(store, synchronizer, bob):
    first = await synchronizer.ensure_profile(bob)
    writes_after_first = len(store.writes)

    second = await synchronizer.ensure_profile(bob)

    assert len(store.writes) == writes_after_first
    assert (second.role, second.approved, second.created_at) == (first.role, first.approved, first.created_at)


@pytest.mark.asyncio
async def test_existing_profile_is_not_overwritten_from_principal(store, synchronizer, bob):
    await synchronizer.ensure_profile(bob)
    renamed = Principal(uid=bob.uid, email="bob@elsewhere.com", display_name="Robert")

    profile = await synchronizer.ensure_profile(renamed)

    assert profile.display_name == "Bob"
    assert profile.email == "bob@co.com"


@pytest.mark.asyncio
async def test_existing_role_survives_allow_list_changes(store, synchronizer, bob):
    await synchronizer.ensure_profile(bob)
    store.seed("admins", bob.email, {})

    profile = await synchronizer.ensure_profile(bob)

    assert profile.role == Role.employee


@pytest.mark.asyncio
async def test_display_name_defaults_to_email_at_creation(synchronizer, carol):
    profile = await synchronizer.ensure_profile(carol)

    assert profile.display_name == "carol@co.com"


@pytest.mark.asyncio
async def test_racing_creation_keeps_first_writer_fields(store, synchronizer, bob):
    """Another tab creates the profile between our read and our write."""
    from datetime import datetime, timezone

    first_created = datetime(2023, 6, 1, tzinfo=timezone.utc)
    store.before_write = lambda: store.seed("users", bob.uid, {
        "uid": bob.uid,
        "email": bob.email,
        "displayName": "Bob",
        "photoURL": None,
        "role": "employee",
        "approved": True,
        "createdAt": first_created,
    })

    profile = await synchronizer.ensure_profile(bob)

    assert profile.created_at == first_created
    assert profile.approved is True
    assert profile.role == Role.employee


@pytest.mark.asyncio
async def test_store_failure_surfaces_and_writes_nothing(store, synchronizer, bob):
    store.unavailable = True

    with pytest.raises(StoreUnavailable):
        await synchronizer.ensure_profile(bob)

    assert store.document("users", bob.uid) is None


@pytest.mark.asyncio
async def test_refresh_reads_current_document(store, synchronizer, bob):
    await synchronizer.ensure_profile(bob)
    store.remote_update("users", bob.uid, {"approved": True})

    profile = await synchronizer.refresh(bob.uid)

    assert profile.approved is True


@pytest.mark.asyncio
async def test_refresh_missing_profile_raises(synchronizer):
    with pytest.raises(ProfileNotFound):
        await synchronizer.refresh("nobody")


@pytest.mark.asyncio
async def test_refresh_rejects_malformed_document(store, synchronizer):
    store.seed("users", "broken", {"email": "x@co.com"})

    with pytest.raises(ProfileInvalid):
        await synchronizer.refresh("broken")


@pytest.mark.asyncio
async def test_subscribe_delivers_current_then_changes_until_unsubscribed(store, synchronizer, bob):
    await synchronizer.ensure_profile(bob)
    seen = []

    subscription = synchronizer.subscribe(bob.uid, seen.append)
    store.remote_update("users", bob.uid, {"approved": True})
    subscription.unsubscribe()
    store.remote_update("users", bob.uid, {"approved": False})

    assert [p.approved for p in seen] == [False, True]
    assert store.listener_count("users", bob.uid) == 0
    subscription.unsubscribe()  # idempotent


@pytest.mark.asyncio
async def test_subscribe_skips_malformed_updates(store, synchronizer, bob):
    await synchronizer.ensure_profile(bob)
    seen = []
    synchronizer.subscribe(bob.uid, seen.append)

    store.remote_update("users", bob.uid, {"role": "superuser"})

    assert len(seen) == 1


@pytest.mark.asyncio
async def test_watch_streams_profiles_and_unsubscribes_on_close(store, synchronizer, bob):
    await synchronizer.ensure_profile(bob)
    stream = synchronizer.watch(bob.uid)

    first = await stream.__anext__()
    store.remote_update("users", bob.uid, {"approved": True})
    second = await stream.__anext__()
    await stream.aclose()

    assert (first.approved, second.approved) == (False, True)
    assert store.listener_count("users", bob.uid) == 0
