import pytest

from salesdesk.schemas.principal import Principal
from salesdesk.services.profile_sync import ProfileSynchronizer
from salesdesk.services.session import SessionContext

from tests.fakes import FakeIdentityClient, InMemoryDocumentStore

ADMIN_EMAIL = "admin@co.com"


@pytest.fixture
def store() -> InMemoryDocumentStore:
    store = InMemoryDocumentStore()
    store.seed("admins", ADMIN_EMAIL, {})
    return store


@pytest.fixture
def synchronizer(store) -> ProfileSynchronizer:
    return ProfileSynchronizer(store)


@pytest.fixture
def admin_principal() -> Principal:
    return Principal(uid="uid-admin", email=ADMIN_EMAIL, display_name="Ada Admin")


@pytest.fixture
def bob() -> Principal:
    return Principal(uid="uid-bob", email="bob@co.com", display_name="Bob")


@pytest.fixture
def carol() -> Principal:
    return Principal(uid="uid-carol", email="carol@co.com", display_name=None)


@pytest.fixture
def identity(admin_principal, bob, carol) -> FakeIdentityClient:
    return FakeIdentityClient({
        "token-admin": admin_principal,
        "token-bob": bob,
        "token-carol": carol,
    })


@pytest.fixture
def session(identity, synchronizer) -> SessionContext:
    return SessionContext(identity, synchronizer)
