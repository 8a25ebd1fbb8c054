import pytest

from conftest import stored_session
from smartsched.errors import AccessDenied, NotAuthenticated
from smartsched.gate import ADMIN_ROLES, SCHEDULING_ROLES, RequestGate
from smartsched.session import SessionManager
from smartsched.storage import MemoryCredentialStore


def manager(http, config, data=None):
    return SessionManager(store=MemoryCredentialStore(data), http=http, config=config)


def test_gate_requires_session(http, config):
    with pytest.raises(NotAuthenticated):
        RequestGate(manager(http, config)).require()


def test_gate_allows_listed_role(http, config):
    session = RequestGate(manager(http, config, stored_session()), SCHEDULING_ROLES).require()
    assert session.identity.name == "maria"


def test_gate_denies_other_roles(http, config):
    with pytest.raises(AccessDenied):
        RequestGate(manager(http, config, stored_session()), ADMIN_ROLES).require()


def test_gate_closes_after_logout(sessions):
    gate = RequestGate(sessions, SCHEDULING_ROLES)
    gate.require()
    sessions.logout()
    with pytest.raises(NotAuthenticated):
        gate.require()
