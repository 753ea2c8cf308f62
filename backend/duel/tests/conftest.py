import pytest

from duel.messaging.router import MessageRouter
from duel.server.app import create_app
from duel.server.settings import DuelServerSettings
from duel.session.manager import SessionManager
from duel.tests.helpers.session import FAST_TIMING
from duel.tests.mocks.connection import MockConnection


@pytest.fixture
def timing():
    return FAST_TIMING


@pytest.fixture
def session_manager(timing):
    return SessionManager(timing)


@pytest.fixture
def message_router(session_manager):
    return MessageRouter(session_manager)


@pytest.fixture
def mock_connection(session_manager):
    conn = MockConnection()
    session_manager.register_connection(conn)
    return conn


@pytest.fixture
def settings():
    return DuelServerSettings(cors_origins=["http://testserver"])


@pytest.fixture
def app(settings, session_manager, message_router):
    return create_app(
        settings=settings,
        session_manager=session_manager,
        message_router=message_router,
    )
