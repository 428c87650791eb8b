"""
Shared pytest fixtures for API tests.

The app lifespan builds a controller from the environment (no listeners, no
cameras); inside the TestClient context it is swapped for a controller
wired to the test cameras, presence store and recording sink.
"""
import pytest
from fastapi.testclient import TestClient

from main import app
from motion_funnel.core.config import InterfaceConfig
from motion_funnel.services.motion_controller import MotionController


@pytest.fixture
def controller(test_settings, cameras, topics, presence_store, sink):
    interface_config = InterfaceConfig(cameras=cameras, topics=topics)
    return MotionController(test_settings, interface_config, presence_store, sink)


@pytest.fixture
def client(controller, presence_store):
    """
    TestClient with the test controller installed.

    Used as a context manager so one event loop serves all requests of a
    test and debounce timers survive between requests.
    """
    with TestClient(app) as test_client:
        app.state.motion_controller = controller
        app.state.presence_store = presence_store
        yield test_client
