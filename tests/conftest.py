import pytest

from ai_reader.common.errors import TransportNetworkError, TransportTimeout
from ai_reader.db.state_store import InMemoryStateStore
from ai_reader.providers.fallback_router import FallbackRouter
from ai_reader.providers.model_catalog import ModelCatalog

from routing_helpers import FakeTransport, SettingsBox


@pytest.fixture
def catalog():
    return ModelCatalog({"text": ["A", "B"], "image": ["imagen-A", "imagen-B"]})


@pytest.fixture
def make_router(catalog):
    def _make(script, store=None, **settings):
        settings.setdefault("api_keys", ["key-one"])
        settings.setdefault("text_model", "A")
        settings.setdefault("image_model", "imagen-A")
        box = SettingsBox(**settings)
        transport = FakeTransport(script)
        router = FallbackRouter.create(
            settings_provider=box,
            store=store or InMemoryStateStore(),
            transport=transport,
            catalog=catalog,
        )
        router.settings_box = box
        return router, transport

    return _make


@pytest.fixture
def timeout_error():
    return TransportTimeout("Request timed out")


@pytest.fixture
def network_error():
    return TransportNetworkError("Network error: ConnectError")
