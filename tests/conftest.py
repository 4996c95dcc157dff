"""Shared pytest fixtures for notesync tests."""

import json

import pytest

from notesync.config import Config
from notesync.context import build_context
from notesync.db.store import NoteStore
from notesync.sync.models import ChangedResponse, EntityPayload

SHARED_SECRET = "shared-test-secret"


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a live peer instance",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring a live peer instance"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------------
# Stores and configs
# ---------------------------------------------------------------------------


@pytest.fixture
def store():
    """Initialized in-memory document store."""
    s = NoteStore()
    s.initialize(document_secret=SHARED_SECRET)
    yield s
    s.close()


@pytest.fixture
def mock_config(tmp_path):
    """Config pointing at a fake peer with data under tmp_path."""
    return Config(
        sync_server_host="http://peer.test:8480",
        data_dir=str(tmp_path / "data"),
        document_secret=SHARED_SECRET,
        page_size=2048,
    )


# ---------------------------------------------------------------------------
# Two instances wired through an in-process client
# ---------------------------------------------------------------------------


class LoopbackClient:
    """Stand-in for ``SyncClient`` that calls a peer's ``SyncApi`` directly.

    Exercises the same handlers the HTTP routes use, including the login
    check and chunked pushes, without a network.
    """

    def __init__(self, api, config):
        self.api = api
        self.config = config
        self.base_url = f"{config.sync_server_host}/api"
        self.token = None
        self.closed = False
        self.calls = []

    def login(self, request):
        self.calls.append(("login",))
        self.token = self.api.login(request.model_dump(by_alias=True))

    def get_changed(self, last_sync_id, source_id):
        self.calls.append(("changed", last_sync_id))
        self.api.require_session(self.token)
        return ChangedResponse.model_validate(
            self.api.get_changed(last_sync_id, source_id)
        )

    def get_entity(self, entity_name, entity_id):
        self.calls.append(("entity", entity_name, entity_id))
        self.api.require_session(self.token)
        return EntityPayload.model_validate(
            self.api.get_entity(entity_name, entity_id)
        )

    def push_entity(self, entity_name, body):
        self.calls.append(("push", entity_name, body["entity"]))
        self.api.require_session(self.token)
        text = json.dumps(body)
        page_size = self.config.page_size
        if len(text) <= page_size:
            return self.api.put_entity(entity_name, text)
        pages = [text[i : i + page_size] for i in range(0, len(text), page_size)]
        result = None
        for index, page in enumerate(pages):
            result = self.api.put_entity(
                entity_name, page, len(pages), index, "loopback-request"
            )
        return result

    def close(self):
        self.closed = True


@pytest.fixture
def hub(tmp_path):
    """Receiving instance with no peer of its own."""
    from notesync.server.routes import SyncApi

    config = Config(
        data_dir=str(tmp_path / "hub"),
        document_secret=SHARED_SECRET,
    )
    context = build_context(config, store=NoteStore())
    context.api = SyncApi(context)
    yield context
    context.close()


@pytest.fixture
def make_peer(tmp_path, hub):
    """Factory for instances that sync against ``hub`` through a LoopbackClient."""
    created = []

    def _make(name="peer", **overrides):
        values = {
            "sync_server_host": "http://hub.test",
            "data_dir": str(tmp_path / name),
            "document_secret": SHARED_SECRET,
        }
        values.update(overrides)
        config = Config(**values)
        clients = []

        def factory(cfg):
            client = LoopbackClient(hub.api, cfg)
            clients.append(client)
            return client

        context = build_context(config, client_factory=factory, store=NoteStore())
        context.clients = clients
        created.append(context)
        return context

    yield _make
    for context in created:
        context.close()
