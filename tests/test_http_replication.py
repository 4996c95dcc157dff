"""Replication over the real HTTP binding.

The peer uses the production ``SyncClient`` and its ``requests`` session;
a transport adapter hands each prepared request to a FastAPI
``TestClient`` serving the hub, so login cookies, paging headers and
status mapping all go through the actual routes.
"""

import pytest
import requests
from fastapi.testclient import TestClient
from requests.adapters import HTTPAdapter
from requests.structures import CaseInsensitiveDict

from conftest import SHARED_SECRET
from notesync.config import Config
from notesync.context import build_context
from notesync.core.client import SyncClient
from notesync.db.store import NoteStore
from notesync.server.app import create_app
from notesync.sync.models import SyncStatus

HUB_URL = "http://hub.test"


class AppAdapter(HTTPAdapter):
    """Send requests to an in-process ASGI app instead of the network."""

    def __init__(self, test_client: TestClient):
        super().__init__()
        self.test_client = test_client

    def send(self, request, **kwargs):
        headers = {
            k: v for k, v in request.headers.items() if k.lower() != "content-length"
        }
        upstream = self.test_client.request(
            request.method, request.url, headers=headers, content=request.body
        )
        response = requests.Response()
        response.status_code = upstream.status_code
        response.headers = CaseInsensitiveDict(upstream.headers)
        response._content = upstream.content
        response.encoding = "utf-8"
        response.url = request.url
        response.request = request
        return response


@pytest.fixture
def hub_http(hub):
    with TestClient(create_app(hub), base_url=HUB_URL) as test_client:
        yield test_client


@pytest.fixture
def http_peer(tmp_path, hub_http):
    def factory(cfg):
        session = requests.Session()
        session.mount(HUB_URL, AppAdapter(hub_http))
        return SyncClient(cfg, session=session)

    config = Config(
        sync_server_host=HUB_URL,
        data_dir=str(tmp_path / "alice"),
        document_secret=SHARED_SECRET,
        page_size=1024,
    )
    context = build_context(config, client_factory=factory, store=NoteStore())
    yield context
    context.close()


def test_paged_push_through_routes(hub, http_peer):
    http_peer.repository.save_note("Long", "x" * 3000, note_id="N1")

    outcome = http_peer.session.sync()

    assert outcome.status == SyncStatus.SUCCESS, outcome.error
    assert outcome.pushed == 1
    assert hub.repository.get_note("N1")["content"] == "x" * 3000
    assert len(hub.partials) == 0


def test_pull_through_routes(hub, http_peer):
    hub.repository.save_note("From hub", note_id="H1", links=["https://a.example"])

    outcome = http_peer.session.sync()

    assert outcome.status == SyncStatus.SUCCESS, outcome.error
    assert outcome.pulled == 1
    assert http_peer.repository.get_note("H1")["title"] == "From hub"
    assert [l["target_url"] for l in http_peer.repository.get_links("H1")] == [
        "https://a.example"
    ]


def test_nothing_outstanding_after_own_push(hub, http_peer):
    http_peer.repository.save_note("Mine", note_id="N1")

    http_peer.session.sync()
    http_peer.session.sync()

    assert hub.changes.max_id() == 1
    assert http_peer.session.cursor.last_pulled == 0
    assert http_peer.session.stats()["outstandingPullCount"] == 0


def test_wrong_secret_is_rejected(tmp_path, hub_http):
    def factory(cfg):
        session = requests.Session()
        session.mount(HUB_URL, AppAdapter(hub_http))
        return SyncClient(cfg, session=session)

    config = Config(
        sync_server_host=HUB_URL,
        data_dir=str(tmp_path / "mallory"),
        document_secret="not-the-secret",
    )
    context = build_context(config, client_factory=factory, store=NoteStore())
    try:
        outcome = context.session.sync()
    finally:
        context.close()

    assert outcome.status == SyncStatus.FAILED
    assert "incorrect" in outcome.error
