import json
import logging
from typing import Any

import requests

from ..config import Config
from ..sync.errors import AuthError, TransportError
from ..sync.models import ChangedResponse, EntityPayload
from ..utils import random_string

logger = logging.getLogger(__name__)


class SyncClient:
    """HTTP client for the sync endpoints of one peer.

    One client is built per sync cycle; the login cookie lives in its
    ``requests.Session`` and is dropped with it.
    """

    def __init__(self, config: Config, session: requests.Session | None = None):
        if not config.sync_server_host:
            raise ValueError("Sync server host is not configured")
        self.config = config
        self.base_url = f"{config.sync_server_host.rstrip('/')}/api"
        self.session = session or self._create_session()

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.verify = not self.config.insecure
        return session

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "SyncClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        """
        Send one request and turn failures into sync errors.

        Raises:
            AuthError: On a 401 answer.
            TransportError: On a timeout, a connection failure or any other
                non-2xx answer.
        """
        url = f"{self.base_url}{path}"
        kwargs.setdefault("timeout", self.config.sync_timeout)
        try:
            response = self.session.request(method, url, **kwargs)
        except requests.Timeout as err:
            raise TransportError(f"{method} {path} timed out: {err}") from err
        except requests.RequestException as err:
            raise TransportError(f"{method} {path} failed: {err}") from err

        if response.status_code == 401:
            raise AuthError(_error_message(response) or "Unauthorized")
        if not response.ok:
            raise TransportError(
                f"{method} {path} returned {response.status_code}: "
                f"{_error_message(response)}",
                status_code=response.status_code,
            )
        return response

    def _json(self, response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError as err:
            raise TransportError(
                f"Invalid JSON from {response.url}: {err}",
                status_code=response.status_code,
            ) from err

    def login(self, request) -> None:
        """
        POST the signed login request; the session cookie is kept in the jar.
        """
        self._request(
            "POST", "/login/sync", json=request.model_dump(by_alias=True)
        )

    def get_changed(self, last_sync_id: int, source_id: str) -> ChangedResponse:
        """
        Changes after *last_sync_id* not originated by *source_id*.
        """
        response = self._request(
            "GET",
            "/sync/changed",
            params={"lastSyncId": last_sync_id, "sourceId": source_id},
        )
        return ChangedResponse.model_validate(self._json(response))

    def get_entity(self, entity_name: str, entity_id: str) -> EntityPayload:
        response = self._request("GET", f"/sync/{entity_name}/{entity_id}")
        return EntityPayload.model_validate(self._json(response))

    def push_entity(self, entity_name: str, body: dict[str, Any]) -> None:
        """
        PUT one row; bodies longer than the page size go as several pages.
        """
        self._put(f"/sync/{entity_name}", body)

    def push_batch(self, body: dict[str, Any]) -> None:
        self._put("/sync/update", body)

    def check(self) -> dict[str, Any]:
        return self._json(self._request("GET", "/sync/check"))

    def stats(self) -> dict[str, Any]:
        return self._json(self._request("GET", "/sync/stats"))

    def _put(self, path: str, body: dict[str, Any]) -> None:
        text = json.dumps(body, separators=(",", ":"))
        headers = {"Content-Type": "application/json"}
        page_size = self.config.page_size

        if len(text) <= page_size:
            self._request("PUT", path, data=text.encode("utf-8"), headers=headers)
            return

        pages = [text[i : i + page_size] for i in range(0, len(text), page_size)]
        request_id = random_string(10)
        logger.debug(
            "Sending %s as %d pages (request %s)", path, len(pages), request_id
        )
        for index, page in enumerate(pages):
            self._request(
                "PUT",
                path,
                data=page.encode("utf-8"),
                headers={
                    **headers,
                    "pageCount": str(len(pages)),
                    "pageIndex": str(index),
                    "requestId": request_id,
                },
            )


def _error_message(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(payload, dict):
        return str(payload.get("detail") or payload.get("message") or payload)
    return str(payload)
