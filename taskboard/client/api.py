"""HTTP client for the board API, used by the reconciler.

Error bodies ({"error", "code"}) are mapped back onto the same typed
exceptions the server raised. Transport failures and unexpected statuses
on writes become PersistenceFailure.
"""

import logging

import requests

from taskboard.errors import (
    BoardNotFound,
    PersistenceFailure,
    Unauthenticated,
    UnknownChild,
    ValidationError,
)

logger = logging.getLogger(__name__)


class BoardApiClient:
    """Session-authenticated client for /auth and /api."""

    def __init__(self, base_url, session=None, timeout=15):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def _url(self, path):
        return f"{self.base_url}{path}"

    def _request(self, method, path, **kwargs):
        try:
            resp = self.session.request(
                method, self._url(path), timeout=self.timeout, **kwargs
            )
        except requests.RequestException as e:
            logger.error(f"{method} {path} failed: {e}")
            raise PersistenceFailure(f"Could not reach the server: {e}") from e

        if resp.status_code < 400:
            return resp.json() if resp.content else {}

        try:
            body = resp.json()
        except ValueError:
            body = {}
        message = body.get("error") or f"HTTP {resp.status_code}"
        code = body.get("code")

        if resp.status_code == 401:
            raise Unauthenticated(message)
        if resp.status_code == 400:
            raise ValidationError(message)
        if code == "unknown_child":
            raise UnknownChild(
                body.get("kind", "entity"),
                body.get("container_id"),
                body.get("ids") or [],
            )
        if resp.status_code == 404 and method == "GET":
            raise BoardNotFound(message)
        # A write against a vanished board/column is a failed write too.
        raise PersistenceFailure(message)

    # --- Auth ---

    def login(self, email, password):
        data = self._request("POST", "/auth/login", json={"email": email, "password": password})
        token = self._request("GET", "/auth/csrf").get("csrf_token")
        if token:
            self.session.headers["X-CSRFToken"] = token
        return data

    # --- Board ---

    def fetch_board(self, board_id):
        return self._request("GET", f"/api/boards/{board_id}")

    # --- Ordering ---

    def reorder_columns(self, board_id, column_ids):
        return self._request(
            "PUT",
            f"/api/boards/{board_id}/columns/reorder",
            json={"column_ids": list(column_ids)},
        )

    def reorder_cards(self, board_id, column_id, card_ids):
        return self._request(
            "PUT",
            f"/api/boards/{board_id}/columns/{column_id}/cards/reorder",
            json={"card_ids": list(card_ids)},
        )

    def move_card(self, board_id, card_id, source_column_id, target_column_id, ordered_card_ids):
        return self._request(
            "POST",
            f"/api/boards/{board_id}/cards/{card_id}/move",
            json={
                "source_column_id": source_column_id,
                "target_column_id": target_column_id,
                "ordered_card_ids": list(ordered_card_ids),
            },
        )

    def close(self):
        self.session.close()
