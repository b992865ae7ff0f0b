"""
Board API client — every HTTP call the board makes goes through this class.

Errors:
  - Network failures and non-2xx answers raise BoardApiError carrying the
    server's human-readable reason, so the interaction layer can show it.

Testability: pass a custom ``http`` session (anything with a
requests.Session-compatible ``request`` method) to BoardApiClient().
"""

from __future__ import annotations

import io
import logging
from typing import Callable

import requests
from urllib3 import encode_multipart_formdata

from casetrack.board.session import BoardSession

logger = logging.getLogger(__name__)

# ── Default request timeout ────────────────────────────────────────────────
_DEFAULT_TIMEOUT = 10

_NETWORK_MESSAGE = "Não foi possível contactar o servidor"


class BoardApiError(Exception):
    """A board request failed.

    Attributes:
        status_code: HTTP status (None for network-level failures).
        code:        Machine-readable error code from the server, if any.
        message:     Text suitable for showing to the user.
    """

    def __init__(self, message: str, status_code: int | None = None, code: str | None = None) -> None:
        self.message = message
        self.status_code = status_code
        self.code = code
        super().__init__(message)


class _ProgressBody:
    """Encoded request body that reports bytes as the transport reads them.

    requests streams any object with ``read`` and ``__len__`` in blocks
    and takes Content-Length from ``len()``.
    """

    def __init__(self, payload: bytes, callback: Callable[[int, int], None] | None = None) -> None:
        self._buffer = io.BytesIO(payload)
        self.total = len(payload)
        self.sent = 0
        self._callback = callback

    def __len__(self) -> int:
        return self.total

    def read(self, size: int = -1) -> bytes:
        chunk = self._buffer.read(size)
        if chunk:
            self.sent += len(chunk)
            if self._callback is not None:
                self._callback(self.sent, self.total)
        return chunk


class BoardApiClient:
    """Typed wrapper over the /api/v1 action and file endpoints."""

    def __init__(self, session: BoardSession, http: requests.Session | None = None,
                 timeout: float = _DEFAULT_TIMEOUT) -> None:
        self.board_session = session
        # Inject custom session for testing; create real one lazily otherwise.
        self._http = http
        self.timeout = timeout

    # ── HTTP session ─────────────────────────────────────────────────────────

    @property
    def http(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._http is None:
            self._http = requests.Session()
        return self._http

    def _request(self, method: str, path: str, **kwargs):
        url = self.board_session.api_root + path
        headers = dict(self.board_session.headers())
        headers.update(kwargs.pop("headers", {}) or {})
        try:
            resp = self.http.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            logger.warning("Board request %s %s failed: %s", method, path, exc)
            raise BoardApiError(_NETWORK_MESSAGE) from exc

        try:
            body = resp.json()
        except ValueError:
            body = None

        if resp.status_code >= 400:
            message = (body or {}).get("error") if isinstance(body, dict) else None
            code = (body or {}).get("code") if isinstance(body, dict) else None
            logger.info("Board request %s %s → %s %s", method, path, resp.status_code, message)
            raise BoardApiError(message or f"Erro {resp.status_code}", resp.status_code, code)
        return body

    # ── Actions ──────────────────────────────────────────────────────────────

    def list_actions(self) -> list[dict]:
        return self._request("GET", "/actions", params=self.board_session.list_params()) or []

    def get_action(self, action_id: int) -> dict:
        return self._request("GET", f"/actions/{action_id}")

    def create_action(self, **fields) -> dict:
        return self._request("POST", "/actions", json=fields)

    def update_action(self, action_id: int, **fields) -> dict:
        return self._request("PUT", f"/actions/{action_id}", json=fields)

    def set_my_status(self, action_id: int, status: str) -> dict:
        return self._request("PATCH", f"/actions/{action_id}/status", json={"status": status})

    def approve(self, action_id: int) -> dict:
        return self._request("POST", f"/actions/{action_id}/approve", json={})

    def return_action(self, action_id: int, comment: str | None) -> dict:
        return self._request("POST", f"/actions/{action_id}/return", json={"comment": comment or ""})

    def mark_filed(self, action_id: int) -> dict:
        return self._request("POST", f"/actions/{action_id}/file", json={})

    def get_comment(self, action_id: int) -> str | None:
        return (self._request("GET", f"/actions/{action_id}/comment") or {}).get("comment")

    def save_comment(self, action_id: int, comment: str) -> dict:
        return self._request("POST", f"/actions/{action_id}/comment", json={"comment": comment})

    # ── Files ────────────────────────────────────────────────────────────────

    def list_files(self, action_id: int) -> dict:
        return self._request("GET", f"/actions/{action_id}/files") or {}

    def upload_file(self, action_id: int, fileobj, filename: str, category: str = "ACAO",
                    progress: Callable[[int, int], None] | None = None) -> dict:
        """Multipart upload; *progress* gets ``(bytes_sent, total)`` per chunk sent."""
        content = fileobj.read() if hasattr(fileobj, "read") else fileobj
        payload, content_type = encode_multipart_formdata({
            "category": category,
            "file": (filename, content),
        })
        return self._request(
            "POST", f"/actions/{action_id}/files",
            data=_ProgressBody(payload, progress), headers={"Content-Type": content_type},
        )

    def remove_file(self, action_id: int, filename: str) -> dict:
        return self._request("POST", "/files/remove", json={"action_id": action_id, "filename": filename})
