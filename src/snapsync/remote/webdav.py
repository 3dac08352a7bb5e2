"""Remote store speaking WebDAV over ``requests``.

Only four verbs are needed: ``PROPFIND`` (Depth 0) for existence checks,
``GET``, ``PUT`` and ``MKCOL``.  Sessions are thread-local because the
orchestrator calls the store from worker threads.

HTTP status mapping:

- 401 / 403 -> ``RemoteConfigurationError`` (retrying will not help)
- 404       -> ``RemoteNotFound``
- other 4xx/5xx and transport errors -> ``RemoteUnavailable``
"""

from __future__ import annotations

import logging
import threading
from urllib.parse import quote, urlparse

import requests

from ..core.errors import RemoteConfigurationError, RemoteNotFound, RemoteUnavailable

logger = logging.getLogger(__name__)

_PROPFIND_BODY = (
    '<?xml version="1.0" encoding="utf-8"?>'
    '<d:propfind xmlns:d="DAV:"><d:prop><d:resourcetype/></d:prop></d:propfind>'
)


class WebDAVStore:
    """``RemoteStore`` implementation for a WebDAV server.

    Args:
        base_url: Collection URL all paths are relative to.
        username: Account name.
        password: Account password or app token.
        insecure: Skip TLS certificate verification.
        timeout: ``(connect, read)`` timeout passed to every request.
    """

    name = "webdav"

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        insecure: bool = False,
        timeout: tuple[float, float] = (10, 60),
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.username = username
        self.password = password
        self.insecure = insecure
        self.timeout = timeout
        self._thread_local = threading.local()

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    @property
    def session(self) -> requests.Session:
        """The current thread's session."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.auth = (self.username, self.password)
        session.verify = not self.insecure
        return session

    def _url(self, path: str) -> str:
        rel = path.strip("/")
        if not rel:
            return self.base_url + "/"
        # Collections keep their trailing slash.
        suffix = "/" if path.endswith("/") else ""
        return f"{self.base_url}/{quote(rel)}{suffix}"

    def _request(
        self, method: str, path: str, **kwargs
    ) -> requests.Response:
        url = self._url(path)
        try:
            response = self._get_session().request(
                method, url, timeout=self.timeout, **kwargs
            )
        except requests.Timeout as exc:
            raise RemoteUnavailable(
                f"WebDAV {method} {path or '/'} timed out: {exc}"
            ) from exc
        except requests.RequestException as exc:
            raise RemoteUnavailable(
                f"WebDAV {method} {path or '/'} failed: {exc}"
            ) from exc
        logger.debug("WebDAV %s %s -> %s", method, url, response.status_code)
        return response

    @staticmethod
    def _raise_for_status(
        response: requests.Response, method: str, path: str
    ) -> None:
        status = response.status_code
        if status < 400:
            return
        target = path or "/"
        match status:
            case 401 | 403:
                raise RemoteConfigurationError(
                    f"WebDAV {method} {target} was rejected (HTTP {status}); "
                    "check username, password and permissions"
                )
            case 404:
                raise RemoteNotFound(f"WebDAV path {target} not found")
            case _:
                raise RemoteUnavailable(
                    f"WebDAV {method} {target} failed: HTTP {status} {response.reason}"
                )

    # ------------------------------------------------------------------
    # RemoteStore interface
    # ------------------------------------------------------------------

    def exists(self, path: str) -> bool:
        response = self._request(
            "PROPFIND",
            path,
            headers={"Depth": "0", "Content-Type": "application/xml"},
            data=_PROPFIND_BODY,
        )
        if response.status_code == 404:
            return False
        self._raise_for_status(response, "PROPFIND", path)
        return True

    def read_bytes(self, path: str) -> bytes:
        response = self._request("GET", path)
        self._raise_for_status(response, "GET", path)
        return response.content

    def write_bytes(self, path: str, data: bytes) -> None:
        response = self._request(
            "PUT",
            path,
            data=data,
            headers={"Content-Type": "application/json; charset=utf-8"},
        )
        if response.status_code == 409:
            raise RemoteUnavailable(
                f"WebDAV PUT {path} failed: parent collection is missing"
            )
        self._raise_for_status(response, "PUT", path)

    def ensure_directory(self, path: str) -> None:
        """Create each missing collection along *path*.

        ``405 Method Not Allowed`` means the collection already exists.
        """
        current = ""
        for segment in [s for s in path.strip("/").split("/") if s]:
            current = f"{current}/{segment}" if current else segment
            response = self._request("MKCOL", current + "/")
            if response.status_code in (200, 201, 301, 405):
                continue
            if response.status_code == 409:
                raise RemoteConfigurationError(
                    f"WebDAV MKCOL {current} failed: base path "
                    f"{self.base_url} does not exist"
                )
            self._raise_for_status(response, "MKCOL", current)

    def check_connection(self) -> str:
        """Confirm the base collection is reachable with our credentials."""
        response = self._request(
            "PROPFIND",
            "",
            headers={"Depth": "0", "Content-Type": "application/xml"},
            data=_PROPFIND_BODY,
        )
        if response.status_code == 404:
            raise RemoteConfigurationError(
                f"WebDAV base path {self.base_url} not found"
            )
        self._raise_for_status(response, "PROPFIND", "")
        host = urlparse(self.base_url).hostname or self.base_url
        return f"WebDAV {host}"
