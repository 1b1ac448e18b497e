"""Client for the appliance REST API.

Every request carries the same three headers (`Accept`, `User-Agent` and the
`ExtraHop apikey=<key>` Authorization header) and responses are normalised
into indented JSON before they are written to the backup checkout.
"""

import json
import logging
import re
from types import TracebackType
from urllib.parse import urlsplit

import requests

from .config import BackupConfig
from .constants import API_PREFIX, APP_NAME, AUTH_SCHEME, DEFAULT_TIMEOUT, USER_AGENT

logger = logging.getLogger(APP_NAME)

DEFAULT_PORTS = {"http": 80, "https": 443}

INDENT = "  "

# A string literal, a structural character, or a bare literal (number,
# true, false, null). Whitespace outside strings is dropped.
_TOKEN = re.compile(r'"(?:[^"\\]|\\.)*"|[{}\[\]:,]|[^\s{}\[\]:,"]+')


class EndpointError(RuntimeError):
    """Raised when an endpoint could not be fetched or decoded."""


def pretty_json(body: bytes | str) -> str:
    """Re-indents a JSON document with two spaces.

    Only whitespace between tokens changes: numbers, string escapes,
    duplicate keys and key order are written exactly as received. The
    result ends with a newline, and feeding it back in yields the same text.

    Raises:
        ValueError: If `body` is not valid JSON.
        RecursionError: If `body` is nested too deeply to validate.
    """
    text = body.decode("utf-8-sig") if isinstance(body, bytes) else body
    json.loads(text)

    out: list[str] = []
    depth = 0
    prev = ""
    for token in _TOKEN.findall(text):
        if token in ("}", "]"):
            if prev in ("{", "["):
                out.append(token)
            else:
                depth -= 1
                out.append("\n" + INDENT * depth + token)
        else:
            if prev in ("{", "["):
                depth += 1
                out.append("\n" + INDENT * depth)
            if token == ",":
                out.append(",\n" + INDENT * depth)
            elif token == ":":
                out.append(": ")
            else:
                out.append(token)
        prev = token
    return "".join(out) + "\n"


def _origin(url: str) -> tuple[str, str | None, int | None]:
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    return scheme, parts.hostname, parts.port or DEFAULT_PORTS.get(scheme)


class ApplianceSession(requests.Session):
    """A `requests.Session` with a strict redirect policy for credentials.

    Non-secret headers follow redirects as usual. The Authorization header
    only survives a redirect whose scheme, host and port all match the
    request that was redirected; anything else (including an http to https
    upgrade) drops it so the API key never reaches another origin.
    """

    def should_strip_auth(self, old_url: str, new_url: str) -> bool:
        return _origin(old_url) != _origin(new_url)


class ApplianceClient:
    """Fetches endpoints from a single appliance.

    Attributes:
        base_url (str): The appliance URL without a trailing slash.
        timeout (float): Per-request timeout in seconds.
        session (requests.Session): The shared HTTP session.
    """

    def __init__(
        self,
        host: str,
        api_key: str,
        timeout: float = DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ):
        self.base_url = host.rstrip("/")
        self.timeout = timeout
        self.session = session or ApplianceSession()
        self.session.headers.update(
            {
                "Accept": "application/json",
                "User-Agent": USER_AGENT,
                "Authorization": f"{AUTH_SCHEME} apikey={api_key}",
            }
        )

    @classmethod
    def from_config(cls, config: BackupConfig) -> "ApplianceClient":
        return cls(config.host, config.api_key, timeout=config.timeout)

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/{API_PREFIX}/{path.lstrip('/')}"

    def fetch(self, path: str) -> bytes:
        """Performs a GET against an endpoint and returns the raw body.

        Args:
            path (str): Endpoint path and query, relative to `/api/v1/`.

        Raises:
            EndpointError: On connection errors, timeouts or non-2xx status.
        """
        url = self.url_for(path)
        logger.info(f"Requesting {url}")
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise EndpointError(f"Request for {path} failed: {e}") from e
        return response.content

    def fetch_json(self, path: str) -> str:
        """Fetches an endpoint and returns its body as indented JSON text.

        Raises:
            EndpointError: If the request fails or the body is not usable JSON.
        """
        body = self.fetch(path)
        try:
            return pretty_json(body)
        except ValueError as e:
            raise EndpointError(f"Response for {path} is not valid JSON: {e}") from e
        except RecursionError as e:
            raise EndpointError(f"Response for {path} is nested too deeply") from e

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "ApplianceClient":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
