"""HTTP client abstraction for release uploads.

- HttpClient: protocol (injectable for tests)
- RealHttpClient: urllib implementation
- MockHttpClient: canned responses, records every call
"""

from __future__ import annotations

import ssl
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from relpipe import __version__
from relpipe.core.result import Err, Ok, Result
from relpipe.core.timeouts import UPLOAD_TIMEOUT_SECONDS

__all__ = [
    "HttpClient",
    "HttpError",
    "HttpResponse",
    "MockHttpClient",
    "RealHttpClient",
]


@dataclass(frozen=True, slots=True)
class HttpResponse:
    status: int
    body: bytes = b""

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


@dataclass(frozen=True, slots=True)
class HttpError:
    """HTTP failure.

    Attributes:
        url: The URL that failed.
        status: HTTP status code (0 for network errors).
        message: Human-readable reason.
        body: Response body, when the server sent one.
    """

    url: str
    status: int
    message: str
    body: str = ""

    def __str__(self) -> str:
        if self.status:
            return f"HTTP {self.status}: {self.message} ({self.url})"
        return f"{self.message} ({self.url})"


@runtime_checkable
class HttpClient(Protocol):
    def post_bytes(
        self, url: str, data: bytes, headers: dict[str, str]
    ) -> Result[HttpResponse, HttpError]:
        """POST ``data`` once; no redirects to other hosts, no retries."""
        ...


class RealHttpClient:
    def __init__(
        self, timeout: float = UPLOAD_TIMEOUT_SECONDS, user_agent: str = f"relpipe/{__version__}"
    ) -> None:
        self.timeout = timeout
        self.user_agent = user_agent
        self._ssl_context = ssl.create_default_context()

    def post_bytes(
        self, url: str, data: bytes, headers: dict[str, str]
    ) -> Result[HttpResponse, HttpError]:
        req = urllib.request.Request(
            url,
            data=data,
            method="POST",
            headers={"User-Agent": self.user_agent, **headers},
        )
        try:
            with urllib.request.urlopen(
                req, timeout=self.timeout, context=self._ssl_context
            ) as response:
                return Ok(HttpResponse(status=response.status, body=response.read()))
        except urllib.error.HTTPError as e:
            body = e.read().decode("utf-8", errors="replace") if e.fp is not None else ""
            return Err(HttpError(url=url, status=e.code, message=str(e.reason), body=body))
        except urllib.error.URLError as e:
            return Err(HttpError(url=url, status=0, message=str(e.reason)))
        except TimeoutError:
            return Err(HttpError(url=url, status=0, message="Request timed out"))
        except (ValueError, OSError) as e:
            return Err(HttpError(url=url, status=0, message=str(e)))


@dataclass(frozen=True, slots=True)
class RecordedRequest:
    url: str
    data: bytes
    headers: dict[str, str]


def _empty_requests() -> list[RecordedRequest]:
    return []


@dataclass
class MockHttpClient:
    """Mock client: responses keyed by exact URL, 404 for anything else.

    Usage:
        http = MockHttpClient()
        http.set_response(url, HttpResponse(201, b'{"name": "dotter"}'))
    """

    responses: dict[str, HttpResponse | HttpError] = field(default_factory=dict)
    calls: list[RecordedRequest] = field(default_factory=_empty_requests)

    def set_response(self, url: str, response: HttpResponse | HttpError) -> None:
        self.responses[url] = response

    def post_bytes(
        self, url: str, data: bytes, headers: dict[str, str]
    ) -> Result[HttpResponse, HttpError]:
        self.calls.append(RecordedRequest(url=url, data=data, headers=dict(headers)))
        response = self.responses.get(url)
        if response is None:
            return Err(HttpError(url=url, status=404, message="Not Found (mock)"))
        if isinstance(response, HttpError):
            return Err(response)
        return Ok(response)
