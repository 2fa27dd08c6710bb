"""
Feed error taxonomy.

FeedError
├── FeedConnectionError        transport could not be opened
├── AuthError
│   ├── AuthRejected           upstream answered with an error field
│   └── AuthMalformedResponse  identity fields missing from the answer
└── RequestError
    ├── ConnectionClosed       transport closed before a response arrived
    ├── UpstreamError          upstream answered with an error field
    ├── RequestTimeout         no response within the request timeout
    └── NotAuthorized          request issued before authorization
"""
from typing import Any, Dict, Optional


class FeedError(Exception):
    """Base class for everything raised by the connection layer."""


class FeedConnectionError(FeedError):
    """The transport could not be established (network, DNS, TLS, timeout)."""


class AuthError(FeedError):
    """Authorization failed. Fatal to the session; never retried."""


class AuthRejected(AuthError):
    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class AuthMalformedResponse(AuthError):
    """The authorize response did not carry the expected identity fields."""


class RequestError(FeedError):
    """A single request/subscription failed."""


class ConnectionClosed(RequestError):
    """The transport closed (or was never open) while the request was pending."""


class UpstreamError(RequestError):
    def __init__(self, code: str, message: str, req_id: Optional[int] = None):
        super().__init__(f"{code}: {message}" if code else message)
        self.code = code
        self.message = message
        self.req_id = req_id

    @classmethod
    def from_response(cls, response: Dict[str, Any]) -> "UpstreamError":
        error = response.get("error")
        if not isinstance(error, dict):
            return cls("UnknownError", str(error), response.get("req_id"))
        return cls(
            str(error.get("code", "")),
            str(error.get("message", "Request failed")),
            response.get("req_id"),
        )


class RequestTimeout(RequestError):
    """No correlated response arrived in time."""


class NotAuthorized(RequestError):
    """Only the authorize request is permitted before authorization."""
