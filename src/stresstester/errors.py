"""Failures that abort a stress-test run.

Every error records the request that produced it and, where one exists, the
raw service response. The orchestrator attaches the action being executed
before re-raising.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .request_info import RequestInfo

if TYPE_CHECKING:
    from .model import Action

__all__ = [
    "DeserializationFailure",
    "RequestTimeout",
    "ServiceCrash",
    "ServiceError",
    "StressTesterError",
    "TreeTextMismatch",
    "UnexpectedErrorType",
]


class StressTesterError(RuntimeError):
    """Base error raised when the service misbehaves during a run."""

    kind = "failed"
    summary = "request failed"

    def __init__(self, request: RequestInfo, response: str | None = None) -> None:
        self.request = request
        self.response = response
        self.action: "Action | None" = None
        super().__init__(f"{self.summary}: {request.describe()}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "message": str(self),
            "request": self.request.describe(),
            "action": repr(self.action) if self.action is not None else None,
            "response": self.response,
        }


class RequestTimeout(StressTesterError):
    """The service did not answer within the configured bound."""

    kind = "timedOut"
    summary = "request timed out"


class ServiceCrash(StressTesterError):
    """The service process died or the connection dropped mid-request."""

    kind = "crashed"
    summary = "service crashed"


class ServiceError(StressTesterError):
    """The service returned a well-formed error response."""

    kind = "errorResponse"
    summary = "service returned an error"


class UnexpectedErrorType(StressTesterError):
    """A successful response reported an error type for the probed symbol."""

    kind = "errorTypeInResponse"
    summary = "response contains an error type"


class DeserializationFailure(StressTesterError):
    """The syntax tree payload did not decode under its declared format."""

    kind = "errorDeserializingSyntaxTree"
    summary = "failed to deserialize syntax tree"


class TreeTextMismatch(StressTesterError):
    """The service's tree text disagrees with the tracked shadow text."""

    kind = "sourceAndSyntaxTreeMismatch"
    summary = "syntax tree does not match source state"

    def __init__(
        self,
        request: RequestInfo,
        response: str | None,
        *,
        source_text: str,
        tree_text: str,
    ) -> None:
        self.source_text = source_text
        self.tree_text = tree_text
        super().__init__(request, response)

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["source_text"] = self.source_text
        payload["tree_text"] = self.tree_text
        return payload
