"""Line-delimited JSON transport to an analysis service running as a child process."""

from __future__ import annotations

import base64
import json
import logging
import os
import select
import subprocess
import time
from pathlib import Path
from typing import Any, Mapping, Sequence

from .protocol import FailureKind, ServiceFailure, ServiceRequest, ServiceResponse

__all__ = ["SubprocessConnection", "decode_value", "encode_value"]

LOGGER = logging.getLogger(__name__)

_BYTES_KEY = "$bytes"
_READ_CHUNK = 65536


def encode_value(value: Any) -> Any:
    """Make ``value`` JSON-safe, wrapping bytes as base64 objects."""
    if isinstance(value, (bytes, bytearray)):
        return {_BYTES_KEY: base64.b64encode(bytes(value)).decode("ascii")}
    if isinstance(value, Mapping):
        return {str(key): encode_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode_value(item) for item in value]
    return value


def decode_value(value: Any) -> Any:
    """Inverse of :func:`encode_value`."""
    if isinstance(value, dict):
        if set(value) == {_BYTES_KEY} and isinstance(value[_BYTES_KEY], str):
            return base64.b64decode(value[_BYTES_KEY])
        return {key: decode_value(item) for key, item in value.items()}
    if isinstance(value, list):
        return [decode_value(item) for item in value]
    return value


class SubprocessConnection:
    """Spawns ``command`` and exchanges one JSON document per line with it.

    Requests are written to the child's stdin; each produces exactly one line
    on its stdout, either ``{"result": {...}}`` or
    ``{"error": {"kind": ..., "description": ...}}``.
    """

    def __init__(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        if not command:
            raise ValueError("Service command must not be empty")
        self._command = list(command)
        self._cwd = cwd
        self._env = dict(env) if env is not None else None
        self._process: subprocess.Popen[bytes] | None = None
        self._pending = bytearray()
        # Set once a request times out; the stopped service is not restarted.
        self._abandoned: ServiceFailure | None = None

    @property
    def command(self) -> list[str]:
        return list(self._command)

    def __enter__(self) -> "SubprocessConnection":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def start(self) -> None:
        if self._process is not None and self._process.poll() is None:
            return
        LOGGER.debug("Starting analysis service: %s", " ".join(self._command))
        self._pending.clear()
        self._abandoned = None
        self._process = subprocess.Popen(  # noqa: S603 - command comes from user configuration
            self._command,
            cwd=self._cwd,
            env=self._env,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
        )

    def close(self) -> None:
        process = self._process
        self._process = None
        if process is None:
            return
        if process.stdin is not None:
            try:
                process.stdin.close()
            except OSError:
                LOGGER.debug("Service stdin already closed")
        if process.poll() is None:
            process.terminate()
            try:
                process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                process.kill()
                process.wait()
        if process.stdout is not None:
            process.stdout.close()

    def send(self, request: ServiceRequest, *, timeout: float) -> ServiceResponse:
        if self._abandoned is not None:
            return ServiceResponse(error=self._abandoned)
        if self._process is None:
            self.start()
        process = self._process
        assert process is not None and process.stdin is not None
        if process.poll() is not None:
            return ServiceResponse(
                error=ServiceFailure(
                    FailureKind.CRASHED, f"service exited with code {process.returncode}"
                )
            )
        line = json.dumps(encode_value(request)) + "\n"
        try:
            process.stdin.write(line.encode("utf-8"))
            process.stdin.flush()
        except OSError as error:
            return self._interrupted(process, f"failed to write request: {error}")

        try:
            raw = self._read_line(process, time.monotonic() + timeout)
        except TimeoutError:
            # A late reply would otherwise answer the next request.
            LOGGER.warning("Stopping analysis service after a request exceeded %.1fs", timeout)
            self.close()
            self._abandoned = ServiceFailure(
                FailureKind.CONNECTION_INTERRUPTED,
                f"service was stopped after a request timed out after {timeout:g}s",
            )
            raise
        if raw is None:
            return self._interrupted(process, "service closed its output stream")
        try:
            message = json.loads(raw)
        except json.JSONDecodeError as error:
            return ServiceResponse(
                error=ServiceFailure(FailureKind.REQUEST_FAILED, f"invalid response line: {error}")
            )
        return _response_from_message(message)

    def _read_line(self, process: subprocess.Popen[bytes], deadline: float) -> bytes | None:
        stdout = process.stdout
        assert stdout is not None
        fd = stdout.fileno()
        while b"\n" not in self._pending:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise TimeoutError("analysis service did not respond in time")
            ready, _, _ = select.select([fd], [], [], remaining)
            if not ready:
                raise TimeoutError("analysis service did not respond in time")
            chunk = os.read(fd, _READ_CHUNK)
            if not chunk:
                return None
            self._pending.extend(chunk)
        index = self._pending.index(b"\n")
        line = bytes(self._pending[:index])
        del self._pending[: index + 1]
        return line

    @staticmethod
    def _interrupted(process: subprocess.Popen[bytes], detail: str) -> ServiceResponse:
        try:
            returncode = process.wait(timeout=1)
        except subprocess.TimeoutExpired:
            returncode = None
        if returncode is not None:
            return ServiceResponse(
                error=ServiceFailure(
                    FailureKind.CRASHED, f"service exited with code {returncode}: {detail}"
                )
            )
        return ServiceResponse(error=ServiceFailure(FailureKind.CONNECTION_INTERRUPTED, detail))


def _response_from_message(message: Any) -> ServiceResponse:
    if not isinstance(message, dict):
        return ServiceResponse(
            error=ServiceFailure(FailureKind.REQUEST_FAILED, "response must be a JSON object")
        )
    if "error" in message:
        error = message.get("error") or {}
        if not isinstance(error, dict):
            error = {"description": str(error)}
        try:
            kind = FailureKind(error.get("kind", FailureKind.REQUEST_FAILED.value))
        except ValueError:
            kind = FailureKind.REQUEST_FAILED
        return ServiceResponse(error=ServiceFailure(kind, str(error.get("description", ""))))
    result = decode_value(message.get("result"))
    if not isinstance(result, dict):
        return ServiceResponse(
            error=ServiceFailure(FailureKind.REQUEST_FAILED, "response is missing its result")
        )
    return ServiceResponse(value=result)
