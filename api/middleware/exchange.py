# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request/response interfaces between the CORS core and the host framework.

The gate and the timeout guard only talk to ``GateRequest`` and
``GateResponse``. ``HttpRequestAdapter`` wraps a Werkzeug/Flask request;
``PendingResponse`` records the status, headers and body the core decides
on, so the Flask hooks and the WSGI timeout wrapper can turn it into a real
response once processing is over.
"""

import json
import threading
from typing import Any, Callable, Dict, Optional, Protocol

from werkzeug.datastructures import Headers
from werkzeug.wrappers import Request, Response


class GateRequest(Protocol):
    """Read-only view of an inbound request."""

    method: str
    path: str
    url: str

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        ...


class GateResponse(Protocol):
    """Mutable outbound response."""

    @property
    def headers_sent(self) -> bool:
        ...

    def set_header(self, name: str, value: str) -> None:
        ...

    def get_header(self, name: str) -> Optional[str]:
        ...

    def set_status(self, code: int) -> None:
        ...

    def send_json(self, body: Dict[str, Any]) -> bool:
        ...

    def end(self) -> bool:
        ...


class HttpRequestAdapter:
    """GateRequest over a Werkzeug request (including flask.request)."""

    def __init__(self, request: Request):
        self._request = request

    @classmethod
    def from_environ(cls, environ: Dict[str, Any]) -> "HttpRequestAdapter":
        return cls(Request(environ))

    @property
    def method(self) -> str:
        return self._request.method

    @property
    def path(self) -> str:
        return self._request.path

    @property
    def url(self) -> str:
        return self._request.full_path.rstrip("?")

    def header(self, name: str) -> Optional[str]:
        return self._request.headers.get(name)


class PendingResponse:
    """
    Response under construction.

    Once ``send_json`` or ``end`` has been called the response counts as
    sent and further writes are ignored. ``claim`` is the single atomic
    transition to the sent state, so two writers racing for the same
    response (a handler and a timeout) cannot both win.
    """

    def __init__(self):
        self.headers = Headers()
        self.status: Optional[int] = None
        self.body: Optional[Dict[str, Any]] = None
        self._sent = False
        self._lock = threading.Lock()

    @property
    def headers_sent(self) -> bool:
        return self._sent

    def claim(self, apply: Optional[Callable[[], None]] = None) -> bool:
        """
        Mark the response as sent; False if it already was.

        Args:
            apply: Runs under the lock just before the transition, only if
                this call wins
        """
        with self._lock:
            if self._sent:
                return False
            if apply is not None:
                apply()
            self._sent = True
        self._on_sent()
        return True

    def _on_sent(self) -> None:
        pass

    def set_header(self, name: str, value: str) -> None:
        with self._lock:
            if not self._sent:
                self.headers[name] = value

    def get_header(self, name: str) -> Optional[str]:
        return self.headers.get(name)

    def set_status(self, code: int) -> None:
        with self._lock:
            if not self._sent:
                self.status = code

    def send_json(self, body: Dict[str, Any]) -> bool:
        def record():
            self.body = body
        return self.claim(record)

    def end(self) -> bool:
        return self.claim()

    def copy_headers_to(self, response: Response) -> Response:
        """Apply the recorded headers to a response produced downstream."""
        for name, value in self.headers.items():
            response.headers[name] = value
        return response

    def to_response(self, response_class=Response) -> Response:
        """Render the recorded status, headers and JSON body."""
        if self.body is None:
            response = response_class("", status=self.status or 200)
        else:
            response = response_class(
                json.dumps(self.body),
                status=self.status or 200,
                mimetype="application/json"
            )
        return self.copy_headers_to(response)


class WSGIResponse(PendingResponse):
    """
    PendingResponse that a WSGI wrapper can wait on.

    Either the gate/timeout path sends it (``send_json``/``end``) or the
    downstream application completes it with its own status line, headers
    and body chunks via ``complete``. Whichever comes first wins.
    """

    def __init__(self):
        super().__init__()
        self.downstream: Optional[tuple] = None
        self.failure: Optional[BaseException] = None
        self._done = threading.Event()

    def _on_sent(self) -> None:
        self._done.set()

    def complete(self, status: str, headers: list, chunks: list) -> bool:
        def record():
            self.downstream = (status, headers, chunks)
        return self.claim(record)

    def fail(self, error: BaseException) -> bool:
        def record():
            self.failure = error
        return self.claim(record)

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._done.wait(timeout)
