"""Guard composition.

A guard is a plain callable ``(request, response) -> response``. It either
annotates the response it was given (headers, cookies) and returns it, or
returns a different, terminal response. Guards never await: everything they
touch is in memory.
"""

from __future__ import annotations

from typing import Callable, Sequence

from starlette.requests import Request
from starlette.responses import Response

Guard = Callable[[Request, Response], Response]

# Headers that describe the placeholder body rather than anything a guard set
_PLACEHOLDER_HEADERS = {b"content-length", b"content-type"}


class ContinueResponse(Response):
    """Placeholder meaning "let the request through".

    Guards accumulate headers and cookies on it; once the route handler has
    produced the real response, ``merge_into`` copies them across.
    """

    def __init__(self) -> None:
        super().__init__(status_code=200)

    def merge_into(self, response: Response) -> Response:
        for key, value in self.raw_headers:
            if key in _PLACEHOLDER_HEADERS:
                continue
            name = key.decode("latin-1")
            if key == b"set-cookie":
                response.headers.append(name, value.decode("latin-1"))
            else:
                response.headers[name] = value.decode("latin-1")
        return response


def is_success(response: Response) -> bool:
    return 200 <= response.status_code < 300


def compose_guards(
    request: Request,
    guards: Sequence[Guard],
    response: Response | None = None,
) -> Response:
    """Run ``guards`` in order and stop at the first non-2xx response.

    The rejecting guard's response is returned verbatim; guards after it
    never see the request.
    """
    current = response if response is not None else ContinueResponse()
    for guard in guards:
        current = guard(request, current)
        if not is_success(current):
            return current
    return current
