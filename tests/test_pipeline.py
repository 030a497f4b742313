"""Tests for guard composition."""

from fastapi.responses import JSONResponse
from starlette.responses import Response

from conftest import build_request
from siwes_guard.core.pipeline import ContinueResponse, compose_guards, is_success


def annotate(name: str):
    def guard(request, response):
        response.headers[f"X-{name}"] = "seen"
        return response

    return guard


def reject(status_code: int):
    def guard(request, response):
        return JSONResponse({"success": False, "error": "no"}, status_code=status_code)

    return guard


def test_runs_guards_in_order_on_one_response() -> None:
    calls = []

    def first(request, response):
        calls.append("first")
        response.headers["X-Order"] = "first"
        return response

    def second(request, response):
        calls.append("second")
        response.headers["X-Order"] = response.headers["X-Order"] + ",second"
        return response

    result = compose_guards(build_request("/"), [first, second])

    assert calls == ["first", "second"]
    assert isinstance(result, ContinueResponse)
    assert result.headers["X-Order"] == "first,second"


def test_short_circuits_on_first_rejection() -> None:
    second_called = []

    def second(request, response):
        second_called.append(True)
        response.headers["X-Second"] = "seen"
        return response

    result = compose_guards(build_request("/"), [reject(403), second])

    assert result.status_code == 403
    assert not second_called
    assert "X-Second" not in result.headers


def test_rejection_is_returned_verbatim() -> None:
    rejection = JSONResponse({"success": False, "error": "slow down"}, status_code=429)

    result = compose_guards(build_request("/"), [annotate("a"), lambda req, res: rejection])

    assert result is rejection
    assert "X-a" not in result.headers


def test_empty_guard_list_passes_through() -> None:
    result = compose_guards(build_request("/"), [])
    assert isinstance(result, ContinueResponse)
    assert result.status_code == 200


def test_starts_from_given_response() -> None:
    start = ContinueResponse()
    assert compose_guards(build_request("/"), [annotate("a")], start) is start


def test_is_success() -> None:
    assert is_success(Response(status_code=204))
    assert not is_success(Response(status_code=307))
    assert not is_success(Response(status_code=429))


def test_merge_copies_annotations_onto_handler_response() -> None:
    pending = ContinueResponse()
    pending.headers["X-RateLimit-Limit"] = "100"
    pending.set_cookie("csrf-token", "v1", httponly=True)

    handler_response = JSONResponse({"ok": True}, headers={"Set-Cookie": "session=abc"})
    pending.merge_into(handler_response)

    assert handler_response.headers["X-RateLimit-Limit"] == "100"
    cookies = handler_response.headers.getlist("set-cookie")
    assert any(c.startswith("session=abc") for c in cookies)
    assert any(c.startswith("csrf-token=v1") for c in cookies)
    assert handler_response.headers["content-type"] == "application/json"
    assert handler_response.headers["content-length"] == str(len(handler_response.body))
