from __future__ import annotations

from fastapi import APIRouter

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness probe for load balancers.

    Served under the rate-limit exempt prefix, so probes never consume a
    client's budget or receive a 429.
    """

    return {"status": "ok"}
