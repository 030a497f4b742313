"""Path classification for the edge pipeline.

Every predicate is a pure function of the path string and the edge/guard
settings. Only the compiled extension regex is cached; the classification
itself is recomputed per request.
"""

from __future__ import annotations

import enum
import re
from functools import lru_cache
from typing import Iterable

from siwes_guard.core.config import Settings


class RouteClass(str, enum.Enum):
    STATIC_ASSET = "static-asset"
    RATE_LIMIT_EXEMPT = "rate-limit-exempt"
    CSRF_EXEMPT = "csrf-exempt"
    API = "api"
    PROTECTED_PAGE = "protected-page"
    PUBLIC_PAGE = "public-page"


def matches_prefix(path: str, prefixes: Iterable[str]) -> bool:
    return any(path.startswith(prefix) for prefix in prefixes)


@lru_cache(maxsize=32)
def _extension_pattern(extensions: tuple[str, ...]) -> re.Pattern[str]:
    alternatives = "|".join(re.escape(ext.lstrip(".")) for ext in extensions)
    return re.compile(rf"\.({alternatives})$", re.IGNORECASE)


def is_static_asset(path: str, settings: Settings) -> bool:
    """Framework internals, the static prefix, or an allow-listed file extension."""
    edge = settings.edge
    if matches_prefix(path, edge.static_prefixes):
        return True
    if not edge.static_extensions:
        return False
    return _extension_pattern(tuple(edge.static_extensions)).search(path) is not None


def is_api(path: str, settings: Settings) -> bool:
    return path.startswith(settings.edge.api_prefix)


def is_auth_page(path: str, settings: Settings) -> bool:
    return path.startswith(settings.edge.auth_prefix)


def is_protected_page(path: str, settings: Settings) -> bool:
    return matches_prefix(path, settings.edge.protected_prefixes)


def is_rate_limit_exempt(path: str, settings: Settings) -> bool:
    return matches_prefix(path, settings.rate_limit.exempt_prefixes)


def is_csrf_exempt(path: str, settings: Settings) -> bool:
    return matches_prefix(path, settings.csrf.exempt_prefixes)


def classify_route(path: str, settings: Settings) -> RouteClass:
    """Place ``path`` in exactly one class.

    Precedence: static asset, rate-limit exempt, CSRF exempt, API,
    protected page, public page.
    """
    if is_static_asset(path, settings):
        return RouteClass.STATIC_ASSET
    if is_rate_limit_exempt(path, settings):
        return RouteClass.RATE_LIMIT_EXEMPT
    if is_csrf_exempt(path, settings):
        return RouteClass.CSRF_EXEMPT
    if is_api(path, settings):
        return RouteClass.API
    if is_protected_page(path, settings):
        return RouteClass.PROTECTED_PAGE
    return RouteClass.PUBLIC_PAGE
