"""Endpoint path template matching shared by grants and the policy registry."""

from __future__ import annotations

from functools import lru_cache
import re

_PATH_PARAM_RE = re.compile(r"\{[^/]+\}")


@lru_cache(maxsize=1024)
def path_template_to_regex(path_template: str) -> re.Pattern[str]:
    """
    Convert a simple path template into a compiled regex.

    Example:
        /api/orders/{id}  ->  ^/api/orders/[^/]+$
    """

    parts = _PATH_PARAM_RE.split(path_template)
    regex = "[^/]+".join(re.escape(p) for p in parts)
    return re.compile(rf"^{regex}$")


def normalize_path(path: str) -> str:
    path = path.strip()
    if len(path) > 1 and path.endswith("/"):
        path = path.rstrip("/") or "/"
    return path


def endpoint_matches(template: str, endpoint: str | None) -> bool:
    """True when ``endpoint`` equals ``template`` or fills in its ``{param}`` segments."""
    if not endpoint:
        return False
    template = normalize_path(template)
    endpoint = normalize_path(endpoint)
    if template == endpoint:
        return True
    if "{" not in template:
        return False
    return path_template_to_regex(template).match(endpoint) is not None
