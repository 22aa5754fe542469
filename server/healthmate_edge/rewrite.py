"""Prefix rewriting for proxied paths."""

from healthmate_edge.config import RewritePolicy
from healthmate_edge.schemas import RewriteRule


def matches_prefix(path: str, prefix: str) -> bool:
    """True for the prefix itself and anything below it (``/api``, ``/api/x``, not ``/apix``)."""
    return path == prefix or path.startswith(prefix + "/")


def rewrite_path(path: str, rule: RewriteRule) -> str:
    """Map an external path under ``rule.prefix`` to the upstream path.

    - strip:            /api/foo -> /foo, /api -> /
    - replace_fixed:    /api/foo -> /healthmate
    - replace_preserve: /api/foo -> /healthmate/foo, /api -> /healthmate

    Raises ValueError for paths outside the prefix; callers route those elsewhere.
    """
    if not matches_prefix(path, rule.prefix):
        raise ValueError(f"{path!r} is not under proxy prefix {rule.prefix!r}")

    remainder = path[len(rule.prefix):]

    if rule.policy is RewritePolicy.STRIP:
        return remainder or "/"
    if rule.policy is RewritePolicy.REPLACE_FIXED:
        return rule.replacement
    return rule.replacement + remainder
