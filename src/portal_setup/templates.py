"""Static payload assets shipped with the package."""
from __future__ import annotations

from importlib import resources

PORTAL_LOGIN_PAGE = "portal_login.html"
ISSUE_SCOPES_RULE = "issue_scopes_rule.js"


def read_asset(name: str) -> str:
    return resources.files("portal_setup").joinpath("assets").joinpath(name).read_text(encoding="utf-8")


def portal_login_page() -> str:
    return read_asset(PORTAL_LOGIN_PAGE)


def issue_scopes_rule() -> str:
    return read_asset(ISSUE_SCOPES_RULE)
