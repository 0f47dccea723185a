from urllib.parse import parse_qs, urlsplit

import pytest

from fedgate_backend.app.auth.redirects import delivery_url, is_safe_redirect, resolve_target, with_query


@pytest.mark.parametrize("target", [
    "/dashboard",
    "/auth/done?x=1",
    "https://app.example.com/cb",
    "http://localhost:5173/cb",
    "HTTPS://APP.EXAMPLE.COM/cb",
])
def test_safe_targets_accepted(target):
    assert is_safe_redirect(target)


@pytest.mark.parametrize("target", [
    "javascript:alert(1)",
    "JavaScript:alert(document.cookie)",
    "data:text/html,<script>alert(1)</script>",
    "ftp://files.example.com/",
    "//evil.example.com/path",
    "app.example.com/cb",
    "https://",
    "",
    None,
])
def test_unsafe_targets_rejected(target):
    assert not is_safe_redirect(target)


def test_explicit_redirect_wins_over_default():
    assert resolve_target("/mine", "https://app.example.com/cb") == "/mine"
    assert resolve_target(None, "https://app.example.com/cb") == "https://app.example.com/cb"
    assert resolve_target("", None) is None


def test_with_query_keeps_existing_params():
    out = with_query("https://app.example.com/cb?tab=2&sessionCredential=old", {"sessionCredential": "tok"})
    qs = parse_qs(urlsplit(out).query)
    assert qs == {"tab": ["2"], "sessionCredential": ["tok"]}


def test_delivery_url_appends_credential_and_state():
    out = delivery_url(None, "https://app.example.com/cb", "tok-1", state="xyz")
    parts = urlsplit(out)
    assert parts.netloc == "app.example.com"
    assert parse_qs(parts.query) == {"sessionCredential": ["tok-1"], "state": ["xyz"]}


def test_delivery_url_relative_target_stays_relative():
    out = delivery_url("/welcome", None, "tok-1")
    assert out == "/welcome?sessionCredential=tok-1"


def test_delivery_url_unsafe_target_means_json_fallback():
    assert delivery_url("javascript:alert(1)", "https://app.example.com/cb", "tok-1") is None
    assert delivery_url(None, None, "tok-1") is None
