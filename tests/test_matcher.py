"""Tests for URL/method matching and first-match-wins resolution."""

import re

import pytest

from interpose.engine.matcher import compile_pattern, matches, matches_method, matches_url
from interpose.engine.resolver import resolve
from interpose.rules import InterceptedRequest, Matcher, Rule, StatusAction, UrlMatchType, UrlPattern, parse_rule


def _request(url: str, method: str = "GET") -> InterceptedRequest:
    return InterceptedRequest.observe(url, method)


def _rule(name: str, pattern: UrlPattern | None, method: str | None = None, enabled: bool = True) -> Rule:
    return Rule(
        id=name,
        name=name,
        matcher=Matcher(url=pattern, method=method),
        action=StatusAction(status_code=500),
        enabled=enabled,
    )


# ── URL patterns ─────────────────────────────────────────────────


class TestExactMatch:
    def test_equal_urls_match(self):
        pattern = UrlPattern(UrlMatchType.EXACT, "https://api.x/ping")
        assert matches_url("https://api.x/ping", pattern)

    def test_surrounding_whitespace_is_ignored(self):
        pattern = UrlPattern(UrlMatchType.EXACT, "  https://api.x/ping ")
        assert matches_url(" https://api.x/ping\n", pattern)

    @pytest.mark.parametrize(
        "url",
        ["https://api.x/ping2", "https://api.x/pinG", "http://api.x/ping", "https://api.x/pin"],
    )
    def test_any_changed_character_breaks_match(self, url):
        pattern = UrlPattern(UrlMatchType.EXACT, "https://api.x/ping")
        assert not matches_url(url, pattern)


class TestPrefixMatch:
    def test_prefix_matches(self):
        pattern = UrlPattern(UrlMatchType.PREFIX, "/api/")
        assert matches_url("/api/", pattern)
        assert matches_url("/api/users", pattern)
        assert matches_url("/api/users?page=2", pattern)

    def test_prefix_is_not_trimmed(self):
        pattern = UrlPattern(UrlMatchType.PREFIX, "/api/")
        assert not matches_url(" /api/users", pattern)

    def test_non_prefix_does_not_match(self):
        pattern = UrlPattern(UrlMatchType.PREFIX, "/api/")
        assert not matches_url("/v2/api/users", pattern)
        assert not matches_url("/api", pattern)


class TestRegexMatch:
    def test_search_anywhere(self):
        pattern = UrlPattern(UrlMatchType.REGEX, r"/users/\d+$")
        assert matches_url("https://x.test/users/42", pattern)
        assert not matches_url("https://x.test/users/me", pattern)

    def test_ignore_case_flag(self):
        pattern = UrlPattern(UrlMatchType.REGEX, "/USERS", flags="i")
        assert matches_url("https://x.test/users", pattern)
        assert not matches_url("https://x.test/users", UrlPattern(UrlMatchType.REGEX, "/USERS"))

    def test_sticky_flag_anchors_at_start(self):
        pattern = UrlPattern(UrlMatchType.REGEX, "https://x", flags="y")
        assert matches_url("https://x.test/a", pattern)
        assert not matches_url("see https://x.test/a", pattern)

    def test_invalid_regex_is_a_reported_non_match(self):
        errors: list[str] = []
        pattern = UrlPattern(UrlMatchType.REGEX, "([unclosed")
        assert not matches_url("https://x.test/", pattern, on_error=errors.append)
        assert len(errors) == 1
        assert "Invalid regex" in errors[0]

    def test_invalid_regex_without_callback_does_not_raise(self):
        assert not matches_url("https://x.test/", UrlPattern(UrlMatchType.REGEX, "*"))

    @pytest.mark.parametrize("flags", ["q", "ii"])
    def test_unknown_or_repeated_flags_are_invalid(self, flags):
        with pytest.raises(re.error):
            compile_pattern("a", flags)
        errors: list[str] = []
        assert not matches_url("a", UrlPattern(UrlMatchType.REGEX, "a", flags=flags), errors.append)
        assert errors


class TestMissingPattern:
    def test_no_pattern_matches_anything(self):
        assert matches_url("anything at all", None)


# ── Methods ──────────────────────────────────────────────────────


class TestMethodMatch:
    def test_absent_method_matches_any(self):
        assert matches_method("DELETE", None)
        assert matches_method("GET", "")

    def test_method_is_case_sensitive_against_normalized(self):
        assert matches_method("POST", "POST")
        assert not matches_method("post", "POST")
        assert not matches_method("GET", "POST")

    def test_observed_request_method_is_upper_cased(self):
        request = _request("/a", "post")
        assert request.method == "POST"
        assert matches(request, Matcher(UrlPattern(UrlMatchType.EXACT, "/a"), method="POST"))

    def test_method_defaults_to_get(self):
        assert InterceptedRequest.observe("/a").method == "GET"
        assert InterceptedRequest.observe("/a", None).method == "GET"

    def test_url_and_method_must_both_match(self):
        matcher = Matcher(UrlPattern(UrlMatchType.PREFIX, "/a"), method="PUT")
        assert matches(_request("/a/1", "PUT"), matcher)
        assert not matches(_request("/a/1", "GET"), matcher)
        assert not matches(_request("/b/1", "PUT"), matcher)


# ── Resolution ───────────────────────────────────────────────────


class TestResolve:
    def test_first_match_wins_regardless_of_specificity(self):
        broad = _rule("broad", UrlPattern(UrlMatchType.PREFIX, "https://x.test/"))
        specific = _rule("specific", UrlPattern(UrlMatchType.EXACT, "https://x.test/a"))
        assert resolve(_request("https://x.test/a"), [broad, specific]) is broad
        assert resolve(_request("https://x.test/a"), [specific, broad]) is specific

    def test_disabled_rules_are_skipped(self):
        off = _rule("off", UrlPattern(UrlMatchType.PREFIX, "/"), enabled=False)
        on = _rule("on", UrlPattern(UrlMatchType.PREFIX, "/"))
        assert resolve(_request("/x"), [off, on]) is on
        assert resolve(_request("/x"), [off]) is None

    def test_no_match_returns_none(self):
        rules = [_rule("a", UrlPattern(UrlMatchType.EXACT, "/a"))]
        assert resolve(_request("/b"), rules) is None
        assert resolve(_request("/b"), []) is None

    def test_resolution_is_idempotent(self):
        rules = [
            _rule("a", UrlPattern(UrlMatchType.REGEX, "/a")),
            _rule("b", UrlPattern(UrlMatchType.PREFIX, "/")),
        ]
        request = _request("/abc")
        first = resolve(request, rules)
        assert all(resolve(request, rules) is first for _ in range(5))

    def test_invalid_regex_rule_is_skipped_with_a_diagnostic(self):
        errors: list[str] = []
        bad = _rule("bad", UrlPattern(UrlMatchType.REGEX, "(("))
        good = _rule("good", UrlPattern(UrlMatchType.PREFIX, "/"))
        assert resolve(_request("/x"), [bad, good], on_error=errors.append) is good
        assert len(errors) == 1

    def test_malformed_rule_degrades_to_no_match(self):
        errors: list[str] = []

        class Broken:
            name = "broken"
            enabled = True
            matcher = None

        good = _rule("good", UrlPattern(UrlMatchType.PREFIX, "/"))
        assert resolve(_request("/x"), [Broken(), good], on_error=errors.append) is good
        assert len(errors) == 1
        assert errors[0].startswith("Malformed rule 'broken'")

    def test_enabled_must_be_true_not_truthy(self):
        rule = _rule("a", UrlPattern(UrlMatchType.PREFIX, "/"))
        object.__setattr__(rule, "enabled", 1)
        assert resolve(_request("/x"), [rule]) is None

    def test_method_restricts_resolution(self):
        get_only = parse_rule(
            {
                "name": "get only",
                "matcher": {"url": {"type": "prefix", "value": "/"}, "method": "get"},
                "action": {"type": "delay", "delay": 0},
            }
        )
        assert resolve(_request("/x", "GET"), [get_only]) is get_only
        assert resolve(_request("/x", "POST"), [get_only]) is None
