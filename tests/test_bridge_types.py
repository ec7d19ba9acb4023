#!/usr/bin/env python3

"""
Tests for the command vocabulary, validation and URL match patterns
"""

import pytest

from PermissionBridge.bridge_types import (
    DEFAULT_POPUP_URL_PATTERNS, Command, PermissionKind, PermissionSetting,
    compile_match_pattern, failure_response, origin_of, parse_command, require_field,
    success_response, url_matches, validate_permission_setting, validate_site_pattern
)
from PermissionBridge.exceptions import BridgeValidationError


class TestParseCommand:

    def test_known_tags(self):
        """Every wire tag decodes to its Command"""
        for command in Command:
            assert parse_command(command.value) is command

    def test_unknown_tags(self):
        assert parse_command("DELETE_EVERYTHING") is None
        assert parse_command(None) is None
        assert parse_command("get") is None


class TestPermissionSettingValidation:

    def test_notification_accepts_all_settings(self):
        for value in ("allow", "block", "ask", "clear"):
            assert validate_permission_setting(PermissionKind.NOTIFICATION, value) is PermissionSetting(value)

    def test_popup_rejects_ask(self):
        with pytest.raises(BridgeValidationError) as exc_info:
            validate_permission_setting(PermissionKind.POPUP, "ask")
        assert "popup" in str(exc_info.value)

    def test_unknown_setting(self):
        with pytest.raises(BridgeValidationError):
            validate_permission_setting(PermissionKind.NOTIFICATION, "maybe")

    def test_require_field(self):
        assert require_field({"key": None}, "key") is None
        with pytest.raises(BridgeValidationError) as exc_info:
            require_field({}, "key")
        assert "'key'" in str(exc_info.value)


class TestMatchPatterns:

    def test_default_popup_patterns(self):
        """The popup patterns match the subscribe page on any host, port or query"""
        assert url_matches("https://example.os.tc/subscribe", DEFAULT_POPUP_URL_PATTERNS)
        assert url_matches("http://localhost:8080/subscribe?session=1", DEFAULT_POPUP_URL_PATTERNS)
        assert url_matches("https://example.com/subscribe/step-2", DEFAULT_POPUP_URL_PATTERNS)
        assert not url_matches("https://example.com/subscriber", DEFAULT_POPUP_URL_PATTERNS)
        assert not url_matches("https://example.com/", DEFAULT_POPUP_URL_PATTERNS)

    def test_subdomain_wildcard(self):
        patterns = ["*://*.example.com/*"]
        assert url_matches("https://example.com/", patterns)
        assert url_matches("http://www.example.com/page", patterns)
        assert not url_matches("https://badexample.com/", patterns)

    def test_exact_scheme(self):
        patterns = ["https://example.com/*"]
        assert url_matches("https://example.com/a/b", patterns)
        assert not url_matches("http://example.com/a/b", patterns)

    def test_fragment_is_ignored(self):
        assert url_matches("https://example.com/subscribe#top", ["https://example.com/subscribe"])

    def test_all_urls(self):
        assert url_matches("file:///tmp/page.html", ["<all_urls>"])

    def test_malformed_patterns(self):
        for pattern in ("example.com", "https://exa*mple.com/", "chrome://settings/*"):
            with pytest.raises(BridgeValidationError):
                compile_match_pattern(pattern)

    def test_validate_site_pattern(self):
        assert validate_site_pattern("https://example.com/*") == "https://example.com/*"
        with pytest.raises(BridgeValidationError):
            validate_site_pattern(None)


class TestOriginOf:

    def test_origin_keeps_port(self):
        assert origin_of("https://example.com:8443/path?q=1") == "https://example.com:8443"

    def test_origin_without_host(self):
        with pytest.raises(BridgeValidationError):
            origin_of("about:blank")


class TestResponses:

    def test_success_without_result(self):
        assert success_response() == {"success": True}

    def test_success_with_none_result(self):
        assert success_response(None) == {"success": True, "result": None}

    def test_failure_stringifies_errors(self):
        assert failure_response(ValueError("boom")) == {"success": False, "error": "boom"}
        assert failure_response("bad", result=["x"]) == {"success": False, "error": "bad", "result": ["x"]}
