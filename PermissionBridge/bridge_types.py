#!/usr/bin/env python3

"""
PermissionBridge Type Validation and Utilities

This module provides the command vocabulary, request validation and the URL
match-pattern helpers shared by the dispatcher, the flows and the hosts.
"""

import re
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Pattern
from urllib.parse import urlparse

from .exceptions import BridgeValidationError


# The only cross-boundary signal an injected acceptance script uses to report success
SUCCESS_SENTINEL = "successful"

# Path of the subscription init page opened in the HTTP popup window
DEFAULT_POPUP_URL_PATTERNS = (
    "*://*/subscribe",
    "*://*/subscribe?*",
    "*://*/subscribe/*",
)


class Command(Enum):
    """Command tags accepted by the dispatcher"""
    SET_NOTIFICATION_PERMISSION = "SET_NOTIFICATION_PERMISSION"
    SET_POPUP_PERMISSION = "SET_POPUP_PERMISSION"
    CREATE_BROWSER_TAB = "CREATE_BROWSER_TAB"
    EXECUTE_SCRIPT = "EXECUTE_SCRIPT"
    ACCEPT_HTTP_SUBSCRIPTION_POPUP = "ACCEPT_HTTP_SUBSCRIPTION_POPUP"
    ACCEPT_HTTPS_SUBSCRIPTION_MODAL = "ACCEPT_HTTPS_SUBSCRIPTION_MODAL"
    GET = "GET"
    SET = "SET"


class PermissionKind(Enum):
    """Kinds of per-site content settings the bridge can change"""
    NOTIFICATION = "notification"
    POPUP = "popup"


class PermissionSetting(Enum):
    """Per-site setting values. CLEAR resets every rule of a kind."""
    ALLOW = "allow"
    BLOCK = "block"
    ASK = "ask"
    CLEAR = "clear"


class WindowType(Enum):
    """Window types a tab can live in"""
    NORMAL = "normal"
    POPUP = "popup"


class RunAt(Enum):
    """Injection timing for scripts"""
    DOCUMENT_START = "document_start"
    DOCUMENT_END = "document_end"
    DOCUMENT_IDLE = "document_idle"


SUPPORTED_SETTINGS = {
    PermissionKind.NOTIFICATION: (
        PermissionSetting.ALLOW,
        PermissionSetting.BLOCK,
        PermissionSetting.ASK,
        PermissionSetting.CLEAR,
    ),
    PermissionKind.POPUP: (
        PermissionSetting.ALLOW,
        PermissionSetting.BLOCK,
        PermissionSetting.CLEAR,
    ),
}


def parse_command(value: Any) -> Optional[Command]:
    """
    Decode a command tag.

    Args:
        value: The raw ``command`` field of a request

    Returns:
        The matching Command, or None if the tag is not recognized
    """
    try:
        return Command(value)
    except ValueError:
        return None


def require_field(request: Dict[str, Any], name: str) -> Any:
    """
    Fetch a required field from a request payload.

    Raises:
        BridgeValidationError: If the field is absent
    """
    if name not in request:
        raise BridgeValidationError("Missing required field '{}'".format(name))
    return request[name]


def validate_permission_setting(kind: PermissionKind, setting: Any) -> PermissionSetting:
    """
    Validate a permission setting for the given kind.

    Args:
        kind: The permission kind being changed
        setting: The raw setting value ('allow', 'block', 'ask' or 'clear')

    Returns:
        Validated PermissionSetting

    Raises:
        BridgeValidationError: If the setting is unknown or not valid for the kind
    """
    valid_settings = SUPPORTED_SETTINGS[kind]
    try:
        parsed = PermissionSetting(setting)
    except ValueError:
        parsed = None
    if parsed not in valid_settings:
        raise BridgeValidationError("Invalid {} permission '{}'. Valid settings: {}".format(
            kind.value, setting, [s.value for s in valid_settings]))
    return parsed


def validate_site_pattern(pattern: Any) -> str:
    """
    Validate a URL match pattern.

    Raises:
        BridgeValidationError: If the pattern is not a well-formed match pattern
    """
    if not isinstance(pattern, str):
        raise BridgeValidationError("Site pattern must be a string, got {}".format(type(pattern).__name__))
    compile_match_pattern(pattern)
    return pattern


_MATCH_PATTERN_RE = re.compile(r'^(\*|https?|wss?|ftp|file)://([^/]*)(/.*)$')


def compile_match_pattern(pattern: str) -> Pattern:
    """
    Compile a URL match pattern into a regular expression.

    Supported syntax is ``<all_urls>`` or ``scheme://host/path`` where the
    scheme may be ``*`` (http or https), the host may be ``*`` or start with
    ``*.`` (the domain and any subdomain) and ``*`` in the path matches any run
    of characters, query string included. Ports are ignored.

    Raises:
        BridgeValidationError: If the pattern is malformed
    """
    if pattern == "<all_urls>":
        return re.compile(r'^(?:https?|wss?|ftp|file)://.*$')

    match = _MATCH_PATTERN_RE.match(pattern)
    if not match:
        raise BridgeValidationError("Invalid match pattern '{}'".format(pattern))

    scheme, host, path = match.groups()

    if scheme == "*":
        scheme_re = "https?"
    else:
        scheme_re = re.escape(scheme)

    if host == "*":
        host_re = r'[^/:]*'
    elif host.startswith("*."):
        host_re = r'(?:[^/:]*\.)?' + re.escape(host[2:])
    elif "*" in host:
        raise BridgeValidationError("Invalid host wildcard in match pattern '{}'".format(pattern))
    else:
        host_re = re.escape(host)

    path_re = ".*".join(re.escape(part) for part in path.split("*"))

    return re.compile(r'^{}://{}(?::\d+)?{}$'.format(scheme_re, host_re, path_re), re.IGNORECASE)


def url_matches(url: str, patterns: Iterable[str]) -> bool:
    """Return True if the URL (fragment ignored) matches any of the match patterns"""
    url = url.split("#", 1)[0]
    return any(compile_match_pattern(pattern).match(url) for pattern in patterns)


def origin_of(url: str) -> str:
    """
    Return the ``scheme://host[:port]`` origin of a URL.

    Raises:
        BridgeValidationError: If the URL has no scheme or host
    """
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        raise BridgeValidationError("Cannot determine origin of URL '{}'".format(url))
    return "{}://{}".format(parsed.scheme, parsed.netloc)


_NO_RESULT = object()


def success_response(result: Any = _NO_RESULT) -> Dict[str, Any]:
    """Build a success response, with a result field only when one is given"""
    response = {"success": True}
    if result is not _NO_RESULT:
        response["result"] = result
    return response


def failure_response(error: Any, result: Any = _NO_RESULT) -> Dict[str, Any]:
    """Build a failure response. Errors are stringified for transport."""
    response = {"success": False, "error": str(error)}
    if result is not _NO_RESULT:
        response["result"] = result
    return response
