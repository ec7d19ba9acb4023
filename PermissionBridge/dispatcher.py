#!/usr/bin/env python3

"""
PermissionBridge Command Dispatcher

This module is the single entry point for inbound requests. It decodes the
command tag, validates the payload, routes the request to the matching
component and produces exactly one response for every recognized command.
"""

import logging
from enum import Enum
from typing import Any, Dict, Iterable, Optional

from .bridge_types import (
    Command, PermissionKind, failure_response, parse_command, require_field, success_response
)
from .capabilities import PermissionStore, ScriptHost, TabRegistry
from .exceptions import BridgeValidationError, UnknownCommandError
from .flows import FlowOrchestrator
from .permissions import set_permission
from .scratch_store import ScratchStore
from .script_runner import ScriptRunner
from .tab_locator import TabLocator


class UnrecognizedRequestPolicy(Enum):
    """
    What the dispatcher does with requests it cannot answer normally.

    RESPOND answers unknown commands and unexpected internal errors with a
    failure response. IGNORE logs them and produces no response at all.
    """
    RESPOND = "respond"
    IGNORE = "ignore"


class CommandDispatcher:
    """
    Routes inbound requests to the permission setter, the tab registry, the
    script runner, the flow orchestrator or the scratch store.

    ``dispatch`` is a coroutine resolving to the response dict. It returns None
    only under the IGNORE policy, for unknown commands and for errors that
    escaped every handler.
    """

    def __init__(self,
                 permission_store: PermissionStore,
                 tab_registry: TabRegistry,
                 script_host: ScriptHost,
                 scratch_store: Optional[ScratchStore] = None,
                 unrecognized_policy=UnrecognizedRequestPolicy.RESPOND,
                 popup_url_patterns: Optional[Iterable[str]] = None):
        """
        Initialize the dispatcher.

        Args:
            permission_store: Host permission store
            tab_registry: Host tab registry
            script_host: Host script injection engine
            scratch_store: Key/value store for GET/SET (a fresh one if None)
            unrecognized_policy: UnrecognizedRequestPolicy or its string value
            popup_url_patterns: Match patterns identifying the HTTP subscription popup
        """
        self.permission_store = permission_store
        self.tab_registry = tab_registry
        self.scratch_store = scratch_store if scratch_store is not None else ScratchStore()
        self.unrecognized_policy = UnrecognizedRequestPolicy(unrecognized_policy)
        self.log = logging.getLogger("PermissionBridge.Dispatcher")

        self.runner = ScriptRunner(script_host)
        self.locator = TabLocator(tab_registry)
        self.flows = FlowOrchestrator(self.locator, permission_store, self.runner,
                                      popup_url_patterns=popup_url_patterns)

        self._handlers = {
            Command.SET_NOTIFICATION_PERMISSION: self._set_notification_permission,
            Command.SET_POPUP_PERMISSION: self._set_popup_permission,
            Command.CREATE_BROWSER_TAB: self._create_tab,
            Command.EXECUTE_SCRIPT: self._execute_script,
            Command.ACCEPT_HTTP_SUBSCRIPTION_POPUP: self._accept_http_popup,
            Command.ACCEPT_HTTPS_SUBSCRIPTION_MODAL: self._accept_https_modal,
            Command.GET: self._get,
            Command.SET: self._set,
        }

    async def dispatch(self, request: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Handle one inbound request.

        Args:
            request: Decoded message with a ``command`` field and its payload

        Returns:
            The response dict, or None when the policy says not to answer
        """
        self.log.info("Received message: {}".format(request))
        try:
            if not isinstance(request, dict):
                raise BridgeValidationError("Request must be an object, got {}".format(type(request).__name__))

            command = parse_command(request.get("command"))
            if command is None:
                raise UnknownCommandError("Unknown command: {}".format(request.get("command")))

            return await self._handlers[command](request)

        except UnknownCommandError as e:
            if self.unrecognized_policy is UnrecognizedRequestPolicy.IGNORE:
                self.log.warning("Ignoring request: {}".format(e))
                return None
            self.log.warning(str(e))
            return failure_response(e)
        except BridgeValidationError as e:
            self.log.warning("Rejected request: {}".format(e))
            return failure_response(e)
        except Exception as e:
            self.log.exception("Unhandled error while dispatching {}".format(request))
            if self.unrecognized_policy is UnrecognizedRequestPolicy.IGNORE:
                return None
            return failure_response(e)

    # ========================================================================
    # Permission Commands
    # ========================================================================

    async def _set_notification_permission(self, request):
        return await self._set_permission(PermissionKind.NOTIFICATION, request)

    async def _set_popup_permission(self, request):
        return await self._set_permission(PermissionKind.POPUP, request)

    async def _set_permission(self, kind: PermissionKind, request: Dict[str, Any]) -> Dict[str, Any]:
        permission = require_field(request, "permission")
        site_url = request.get("siteUrl")
        if permission != "clear":
            site_url = require_field(request, "siteUrl")

        await set_permission(self.permission_store, kind, site_url, permission)
        return success_response()

    # ========================================================================
    # Tab and Script Commands
    # ========================================================================

    async def _create_tab(self, request):
        url = require_field(request, "url")
        active = request.get("active", True)
        if not isinstance(url, str):
            raise BridgeValidationError("Field 'url' must be a string")
        if not isinstance(active, bool):
            raise BridgeValidationError("Field 'active' must be a boolean")

        tab = await self.tab_registry.create(url, active=active)
        self.log.info("Created tab {} at {}".format(tab.get("id"), url))
        return success_response()

    async def _execute_script(self, request):
        code = require_field(request, "code")
        if not isinstance(code, str):
            raise BridgeValidationError("Field 'code' must be a string")
        tab_id = request.get("tabId", 0)

        try:
            results = await self.runner.run(tab_id, code=code)
        except Exception as e:
            self.log.warning("Script execution in tab {} failed: {}".format(tab_id, e))
            return failure_response(e)

        # Top frame only, so the caller gets the value itself rather than a one-slot list
        return success_response(results[0] if results else None)

    # ========================================================================
    # Flow Commands
    # ========================================================================

    async def _accept_http_popup(self, request):
        return await self.flows.accept_http_popup()

    async def _accept_https_modal(self, request):
        parent_tab_url = require_field(request, "parentTabUrl")
        return await self.flows.accept_https_modal(parent_tab_url)

    # ========================================================================
    # Scratch Store Commands
    # ========================================================================

    async def _get(self, request):
        key = _require_key(request)
        return success_response(self.scratch_store.get(key))

    async def _set(self, request):
        key = _require_key(request)
        self.scratch_store.set(key, require_field(request, "value"))
        return success_response()


def _require_key(request: Dict[str, Any]) -> str:
    key = require_field(request, "key")
    if not isinstance(key, str):
        raise BridgeValidationError("Field 'key' must be a string")
    return key
