#!/usr/bin/env python3

"""
Tests for the command dispatcher
"""

import pytest

from PermissionBridge.bridge_types import PermissionKind, PermissionSetting
from PermissionBridge.dispatcher import CommandDispatcher, UnrecognizedRequestPolicy
from PermissionBridge.flows import HTTP_POPUP_SCRIPT, HTTPS_MODAL_SCRIPT
from PermissionBridge.memory_host import MemoryPermissionStore
from PermissionBridge.scratch_store import ScratchStore


class FailingPermissionStore(MemoryPermissionStore):

    async def set(self, kind, pattern, setting):
        raise RuntimeError("content settings unavailable")


class TestScratchCommands:

    @pytest.mark.asyncio
    async def test_get_after_set(self, dispatcher):
        assert await dispatcher.dispatch({"command": "SET", "key": "player", "value": {"id": "abc"}}) == {"success": True}
        assert await dispatcher.dispatch({"command": "GET", "key": "player"}) == {"success": True, "result": {"id": "abc"}}

    @pytest.mark.asyncio
    async def test_get_unset_key(self, dispatcher):
        assert await dispatcher.dispatch({"command": "GET", "key": "nothing"}) == {"success": True, "result": None}

    @pytest.mark.asyncio
    async def test_independent_keys(self, dispatcher):
        await dispatcher.dispatch({"command": "SET", "key": "a", "value": 1})
        await dispatcher.dispatch({"command": "SET", "key": "b", "value": 2})
        assert (await dispatcher.dispatch({"command": "GET", "key": "a"}))["result"] == 1
        assert (await dispatcher.dispatch({"command": "GET", "key": "b"}))["result"] == 2

    @pytest.mark.asyncio
    async def test_missing_fields(self, dispatcher):
        response = await dispatcher.dispatch({"command": "SET", "key": "a"})
        assert response["success"] is False
        assert "'value'" in response["error"]

        response = await dispatcher.dispatch({"command": "GET"})
        assert response["success"] is False

    @pytest.mark.asyncio
    async def test_injected_store_is_shared(self, host):
        store = ScratchStore()
        first = CommandDispatcher(host.permission_store, host.tab_registry, host.script_host, scratch_store=store)
        second = CommandDispatcher(host.permission_store, host.tab_registry, host.script_host, scratch_store=store)

        await first.dispatch({"command": "SET", "key": "shared", "value": True})

        assert (await second.dispatch({"command": "GET", "key": "shared"}))["result"] is True
        assert store.get("shared") is True


class TestPermissionCommands:

    @pytest.mark.asyncio
    async def test_set_notification_permission(self, host, dispatcher):
        response = await dispatcher.dispatch({
            "command": "SET_NOTIFICATION_PERMISSION",
            "siteUrl": "https://example.com/*",
            "permission": "block",
        })
        assert response == {"success": True}
        assert host.permission_store.get(
            PermissionKind.NOTIFICATION, "https://example.com/*") is PermissionSetting.BLOCK

    @pytest.mark.asyncio
    async def test_set_notification_permission_twice(self, host, dispatcher):
        request = {"command": "SET_NOTIFICATION_PERMISSION", "siteUrl": "https://example.com/*", "permission": "allow"}
        await dispatcher.dispatch(request)
        once = dict(host.permission_store.rules[PermissionKind.NOTIFICATION])

        assert await dispatcher.dispatch(request) == {"success": True}
        assert host.permission_store.rules[PermissionKind.NOTIFICATION] == once

    @pytest.mark.asyncio
    async def test_clear_needs_no_site(self, host, dispatcher):
        await dispatcher.dispatch({"command": "SET_NOTIFICATION_PERMISSION", "siteUrl": "https://a.com/*", "permission": "allow"})
        await dispatcher.dispatch({"command": "SET_NOTIFICATION_PERMISSION", "siteUrl": "https://b.com/*", "permission": "ask"})

        response = await dispatcher.dispatch({"command": "SET_NOTIFICATION_PERMISSION", "permission": "clear"})

        assert response == {"success": True}
        assert host.permission_store.rules[PermissionKind.NOTIFICATION] == {}

    @pytest.mark.asyncio
    async def test_set_popup_permission(self, host, dispatcher):
        response = await dispatcher.dispatch({
            "command": "SET_POPUP_PERMISSION",
            "siteUrl": "https://example.com/*",
            "permission": "allow",
        })
        assert response == {"success": True}
        assert host.permission_store.get(PermissionKind.POPUP, "https://example.com/*") is PermissionSetting.ALLOW

    @pytest.mark.asyncio
    async def test_popup_permission_rejects_ask(self, host, dispatcher):
        response = await dispatcher.dispatch({
            "command": "SET_POPUP_PERMISSION",
            "siteUrl": "https://example.com/*",
            "permission": "ask",
        })
        assert response["success"] is False
        assert host.permission_store.rules[PermissionKind.POPUP] == {}

    @pytest.mark.asyncio
    async def test_missing_site_url(self, dispatcher):
        response = await dispatcher.dispatch({"command": "SET_NOTIFICATION_PERMISSION", "permission": "allow"})
        assert response["success"] is False
        assert "'siteUrl'" in response["error"]


class TestTabAndScriptCommands:

    @pytest.mark.asyncio
    async def test_create_tab(self, host, dispatcher):
        first = host.tab_registry.add_tab("https://example.com/")

        response = await dispatcher.dispatch({"command": "CREATE_BROWSER_TAB", "url": "https://example.org/", "active": False})

        assert response == {"success": True}
        assert [tab["url"] for tab in host.tab_registry.tabs] == ["https://example.com/", "https://example.org/"]
        assert host.tab_registry.active_tab_id == first["id"]

    @pytest.mark.asyncio
    async def test_create_tab_is_active_by_default(self, host, dispatcher):
        host.tab_registry.add_tab("https://example.com/")
        await dispatcher.dispatch({"command": "CREATE_BROWSER_TAB", "url": "https://example.org/"})
        assert host.tab_registry.get_tab(0)["url"] == "https://example.org/"

    @pytest.mark.asyncio
    async def test_create_tab_rejects_non_boolean_active(self, host, dispatcher):
        response = await dispatcher.dispatch({"command": "CREATE_BROWSER_TAB", "url": "https://example.org/", "active": "false"})

        assert response == {"success": False, "error": "Field 'active' must be a boolean"}
        assert host.tab_registry.tabs == []

    @pytest.mark.asyncio
    async def test_execute_script_returns_raw_value(self, host, dispatcher):
        host.tab_registry.add_tab("https://example.com/")
        host.script_host.register("1+1", 2)

        response = await dispatcher.dispatch({"command": "EXECUTE_SCRIPT", "code": "1+1"})

        assert response == {"success": True, "result": 2}
        assert host.script_host.calls[0]["tab_id"] == 0
        assert host.script_host.calls[0]["all_frames"] is False

    @pytest.mark.asyncio
    async def test_execute_script_failure(self, host, dispatcher):
        host.tab_registry.add_tab("https://example.com/")
        host.script_host.register("undefinedFunction()", ReferenceError("undefinedFunction is not defined"))

        response = await dispatcher.dispatch({"command": "EXECUTE_SCRIPT", "code": "undefinedFunction()"})

        assert response["success"] is False
        assert "undefinedFunction is not defined" in response["error"]

    @pytest.mark.asyncio
    async def test_execute_script_requires_code(self, dispatcher):
        response = await dispatcher.dispatch({"command": "EXECUTE_SCRIPT"})
        assert response["success"] is False


class TestFlowCommands:

    @pytest.mark.asyncio
    async def test_accept_http_popup(self, host, dispatcher):
        host.tab_registry.add_tab("https://example.os.tc/subscribe", window_type="popup")
        host.script_host.register(HTTP_POPUP_SCRIPT, "successful")

        response = await dispatcher.dispatch({"command": "ACCEPT_HTTP_SUBSCRIPTION_POPUP"})

        assert response == {"success": True}

    @pytest.mark.asyncio
    async def test_accept_http_popup_not_found(self, dispatcher):
        response = await dispatcher.dispatch({"command": "ACCEPT_HTTP_SUBSCRIPTION_POPUP"})
        assert response["success"] is False
        assert "not found" in response["error"]

    @pytest.mark.asyncio
    async def test_accept_https_modal(self, host, dispatcher):
        host.tab_registry.add_tab("https://example.com/")
        host.script_host.register(HTTPS_MODAL_SCRIPT, "cancelled")

        response = await dispatcher.dispatch({
            "command": "ACCEPT_HTTPS_SUBSCRIPTION_MODAL",
            "parentTabUrl": "https://example.com/",
        })

        assert response["success"] is False
        assert response["result"] == ["cancelled"]

    @pytest.mark.asyncio
    async def test_accept_https_modal_requires_parent_url(self, dispatcher):
        response = await dispatcher.dispatch({"command": "ACCEPT_HTTPS_SUBSCRIPTION_MODAL"})
        assert response["success"] is False
        assert "'parentTabUrl'" in response["error"]


class TestUnrecognizedRequests:

    @pytest.mark.asyncio
    async def test_unknown_command_answered_by_default(self, dispatcher):
        response = await dispatcher.dispatch({"command": "FORMAT_DISK"})
        assert response == {"success": False, "error": "Unknown command: FORMAT_DISK"}

    @pytest.mark.asyncio
    async def test_unknown_command_ignored(self, host):
        dispatcher = CommandDispatcher(host.permission_store, host.tab_registry, host.script_host,
                                       unrecognized_policy="ignore")
        assert dispatcher.unrecognized_policy is UnrecognizedRequestPolicy.IGNORE
        assert await dispatcher.dispatch({"command": "FORMAT_DISK"}) is None
        assert await dispatcher.dispatch({}) is None

    @pytest.mark.asyncio
    async def test_non_object_request(self, dispatcher):
        response = await dispatcher.dispatch(["SET"])
        assert response["success"] is False

    @pytest.mark.asyncio
    async def test_internal_error_answered_by_default(self, host):
        dispatcher = CommandDispatcher(FailingPermissionStore(), host.tab_registry, host.script_host)

        response = await dispatcher.dispatch({
            "command": "SET_NOTIFICATION_PERMISSION",
            "siteUrl": "https://example.com/*",
            "permission": "allow",
        })

        assert response == {"success": False, "error": "content settings unavailable"}

    @pytest.mark.asyncio
    async def test_internal_error_ignored(self, host):
        dispatcher = CommandDispatcher(FailingPermissionStore(), host.tab_registry, host.script_host,
                                       unrecognized_policy=UnrecognizedRequestPolicy.IGNORE)

        response = await dispatcher.dispatch({
            "command": "SET_NOTIFICATION_PERMISSION",
            "siteUrl": "https://example.com/*",
            "permission": "allow",
        })

        assert response is None

    @pytest.mark.asyncio
    async def test_validation_errors_answered_under_both_policies(self, host):
        dispatcher = CommandDispatcher(host.permission_store, host.tab_registry, host.script_host,
                                       unrecognized_policy="ignore")
        response = await dispatcher.dispatch({"command": "GET"})
        assert response["success"] is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("policy", ["respond", "ignore"])
    async def test_non_string_key_rejected_under_both_policies(self, host, policy):
        dispatcher = CommandDispatcher(host.permission_store, host.tab_registry, host.script_host,
                                       unrecognized_policy=policy)

        response = await dispatcher.dispatch({"command": "SET", "key": ["a"], "value": 1})
        assert response == {"success": False, "error": "Field 'key' must be a string"}

        response = await dispatcher.dispatch({"command": "GET", "key": {"a": 1}})
        assert response == {"success": False, "error": "Field 'key' must be a string"}
        assert len(dispatcher.scratch_store) == 0
