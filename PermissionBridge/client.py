#!/usr/bin/env python3

"""
PermissionBridge Client

Websocket client for test drivers talking to a running BridgeServer.

    async with BridgeClient("ws://localhost:9333") as bridge:
        await bridge.set_notification_permission("https://example.com/*", "allow")
        response = await bridge.accept_http_popup()
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed

from .bridge_types import Command
from .exceptions import BridgeCommunicationsError, BridgeConnectFailure, BridgeResponseNotReceived


class BridgeClient:

    def __init__(self, url: str, timeout: Optional[float] = None):
        """
        Args:
            url: Websocket URL of the bridge server
            timeout: Seconds to wait for each response (None waits indefinitely)
        """
        self.url = url
        self.timeout = timeout
        self.log = logging.getLogger("PermissionBridge.Client")
        self.ws_connection = None
        self.msg_id = 0
        self._pending = {}  # type: Dict[int, asyncio.Future]
        self._reader_task = None

    async def connect(self) -> None:
        try:
            self.ws_connection = await connect(self.url)
        except Exception as e:
            raise BridgeConnectFailure("Could not connect to bridge at {}: {}".format(self.url, e)) from e
        self._reader_task = asyncio.get_running_loop().create_task(self._read_loop())

    async def close(self) -> None:
        if self.ws_connection is None:
            return
        await self.ws_connection.close()
        await asyncio.gather(self._reader_task, return_exceptions=True)
        self.ws_connection = None
        self._reader_task = None

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def request(self, command, **fields) -> Dict[str, Any]:
        """
        Send one command and wait for its response.

        Args:
            command: Command or its string tag
            **fields: Payload fields, named as on the wire (siteUrl, parentTabUrl...)

        Returns:
            The response dict, without the echoed id
        """
        if self.ws_connection is None or self._reader_task.done():
            raise BridgeCommunicationsError("Not connected")

        self.msg_id += 1
        message_id = self.msg_id
        future = asyncio.get_running_loop().create_future()
        self._pending[message_id] = future

        message = dict(fields)
        message["id"] = message_id
        message["command"] = command.value if isinstance(command, Command) else command

        try:
            try:
                await self.ws_connection.send(json.dumps(message))
            except ConnectionClosed as e:
                raise BridgeCommunicationsError("Bridge connection closed: {}".format(e)) from e
            try:
                response = await asyncio.wait_for(future, self.timeout)
            except asyncio.TimeoutError:
                raise BridgeResponseNotReceived("No response to {} after {} seconds".format(
                    message["command"], self.timeout))
        finally:
            self._pending.pop(message_id, None)

        response.pop("id", None)
        return response

    async def _read_loop(self) -> None:
        try:
            async for message_str in self.ws_connection:
                message = json.loads(message_str)
                future = self._pending.get(message.get("id"))
                if future is not None and not future.done():
                    future.set_result(message)
                else:
                    self.log.warning("Response without a waiting request: {}".format(message))
        except ConnectionClosed:
            pass
        finally:
            for future in self._pending.values():
                if not future.done():
                    future.set_exception(BridgeCommunicationsError("Bridge connection closed"))

    async def set_notification_permission(self, site_url: Optional[str], permission: str) -> Dict[str, Any]:
        return await self.request(Command.SET_NOTIFICATION_PERMISSION, siteUrl=site_url, permission=permission)

    async def set_popup_permission(self, site_url: Optional[str], permission: str) -> Dict[str, Any]:
        return await self.request(Command.SET_POPUP_PERMISSION, siteUrl=site_url, permission=permission)

    async def create_tab(self, url: str, active: bool = True) -> Dict[str, Any]:
        return await self.request(Command.CREATE_BROWSER_TAB, url=url, active=active)

    async def execute_script(self, code: str, tab_id: Any = 0) -> Dict[str, Any]:
        return await self.request(Command.EXECUTE_SCRIPT, code=code, tabId=tab_id)

    async def accept_http_popup(self) -> Dict[str, Any]:
        return await self.request(Command.ACCEPT_HTTP_SUBSCRIPTION_POPUP)

    async def accept_https_modal(self, parent_tab_url: str) -> Dict[str, Any]:
        return await self.request(Command.ACCEPT_HTTPS_SUBSCRIPTION_MODAL, parentTabUrl=parent_tab_url)

    async def get(self, key: str) -> Any:
        """Return the scratch value stored under key"""
        return (await self.request(Command.GET, key=key)).get("result")

    async def set(self, key: str, value: Any) -> Dict[str, Any]:
        return await self.request(Command.SET, key=key, value=value)
