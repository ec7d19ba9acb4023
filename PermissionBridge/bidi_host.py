#!/usr/bin/env python3

"""
WebDriver BiDi host

Implements the three host capabilities against a real browser through its
WebDriver BiDi endpoint (``ws://host:port/session``). The browser must already
be running with remote debugging enabled, for example
``firefox --remote-debugging-port 9222``.
"""

import asyncio
import json
import logging
import math
import os
import os.path
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urlparse

from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed

from .bridge_types import PermissionKind, PermissionSetting, RunAt, WindowType, url_matches, validate_site_pattern
from .capabilities import PermissionStore, ScriptHost, TabRegistry
from .exceptions import (
    BridgeCommunicationsError,
    BridgeConnectFailure,
    BridgeError,
    BridgeResponseNotReceived,
    BridgeValidationError,
    InjectionError
)

DEFAULT_BIDI_URL = "ws://127.0.0.1:9222/session"

SCRIPTS_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "scripts")

NOTIFICATION_PERMISSION_STATES = {
    PermissionSetting.ALLOW: "granted",
    PermissionSetting.BLOCK: "denied",
    PermissionSetting.ASK: "prompt",
}

# document.readyState values that satisfy each injection timing
READY_STATES = {
    RunAt.DOCUMENT_END.value: ("interactive", "complete"),
    RunAt.DOCUMENT_IDLE.value: ("complete",),
}

WAIT_FOR_READY_STATE = """new Promise(resolve => {{
    const ready = () => {states}.includes(document.readyState);
    if (ready()) {{
        resolve();
        return;
    }}
    const listener = () => {{
        if (ready()) {{
            document.removeEventListener('readystatechange', listener);
            resolve();
        }}
    }};
    document.addEventListener('readystatechange', listener);
}})"""


class BiDiConnection:
    """
    A WebDriver BiDi session over one websocket.

    Commands may be issued concurrently: every command gets its own id, and a
    single reader task routes each response to the future waiting for that id.
    Events are logged and dropped.
    """

    def __init__(self,
                 url: str = DEFAULT_BIDI_URL,
                 command_timeout: Optional[float] = None,
                 max_retries: int = 10,
                 retry_delay: float = 1.0):
        """
        Initialize the connection.

        Args:
            url: WebDriver BiDi websocket URL
            command_timeout: Seconds to wait for each response (None waits indefinitely)
            max_retries: Connection attempts before giving up
            retry_delay: Seconds between connection attempts
        """
        self.url = url
        self.command_timeout = command_timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.log = logging.getLogger("PermissionBridge.BiDiHost")

        self.ws_connection = None
        self.session_id = None
        self.msg_id = 0
        self._pending = {}  # type: Dict[int, asyncio.Future]
        self._reader_task = None

    async def connect(self) -> None:
        """Open the websocket and start a BiDi session"""
        last_error = None

        for attempt in range(self.max_retries):
            try:
                self.log.info("Connecting to WebDriver BiDi WebSocket (attempt {}/{}): {}".format(
                    attempt + 1, self.max_retries, self.url))
                self.ws_connection = await connect(self.url, max_size=64 * 1024 * 1024)
                break
            except Exception as e:
                last_error = e
                if attempt < self.max_retries - 1:
                    self.log.debug("Connection attempt {} failed: {}. Retrying in {}s...".format(
                        attempt + 1, e, self.retry_delay))
                    await asyncio.sleep(self.retry_delay)
                else:
                    self.log.error("All {} connection attempts failed".format(self.max_retries))
        else:
            raise BridgeConnectFailure("Connection failed after {} attempts. Last error: {}".format(
                self.max_retries, last_error))

        self._reader_task = asyncio.get_running_loop().create_task(self._read_loop())

        try:
            response = await self.send_command("session.new", {"capabilities": {}})
            self.session_id = response["result"]["sessionId"]
        except Exception as e:
            await self.close()
            raise BridgeConnectFailure("Failed to start WebDriver BiDi session: {}".format(e)) from e

        self.log.info("Connected to WebDriver BiDi session: {}".format(self.session_id))

    async def send_command(self, method: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """
        Send a command and wait for its response.

        Args:
            method: BiDi command name, e.g. 'browsingContext.getTree'
            params: Command parameters

        Returns:
            The success response message

        Raises:
            BridgeCommunicationsError: If the websocket is not connected or fails
            BridgeError: If the browser answers with an error
            BridgeResponseNotReceived: If command_timeout expires first
        """
        if self.ws_connection is None:
            raise BridgeCommunicationsError("WebSocket not connected")
        if self._reader_task is not None and self._reader_task.done():
            raise BridgeCommunicationsError("Connection to browser closed")

        self.msg_id += 1
        message_id = self.msg_id
        future = asyncio.get_running_loop().create_future()
        self._pending[message_id] = future

        message_str = json.dumps({"id": message_id, "method": method, "params": params})
        self.log.debug("Sending message: {}".format(message_str))

        try:
            try:
                await self.ws_connection.send(message_str)
            except Exception as e:
                raise BridgeCommunicationsError("Failed to send message: {}".format(e)) from e

            if self.command_timeout is None:
                response = await future
            else:
                try:
                    response = await asyncio.wait_for(future, self.command_timeout)
                except asyncio.TimeoutError:
                    raise BridgeResponseNotReceived(
                        "Timeout waiting for response with ID {} after {} seconds".format(
                            message_id, self.command_timeout))
        finally:
            self._pending.pop(message_id, None)

        if response.get("type") == "error" or "error" in response:
            raise BridgeError("Browser error for {}: {}: {}".format(
                method, response.get("error", "unknown error"), response.get("message", "")))

        return response

    async def _read_loop(self) -> None:
        error = None
        try:
            async for message_str in self.ws_connection:
                self.log.debug("Received response: {}".format(message_str))
                try:
                    message = json.loads(message_str)
                except ValueError:
                    self.log.warning("Discarding malformed message from browser: {!r}".format(message_str))
                    continue

                message_id = message.get("id")
                future = self._pending.get(message_id) if message_id is not None else None
                if future is not None:
                    if not future.done():
                        future.set_result(message)
                elif message.get("type") == "event":
                    self.log.debug("Ignoring event {}".format(message.get("method")))
                else:
                    self.log.debug("Discarding unsolicited message: {}".format(message))
        except ConnectionClosed as e:
            error = e
        finally:
            reason = "Connection to browser closed" + (": {}".format(error) if error else "")
            for future in self._pending.values():
                if not future.done():
                    future.set_exception(BridgeCommunicationsError(reason))
            self._pending.clear()

    async def close(self) -> None:
        """End the session and close the websocket"""
        if self.ws_connection is None:
            return
        if self.session_id is not None:
            try:
                await self.send_command("session.end", {})
            except Exception as e:
                self.log.debug("session.end failed: {}".format(e))
            self.session_id = None
        await self.ws_connection.close()
        if self._reader_task is not None:
            await asyncio.gather(self._reader_task, return_exceptions=True)
            self._reader_task = None
        self.ws_connection = None

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def get_tree(self, root: Optional[str] = None, max_depth: Optional[int] = None) -> List[Dict[str, Any]]:
        """Return the browsing context tree, all top-level contexts when root is None"""
        params = {}  # type: Dict[str, Any]
        if root is not None:
            params["root"] = root
        if max_depth is not None:
            params["maxDepth"] = max_depth
        response = await self.send_command("browsingContext.getTree", params)
        return response.get("result", {}).get("contexts", [])


class BiDiPermissionStore(PermissionStore):
    """
    Notification permissions through ``permissions.setPermission``.

    BiDi has no "clear all" call, so ``clear`` resets every origin this store
    has set back to prompt. Popup blocking is not part of the BiDi permissions
    module and is rejected with a BridgeError.
    """

    def __init__(self, connection: BiDiConnection):
        self.connection = connection
        self.origins = set()
        self.log = logging.getLogger("PermissionBridge.BiDiHost")

    async def set(self, kind: PermissionKind, pattern: str, setting: PermissionSetting) -> None:
        self._check_kind(kind)
        origin = pattern_origin(pattern)
        await self._set_state(origin, NOTIFICATION_PERMISSION_STATES[setting])
        self.origins.add(origin)

    async def clear(self, kind: PermissionKind) -> None:
        self._check_kind(kind)
        for origin in sorted(self.origins):
            await self._set_state(origin, NOTIFICATION_PERMISSION_STATES[PermissionSetting.ASK])
        self.log.info("Reset notification permission for {} origins".format(len(self.origins)))
        self.origins.clear()

    async def _set_state(self, origin: str, state: str) -> None:
        await self.connection.send_command("permissions.setPermission", {
            "descriptor": {"name": "notifications"},
            "state": state,
            "origin": origin,
        })

    def _check_kind(self, kind: PermissionKind) -> None:
        if kind is not PermissionKind.NOTIFICATION:
            raise BridgeError("{} permission is not exposed over WebDriver BiDi".format(kind.value))


class BiDiTabRegistry(TabRegistry):
    """Top-level browsing contexts as tabs. Contexts with an opener are popup windows."""

    def __init__(self, connection: BiDiConnection):
        self.connection = connection
        self.log = logging.getLogger("PermissionBridge.BiDiHost")

    async def list_tabs(self) -> List[Dict[str, Any]]:
        contexts = await self.connection.get_tree(max_depth=0)
        return [context_to_tab(context) for context in contexts]

    async def query(self,
                    window_type: Optional[str] = None,
                    url_patterns: Optional[Iterable[str]] = None,
                    url: Optional[str] = None) -> List[Dict[str, Any]]:
        tabs = []
        for tab in await self.list_tabs():
            if window_type is not None and tab["window_type"] != window_type:
                continue
            if url_patterns is not None and not url_matches(tab["url"], url_patterns):
                continue
            if url is not None and tab["url"] != url:
                continue
            tabs.append(tab)
        return tabs

    async def create(self, url: str, active: bool = True) -> Dict[str, Any]:
        response = await self.connection.send_command("browsingContext.create", {
            "type": "tab",
            "background": not active,
        })
        context_id = response["result"]["context"]
        await self.connection.send_command("browsingContext.navigate", {
            "context": context_id,
            "url": url,
            "wait": "none",
        })
        return {"id": context_id, "url": url, "window_type": WindowType.NORMAL.value}


class BiDiScriptHost(ScriptHost):
    """
    Script injection through ``script.evaluate``.

    With ``all_frames`` the script is evaluated in the tab's context and then in
    every descendant context, depth-first; a frame where the script throws gets
    a None slot. Without it, a throwing script is an InjectionError. Tab id 0
    (or None) means the first top-level context.
    """

    def __init__(self, connection: BiDiConnection, scripts_dir: str = SCRIPTS_DIR):
        self.connection = connection
        self.scripts_dir = scripts_dir
        self.log = logging.getLogger("PermissionBridge.BiDiHost")

    async def execute(self,
                      tab_id: Any,
                      code: Optional[str] = None,
                      file: Optional[str] = None,
                      all_frames: bool = False,
                      run_at: Optional[str] = None) -> List[Any]:
        source = code if code is not None else self.load_script(file)

        try:
            context_id = await self._resolve_context(tab_id)
            frames = await self._frames(context_id) if all_frames else [context_id]

            results = []
            for frame in frames:
                if run_at in READY_STATES:
                    await self._wait_for_ready_state(frame, READY_STATES[run_at])
                try:
                    results.append(await self._evaluate(frame, source))
                except InjectionError as e:
                    if not all_frames:
                        raise
                    # A frame that throws leaves an empty slot, the others still count
                    self.log.warning(str(e))
                    results.append(None)
            return results

        except BridgeError as e:
            raise InjectionError("Host refused script injection into tab {}: {}".format(tab_id, e)) from e

    def load_script(self, file: str) -> str:
        path = os.path.join(self.scripts_dir, os.path.basename(file))
        try:
            with open(path, "r", encoding="utf-8") as f:
                return f.read()
        except OSError as e:
            raise InjectionError("Could not load script file {}: {}".format(file, e)) from e

    async def _resolve_context(self, tab_id: Any) -> str:
        if tab_id not in (0, None):
            return tab_id
        contexts = await self.connection.get_tree(max_depth=0)
        if not contexts:
            raise InjectionError("No open tab to run the script in")
        return contexts[0]["context"]

    async def _frames(self, context_id: str) -> List[str]:
        frames = []

        def walk(contexts):
            for context in contexts:
                frames.append(context["context"])
                walk(context.get("children") or [])

        walk(await self.connection.get_tree(root=context_id))
        return frames

    async def _wait_for_ready_state(self, frame: str, states) -> None:
        await self.connection.send_command("script.evaluate", {
            "expression": WAIT_FOR_READY_STATE.format(states=json.dumps(list(states))),
            "target": {"context": frame},
            "awaitPromise": True,
        })

    async def _evaluate(self, frame: str, source: str) -> Any:
        response = await self.connection.send_command("script.evaluate", {
            "expression": source,
            "target": {"context": frame},
            "awaitPromise": False,
        })
        result = response.get("result", {})
        if result.get("type") == "exception":
            details = result.get("exceptionDetails", {})
            raise InjectionError("Script threw in frame {}: {}".format(frame, details.get("text", details)))
        return deserialize_remote_value(result.get("result"))


class BiDiHost:
    """Bundle of the three BiDi capabilities over one connection"""

    def __init__(self, connection: BiDiConnection):
        self.connection = connection
        self.permission_store = BiDiPermissionStore(connection)
        self.tab_registry = BiDiTabRegistry(connection)
        self.script_host = BiDiScriptHost(connection)


def context_to_tab(context: Dict[str, Any]) -> Dict[str, Any]:
    """Convert a browsingContext.Info into a tab dict"""
    return {
        "id": context["context"],
        "url": context.get("url", ""),
        "window_type": WindowType.POPUP.value if context.get("originalOpener") else WindowType.NORMAL.value,
    }


def pattern_origin(pattern: str) -> str:
    """
    Derive the origin a site pattern applies to.

    BiDi permissions are set per origin, so the pattern's scheme and host must
    be concrete: ``https://example.com/*`` works, ``*://*.example.com/*`` does not.
    """
    validate_site_pattern(pattern)
    parsed = urlparse(pattern)
    if not parsed.scheme or not parsed.netloc or "*" in parsed.scheme or "*" in parsed.netloc:
        raise BridgeValidationError(
            "Site pattern '{}' does not name a single origin".format(pattern))
    return "{}://{}".format(parsed.scheme, parsed.netloc)


def deserialize_remote_value(value: Optional[Dict[str, Any]]) -> Any:
    """
    Convert a BiDi ``script.RemoteValue`` into a plain Python value.

    Primitives, arrays, sets, objects and maps are converted; other remote
    types (nodes, windows, functions...) are returned as the raw dict.
    """
    if not isinstance(value, dict):
        return value

    value_type = value.get("type")

    if value_type in ("undefined", "null"):
        return None
    elif value_type in ("string", "boolean"):
        return value.get("value")
    elif value_type == "number":
        number = value.get("value")
        if number == "NaN":
            return math.nan
        elif number == "Infinity":
            return math.inf
        elif number == "-Infinity":
            return -math.inf
        elif number == "-0":
            return -0.0
        return number
    elif value_type == "bigint":
        return int(value.get("value"))
    elif value_type in ("array", "set"):
        return [deserialize_remote_value(item) for item in value.get("value", [])]
    elif value_type in ("object", "map"):
        result = {}
        for key, item in value.get("value", []):
            if isinstance(key, dict):
                key = deserialize_remote_value(key)
            result[key] = deserialize_remote_value(item)
        return result
    elif value_type in ("date", "regexp"):
        return value.get("value")

    return value
