#!/usr/bin/env python3

"""
In-memory host

Implements the three host capabilities without a browser. Tabs are plain
dicts, permission rules live in dicts and scripts are answered by handlers
registered per code string or file name. Used by the test suite and by the
``--backend memory`` dry-run mode of the CLI.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from .bridge_types import PermissionKind, PermissionSetting, WindowType, url_matches
from .capabilities import PermissionStore, ScriptHost, TabRegistry
from .exceptions import InjectionError

# Tab id meaning "the current tab"
CURRENT_TAB_ID = 0


class MemoryPermissionStore(PermissionStore):

    def __init__(self):
        self.rules = {kind: {} for kind in PermissionKind}  # kind -> {pattern: PermissionSetting}

    async def set(self, kind: PermissionKind, pattern: str, setting: PermissionSetting) -> None:
        self.rules[kind][pattern] = setting

    async def clear(self, kind: PermissionKind) -> None:
        self.rules[kind].clear()

    def get(self, kind: PermissionKind, pattern: str) -> Optional[PermissionSetting]:
        return self.rules[kind].get(pattern)


class MemoryTabRegistry(TabRegistry):

    def __init__(self):
        self.tabs = []  # type: List[Dict[str, Any]]
        self.active_tab_id = None
        self._next_id = 1

    def add_tab(self, url: str, window_type: str = WindowType.NORMAL.value, frames: int = 1,
                active: bool = True) -> Dict[str, Any]:
        """
        Register a tab.

        Args:
            url: Current URL of the tab
            window_type: 'normal' or 'popup'
            frames: Number of frames in the tab, top frame included
            active: Make this the current tab

        Returns:
            The new tab dict
        """
        tab = {
            "id": self._next_id,
            "url": url,
            "window_type": WindowType(window_type).value,
            "frames": frames,
        }
        self._next_id += 1
        self.tabs.append(tab)
        if active or self.active_tab_id is None:
            self.active_tab_id = tab["id"]
        return tab

    def remove_tab(self, tab_id: Any) -> None:
        self.tabs = [tab for tab in self.tabs if tab["id"] != tab_id]
        if self.active_tab_id == tab_id:
            self.active_tab_id = self.tabs[-1]["id"] if self.tabs else None

    def get_tab(self, tab_id: Any) -> Optional[Dict[str, Any]]:
        if tab_id == CURRENT_TAB_ID:
            tab_id = self.active_tab_id
        for tab in self.tabs:
            if tab["id"] == tab_id:
                return tab
        return None

    async def query(self,
                    window_type: Optional[str] = None,
                    url_patterns: Optional[Iterable[str]] = None,
                    url: Optional[str] = None) -> List[Dict[str, Any]]:
        matches = []
        for tab in self.tabs:
            if window_type is not None and tab["window_type"] != window_type:
                continue
            if url_patterns is not None and not url_matches(tab["url"], url_patterns):
                continue
            if url is not None and tab["url"] != url:
                continue
            matches.append(_public_tab(tab))
        return matches

    async def create(self, url: str, active: bool = True) -> Dict[str, Any]:
        return _public_tab(self.add_tab(url, active=active))


class MemoryScriptHost(ScriptHost):
    """
    Answers injections from registered handlers.

    A handler is looked up by the file name, or by the code string for inline
    scripts. It is either a plain value returned by every frame, an exception
    instance raised as an InjectionError, or a callable taking
    ``(tab, frame_index)`` whose return value fills that frame's slot. With
    ``all_frames``, a callable that raises leaves None in that frame's slot.
    """

    def __init__(self, registry: MemoryTabRegistry):
        self.registry = registry
        self.handlers = {}  # type: Dict[str, Any]
        self.calls = []  # type: List[Dict[str, Any]]
        self.log = logging.getLogger("PermissionBridge.MemoryHost")

    def register(self, key: str, handler: Any) -> None:
        self.handlers[key] = handler

    async def execute(self,
                      tab_id: Any,
                      code: Optional[str] = None,
                      file: Optional[str] = None,
                      all_frames: bool = False,
                      run_at: Optional[str] = None) -> List[Any]:
        self.calls.append({
            "tab_id": tab_id,
            "code": code,
            "file": file,
            "all_frames": all_frames,
            "run_at": run_at,
        })

        tab = self.registry.get_tab(tab_id)
        if tab is None:
            raise InjectionError("No tab with id {}".format(tab_id))

        key = file if file is not None else code
        if key not in self.handlers:
            raise InjectionError("No script registered for {!r}".format(key))
        handler = self.handlers[key]

        frame_count = tab["frames"] if all_frames else 1
        results = []
        for frame_index in range(frame_count):
            if isinstance(handler, BaseException):
                raise InjectionError("Script {!r} failed in tab {}: {}".format(key, tab["id"], handler))
            if callable(handler):
                try:
                    results.append(handler(_public_tab(tab), frame_index))
                except Exception as e:
                    if all_frames:
                        self.log.debug("Script {!r} threw in frame {}: {}".format(key, frame_index, e))
                        results.append(None)
                        continue
                    raise InjectionError("Script {!r} failed in tab {}: {}".format(key, tab["id"], e)) from e
            else:
                results.append(handler)
        return results


class MemoryHost:
    """Bundle of the three in-memory capabilities sharing one tab registry"""

    def __init__(self):
        self.permission_store = MemoryPermissionStore()
        self.tab_registry = MemoryTabRegistry()
        self.script_host = MemoryScriptHost(self.tab_registry)


def _public_tab(tab: Dict[str, Any]) -> Dict[str, Any]:
    return {"id": tab["id"], "url": tab["url"], "window_type": tab["window_type"]}
