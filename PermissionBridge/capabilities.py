#!/usr/bin/env python3

"""
Host capability interfaces

The bridge never touches a browser directly. Everything it needs from the host
goes through these three interfaces, which are handed to the dispatcher when it
is built. ``memory_host`` and ``bidi_host`` provide implementations.
"""

from typing import Any, Dict, Iterable, List, Optional

from .bridge_types import PermissionKind, PermissionSetting


class PermissionStore:
    """Per-site content settings, keyed by (kind, site pattern)"""

    async def set(self, kind: PermissionKind, pattern: str, setting: PermissionSetting) -> None:
        """Upsert the rule ``pattern -> setting`` for the given kind"""
        raise NotImplementedError

    async def clear(self, kind: PermissionKind) -> None:
        """Remove every stored rule of the given kind"""
        raise NotImplementedError


class TabRegistry:
    """Enumeration and creation of browser tabs"""

    async def query(self,
                    window_type: Optional[str] = None,
                    url_patterns: Optional[Iterable[str]] = None,
                    url: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        List the tabs matching every given criterion.

        Args:
            window_type: Window type the tab must live in ('normal' or 'popup')
            url_patterns: Match patterns, the tab URL must match at least one
            url: Exact URL the tab must have

        Returns:
            List of tab dicts with 'id', 'url' and 'window_type' keys
        """
        raise NotImplementedError

    async def create(self, url: str, active: bool = True) -> Dict[str, Any]:
        """Open a new tab at ``url`` and return its tab dict"""
        raise NotImplementedError


class ScriptHost:
    """Injection of scripts into a tab's frames"""

    async def execute(self,
                      tab_id: Any,
                      code: Optional[str] = None,
                      file: Optional[str] = None,
                      all_frames: bool = False,
                      run_at: Optional[str] = None) -> List[Any]:
        """
        Run inline code or a named script file in a tab.

        Returns:
            One result slot per frame the script ran in, top frame first

        Raises:
            InjectionError: If the host could not run the script
        """
        raise NotImplementedError
