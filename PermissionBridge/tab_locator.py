#!/usr/bin/env python3

"""
Tab Locator

Resolves a tab query into at most one tab. Zero matches is not an error (the
caller decides what "nothing open" means); more than one match always is.
"""

import logging
from typing import Any, Dict, Iterable, Optional

from .capabilities import TabRegistry
from .exceptions import AmbiguousMatchError


class TabLocator:
    """Finds the single tab a flow should act on"""

    def __init__(self, registry: TabRegistry):
        self.registry = registry
        self.log = logging.getLogger("PermissionBridge.TabLocator")

    async def locate(self,
                     window_type: Optional[str] = None,
                     url_patterns: Optional[Iterable[str]] = None,
                     url: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """
        Find the one tab matching the query.

        Args:
            window_type: Window type of the tab ('popup' for subscription popups)
            url_patterns: Match patterns the tab URL must match
            url: Exact URL of the tab

        Returns:
            The matching tab dict, or None when no tab matches

        Raises:
            AmbiguousMatchError: If two or more tabs match
        """
        if url_patterns is not None:
            url_patterns = list(url_patterns)

        tabs = await self.registry.query(window_type=window_type, url_patterns=url_patterns, url=url)

        if not tabs:
            self.log.info("No tab matched window_type={} url_patterns={} url={}".format(
                window_type, url_patterns, url))
            return None

        if len(tabs) > 1:
            urls = [tab.get("url") for tab in tabs]
            raise AmbiguousMatchError(
                "Found {} matching tabs ({}), expected at most one. "
                "Close the extra windows and try again.".format(len(tabs), ", ".join(urls)))

        tab = tabs[0]
        self.log.debug("Located tab {} at {}".format(tab["id"], tab["url"]))
        return tab
