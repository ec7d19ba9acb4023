#!/usr/bin/env python3

"""
Scratch store for the GET and SET commands.
"""

import logging
from typing import Any, Dict


class ScratchStore:
    """
    Process-lifetime key/value memory shared by every caller.

    There is no eviction, expiry or isolation between callers; concurrent
    writers to one key see last-write-wins.
    """

    def __init__(self):
        self._values = {}  # type: Dict[str, Any]
        self.log = logging.getLogger("PermissionBridge.ScratchStore")

    def get(self, key: str) -> Any:
        """Return the value stored under ``key``, or None if it was never set"""
        return self._values.get(key)

    def set(self, key: str, value: Any) -> None:
        self.log.debug("Storing scratch value for key {!r}".format(key))
        self._values[key] = value

    def __contains__(self, key: str) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)
