#!/usr/bin/env python3

"""
Remote Script Runner

Injects inline code or a named script file into a tab and hands back the raw
per-frame results. Interpreting them is left to the caller.
"""

import logging
from typing import Any, List, Optional

from .bridge_types import RunAt
from .capabilities import ScriptHost
from .exceptions import BridgeValidationError, InjectionError


class ScriptRunner:

    def __init__(self, host: ScriptHost):
        self.host = host
        self.log = logging.getLogger("PermissionBridge.ScriptRunner")

    async def run(self,
                  tab_id: Any,
                  code: Optional[str] = None,
                  file: Optional[str] = None,
                  all_frames: bool = False,
                  run_at: Optional[str] = None) -> List[Any]:
        """
        Run a script in a tab.

        Args:
            tab_id: Target tab id
            code: Inline JavaScript source
            file: Name of a bundled script file
            all_frames: Run in every frame instead of only the top frame
            run_at: Injection timing ('document_start', 'document_end', 'document_idle')

        Returns:
            One slot per frame the script ran in

        Raises:
            BridgeValidationError: If neither or both of code and file are given
            InjectionError: If the host failed to run the script
        """
        if (code is None) == (file is None):
            raise BridgeValidationError("Exactly one of code or file must be given")
        if run_at is not None:
            run_at = RunAt(run_at).value

        self.log.info("Injecting {} into tab {} (all_frames={}, run_at={})".format(
            "file {}".format(file) if file else "inline code", tab_id, all_frames, run_at))

        try:
            results = await self.host.execute(tab_id, code=code, file=file, all_frames=all_frames, run_at=run_at)
        except InjectionError:
            raise
        except Exception as e:
            raise InjectionError("Failed to inject script into tab {}: {}".format(tab_id, e)) from e

        results = list(results)
        self.log.debug("Tab {} returned {}".format(tab_id, results))
        return results
