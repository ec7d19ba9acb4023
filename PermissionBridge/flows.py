#!/usr/bin/env python3

"""
Flow Orchestrator

Drives the two subscription acceptance flows. Each flow locates its target tab,
grants the notification permission for the tab's origin, injects the acceptance
script into every frame and turns the per-frame results into one response.
"""

import logging
from typing import Any, Dict, Iterable, Optional, Sequence

from .bridge_types import (
    DEFAULT_POPUP_URL_PATTERNS, SUCCESS_SENTINEL, PermissionKind, PermissionSetting, RunAt, WindowType,
    failure_response, origin_of, success_response
)
from .capabilities import PermissionStore
from .exceptions import FlowFailure
from .permissions import set_permission
from .script_runner import ScriptRunner
from .tab_locator import TabLocator

HTTP_POPUP_SCRIPT = "accept_http_subscription_popup.js"
HTTPS_MODAL_SCRIPT = "accept_https_subscription_modal.js"


def is_successful(results: Optional[Sequence[Any]]) -> bool:
    """True iff some frame returned exactly the success sentinel"""
    if not results:
        return False
    return any(isinstance(value, str) and value == SUCCESS_SENTINEL for value in results)


class FlowOrchestrator:
    """
    Runs the accept-http-popup and accept-https-modal flows.

    Neither flow raises: every failure, including ambiguous tab matches and
    injection errors, comes back as a ``{"success": False, "error": ...}``
    response.
    """

    def __init__(self,
                 locator: TabLocator,
                 permission_store: PermissionStore,
                 runner: ScriptRunner,
                 popup_url_patterns: Optional[Iterable[str]] = None):
        """
        Args:
            locator: Tab locator used to find the popup or the modal's parent tab
            permission_store: Store used to pre-authorize notifications
            runner: Script runner used to inject the acceptance scripts
            popup_url_patterns: Match patterns identifying the subscription popup page
        """
        self.locator = locator
        self.permission_store = permission_store
        self.runner = runner
        self.popup_url_patterns = list(popup_url_patterns or DEFAULT_POPUP_URL_PATTERNS)
        self.log = logging.getLogger("PermissionBridge.Flows")

    async def accept_http_popup(self) -> Dict[str, Any]:
        """Accept the subscription prompt shown in an HTTP site's popup window"""
        try:
            tab = await self.locator.locate(window_type=WindowType.POPUP.value,
                                            url_patterns=self.popup_url_patterns)
            if tab is None:
                self.log.warning("HTTP subscription popup not found")
                return failure_response("HTTP subscription popup not found")

            await self._accept_in_tab(tab, HTTP_POPUP_SCRIPT, run_at=RunAt.DOCUMENT_IDLE.value)
            return success_response()

        except FlowFailure as e:
            self.log.warning("HTTP popup flow failed: {}".format(e))
            return failure_response(e, result=e.results)
        except Exception as e:
            self.log.exception("HTTP popup flow raised an error")
            return failure_response(e)

    async def accept_https_modal(self, parent_tab_url: str) -> Dict[str, Any]:
        """
        Accept the subscription modal shown inside an iframe of an HTTPS page.

        Args:
            parent_tab_url: Exact URL of the tab hosting the modal
        """
        try:
            tab = await self.locator.locate(url=parent_tab_url)
            if tab is None:
                self.log.warning("Tab hosting the HTTPS subscription modal not found at {}".format(parent_tab_url))
                return failure_response("HTTPS subscription modal parent tab not found: {}".format(parent_tab_url))

            await self._accept_in_tab(tab, HTTPS_MODAL_SCRIPT)
            return success_response()

        except FlowFailure as e:
            self.log.warning("HTTPS modal flow failed: {}".format(e))
            return failure_response(e, result=e.results)
        except Exception as e:
            self.log.exception("HTTPS modal flow raised an error")
            return failure_response(e)

    async def _accept_in_tab(self, tab: Dict[str, Any], script_file: str, run_at: Optional[str] = None) -> None:
        # The Continue button may require the permission to already be settable,
        # so it is granted before the page is driven.
        site_pattern = origin_of(tab["url"]) + "/*"
        await set_permission(self.permission_store, PermissionKind.NOTIFICATION, site_pattern,
                             PermissionSetting.ALLOW)

        results = await self.runner.run(tab["id"], file=script_file, all_frames=True, run_at=run_at)

        if not is_successful(results):
            raise FlowFailure("Subscription script did not report success in tab {}: {!r}".format(
                tab["id"], results), results=results)

        self.log.info("Subscription accepted in tab {} ({})".format(tab["id"], tab["url"]))
