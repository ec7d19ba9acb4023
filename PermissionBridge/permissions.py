#!/usr/bin/env python3

"""
Permission Setter

Sets or clears a site's notification or popup permission through the host's
permission store.
"""

import logging
from typing import Optional

from .bridge_types import PermissionKind, PermissionSetting, validate_permission_setting, validate_site_pattern
from .capabilities import PermissionStore

log = logging.getLogger("PermissionBridge.Permissions")


async def set_permission(store: PermissionStore,
                         kind: PermissionKind,
                         site_pattern: Optional[str],
                         setting) -> None:
    """
    Set or clear a per-site permission.

    ``clear`` removes every rule of ``kind``, not only the one for
    ``site_pattern``; the pattern is ignored in that case. Any other setting
    upserts the single rule ``site_pattern -> setting``.

    Args:
        store: Host permission store
        kind: Notification or popup
        site_pattern: URL match pattern the rule applies to
        setting: PermissionSetting or its string value

    Raises:
        BridgeValidationError: If the setting is not valid for the kind or the pattern is malformed
    """
    setting = validate_permission_setting(kind, setting.value if isinstance(setting, PermissionSetting) else setting)

    if setting is PermissionSetting.CLEAR:
        log.info("Clearing all {} permissions".format(kind.value))
        await store.clear(kind)
        return

    validate_site_pattern(site_pattern)
    log.info("Setting {} permission for {} to {}".format(kind.value, site_pattern, setting.value))
    await store.set(kind, site_pattern, setting)
