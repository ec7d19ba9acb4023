#!/usr/bin/env python3

"""
Shared fixtures for the PermissionBridge test suite
"""

import pytest

from PermissionBridge.dispatcher import CommandDispatcher
from PermissionBridge.flows import FlowOrchestrator
from PermissionBridge.memory_host import MemoryHost
from PermissionBridge.script_runner import ScriptRunner
from PermissionBridge.tab_locator import TabLocator


@pytest.fixture
def host():
    """A fresh in-memory browser for each test"""
    return MemoryHost()


@pytest.fixture
def orchestrator(host):
    return FlowOrchestrator(
        TabLocator(host.tab_registry),
        host.permission_store,
        ScriptRunner(host.script_host),
    )


@pytest.fixture
def dispatcher(host):
    return CommandDispatcher(host.permission_store, host.tab_registry, host.script_host)
