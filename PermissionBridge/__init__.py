#!/usr/bin/env python3

"""
PermissionBridge - Main package initialization

This package lets an external test driver change a browser's per-site
permissions and accept subscription popups and modals through a small
websocket command protocol.
"""

from .dispatcher import CommandDispatcher, UnrecognizedRequestPolicy
from .flows import FlowOrchestrator, is_successful
from .scratch_store import ScratchStore
from .server import BridgeServer
from .client import BridgeClient
from .bridge_types import Command, PermissionKind, PermissionSetting, WindowType
from .exceptions import (
    PermissionBridgeException,
    BridgeValidationError,
    UnknownCommandError,
    AmbiguousMatchError,
    InjectionError,
    FlowFailure,
    BridgeConnectFailure,
    BridgeCommunicationsError,
    BridgeError,
    BridgeResponseNotReceived
)

# Main exports
__all__ = [
    'CommandDispatcher',
    'UnrecognizedRequestPolicy',
    'FlowOrchestrator',
    'is_successful',
    'ScratchStore',
    'BridgeServer',
    'BridgeClient',
    'Command',
    'PermissionKind',
    'PermissionSetting',
    'WindowType',
    'PermissionBridgeException',
    'BridgeValidationError',
    'UnknownCommandError',
    'AmbiguousMatchError',
    'InjectionError',
    'FlowFailure',
    'BridgeConnectFailure',
    'BridgeCommunicationsError',
    'BridgeError',
    'BridgeResponseNotReceived',
    'setup_logging',
    'main'
]

from .utils import setup_logging, main
