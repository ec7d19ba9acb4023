#!/usr/bin/env python3

"""
PermissionBridge Exceptions

This module contains all custom exceptions for PermissionBridge.
"""


class PermissionBridgeException(Exception):
    """Base exception for PermissionBridge errors"""
    pass


class BridgeValidationError(PermissionBridgeException, ValueError):
    """Exception raised when a request payload is missing or has invalid fields"""
    pass


class UnknownCommandError(PermissionBridgeException):
    """Exception raised when a request carries an unrecognized command tag"""
    pass


class AmbiguousMatchError(PermissionBridgeException):
    """Exception raised when more than one tab matches a locate query"""
    pass


class InjectionError(PermissionBridgeException):
    """Exception raised when the host refuses or fails a script injection"""
    pass


class FlowFailure(PermissionBridgeException):
    """Exception raised when an injected script ran but did not report success"""

    def __init__(self, message, results=None):
        super().__init__(message)
        self.results = results


class BridgeConnectFailure(PermissionBridgeException):
    """Exception raised when connection to the browser fails"""
    pass


class BridgeCommunicationsError(PermissionBridgeException):
    """Exception raised when communication with the browser fails"""
    pass


class BridgeError(PermissionBridgeException):
    """Exception raised when the browser returns an error response"""
    pass


class BridgeResponseNotReceived(PermissionBridgeException):
    """Exception raised when expected response is not received"""
    pass
