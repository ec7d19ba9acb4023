#!/usr/bin/env python3

"""
PermissionBridge Utilities

This module contains logging setup, the command line interface and small
helpers for PermissionBridge.
"""

import asyncio
import json
import logging
import argparse
import socket
import sys


def setup_logging(verbose: bool = False):
    """
    Configure logging for the bridge process.

    The websockets library logs every frame at debug level, so it stays at
    WARNING unless verbose output was asked for.

    Returns:
        The "PermissionBridge" parent logger
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    logging.getLogger("websockets").setLevel(logging.DEBUG if verbose else logging.WARNING)
    return logging.getLogger("PermissionBridge")


def parse_field(text: str):
    """
    Parse a ``key=value`` command line field. The value is read as JSON when
    possible and kept as a plain string otherwise.
    """
    if "=" not in text:
        raise argparse.ArgumentTypeError("Field '{}' must look like key=value".format(text))
    key, raw_value = text.split("=", 1)
    try:
        value = json.loads(raw_value)
    except ValueError:
        value = raw_value
    return key, value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="PermissionBridge - Remote control of browser permissions and subscription prompts")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")

    subparsers = parser.add_subparsers(dest="command")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the bridge server")
    serve_parser.add_argument("--host", default="localhost", help="Interface to listen on")
    serve_parser.add_argument("--port", type=int, default=None, help="Port to listen on (automatic if omitted)")
    serve_parser.add_argument("--backend", choices=["bidi", "memory"], default="bidi",
                              help="Browser backend ('memory' runs without a browser)")
    serve_parser.add_argument("--bidi-url", default=None, help="WebDriver BiDi websocket URL of the browser")
    serve_parser.add_argument("--command-timeout", type=float, default=None,
                              help="Seconds to wait for each browser command (waits indefinitely if omitted)")
    serve_parser.add_argument("--unknown-commands", choices=["respond", "ignore"], default="respond",
                              help="Answer unknown commands and internal errors, or drop them silently")
    serve_parser.add_argument("--popup-pattern", action="append", default=None,
                              help="Match pattern of the HTTP subscription popup page (repeatable)")

    # Send command
    send_parser = subparsers.add_parser("send", help="Send one command to a running bridge")
    send_parser.add_argument("bridge_command", help="Command tag, e.g. SET_NOTIFICATION_PERMISSION")
    send_parser.add_argument("--url", default="ws://localhost:9333", help="Websocket URL of the bridge")
    send_parser.add_argument("--field", "-f", action="append", type=parse_field, default=[],
                             help="Payload field as key=value (repeatable)")
    send_parser.add_argument("--timeout", type=float, default=None, help="Seconds to wait for the response")

    # Version command
    subparsers.add_parser("version", help="Show version")

    return parser


async def run_server(args) -> None:
    from .dispatcher import CommandDispatcher
    from .server import BridgeServer

    if args.backend == "memory":
        from .memory_host import MemoryHost
        host = MemoryHost()
        connection = None
    else:
        from .bidi_host import DEFAULT_BIDI_URL, BiDiConnection, BiDiHost
        connection = BiDiConnection(args.bidi_url or DEFAULT_BIDI_URL, command_timeout=args.command_timeout)
        await connection.connect()
        host = BiDiHost(connection)

    try:
        dispatcher = CommandDispatcher(
            host.permission_store,
            host.tab_registry,
            host.script_host,
            unrecognized_policy=args.unknown_commands,
            popup_url_patterns=args.popup_pattern,
        )
        server = BridgeServer(dispatcher, host=args.host, port=args.port)
        await server.serve_forever()
    finally:
        if connection is not None:
            await connection.close()


async def send_command(args):
    from .client import BridgeClient

    async with BridgeClient(args.url, timeout=args.timeout) as client:
        return await client.request(args.bridge_command, **dict(args.field))


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "version":
        print("PermissionBridge v0.1.0")
        return 0

    elif args.command == "serve":
        setup_logging(args.verbose)
        try:
            asyncio.run(run_server(args))
        except KeyboardInterrupt:
            pass
        return 0

    elif args.command == "send":
        if args.verbose:
            setup_logging(True)
        response = asyncio.run(send_command(args))
        print(json.dumps(response))
        return 0 if response.get("success") else 1

    else:
        parser.print_help()
        return 0


def find_available_port(start_port=9333, max_attempts=100):
    """
    Pick a port for the bridge server.

    Ports from start_port upwards are tried first, so an unconfigured bridge
    lands on the port 'send' connects to by default whenever it is free.
    When the whole range is taken the OS assigns one.

    Args:
        start_port: First port to try (default 9333)
        max_attempts: Number of sequential ports to try (default 100)

    Returns:
        int: Port that could be bound on localhost

    Raises:
        OSError: If no port could be bound at all
    """
    for try_port in range(start_port, start_port + max_attempts):
        if _can_bind(try_port):
            return try_port

    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.bind(("localhost", 0))
        return sock.getsockname()[1]
    finally:
        sock.close()


def _can_bind(port: int) -> bool:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.bind(("localhost", port))
        return True
    except OSError:
        return False
    finally:
        sock.close()


if __name__ == "__main__":
    sys.exit(main())
