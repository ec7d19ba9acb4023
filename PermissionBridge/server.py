#!/usr/bin/env python3

"""
PermissionBridge Server

Exposes a CommandDispatcher to external test drivers over a websocket. Each
text frame is one JSON request and gets at most one JSON response, carrying
the request's ``id`` when it had one. Requests are dispatched concurrently, so
responses on one connection can arrive out of order.
"""

import asyncio
import json
import logging
from typing import Any, Optional

from websockets.asyncio.server import serve
from websockets.exceptions import ConnectionClosed

from .bridge_types import failure_response
from .dispatcher import CommandDispatcher


class BridgeServer:

    def __init__(self,
                 dispatcher: CommandDispatcher,
                 host: str = "localhost",
                 port: Optional[int] = None):
        """
        Args:
            dispatcher: Dispatcher that answers the requests
            host: Interface to listen on
            port: Port to listen on (None for automatic selection)
        """
        self.dispatcher = dispatcher
        self.host = host
        self.log = logging.getLogger("PermissionBridge.Server")

        if port is None:
            from .utils import find_available_port
            self.port = find_available_port()
            self.log.info("Auto-selected port: {}".format(self.port))
        else:
            self.port = port

        self.server = None

    @property
    def url(self) -> str:
        return "ws://{}:{}".format(self.host, self.port)

    async def start(self) -> None:
        self.server = await serve(self._handle_connection, self.host, self.port)
        if self.port == 0:
            self.port = self.server.sockets[0].getsockname()[1]
        self.log.info("PermissionBridge listening on {}".format(self.url))

    async def serve_forever(self) -> None:
        if self.server is None:
            await self.start()
        await self.server.serve_forever()

    async def close(self) -> None:
        if self.server is None:
            return
        self.server.close()
        await self.server.wait_closed()
        self.server = None
        self.log.info("PermissionBridge stopped")

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _handle_connection(self, websocket) -> None:
        self.log.info("Client connected: {}".format(websocket.remote_address))
        tasks = set()
        try:
            async for message in websocket:
                task = asyncio.get_running_loop().create_task(self._handle_message(websocket, message))
                tasks.add(task)
                task.add_done_callback(tasks.discard)
        except ConnectionClosed as e:
            self.log.debug("Connection closed: {}".format(e))
        finally:
            if tasks:
                await asyncio.gather(*tasks, return_exceptions=True)
            self.log.info("Client disconnected: {}".format(websocket.remote_address))

    async def _handle_message(self, websocket, message: Any) -> None:
        self.log.debug("Received message: {}".format(message))
        try:
            request = json.loads(message)
        except ValueError as e:
            self.log.warning("Malformed request: {}".format(e))
            await self._send(websocket, failure_response("Malformed request: {}".format(e)))
            return

        response = await self.dispatcher.dispatch(request)
        if response is None:
            return

        if isinstance(request, dict) and "id" in request:
            response = dict(response, id=request["id"])
        await self._send(websocket, response)

    async def _send(self, websocket, response) -> None:
        try:
            response_str = json.dumps(response, allow_nan=False)
        except (TypeError, ValueError) as e:
            self.log.warning("Response could not be encoded: {}".format(e))
            error = failure_response("Response could not be encoded: {}".format(e))
            if "id" in response:
                error["id"] = response["id"]
            response_str = json.dumps(error)

        self.log.debug("Sending response: {}".format(response_str))
        try:
            await websocket.send(response_str)
        except ConnectionClosed:
            self.log.warning("Client went away before the response could be sent: {}".format(response_str))
