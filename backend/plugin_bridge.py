"""
Plugin Bridge - Serves node requests over the copilot websocket bridge

Joins a bridge channel in the `plugin` role and answers every
`manage_nodes` tool_call against the in-memory document. Calls are handled
one at a time, in arrival order.
"""

import json
import os
import sys
import signal
import logging
import asyncio
from typing import Any, Dict, List, Optional

import websockets
from dotenv import load_dotenv

from document_model import Document
from manage_nodes import manage_nodes
from node_errors import UNKNOWN_ERROR, ToolExecutionError
from node_tools import set_document

load_dotenv()

logger = logging.getLogger(__name__)

ROLE = "plugin"
COMMAND_MANAGE_NODES = "manage_nodes"

MSG_JOIN = "join"
MSG_PING = "ping"
MSG_PONG = "pong"
MSG_SYSTEM = "system"
MSG_ERROR = "error"
MSG_TOOL_CALL = "tool_call"
MSG_TOOL_RESPONSE = "tool_response"

INITIAL_BACKOFF_SECONDS = 1
MAX_BACKOFF_SECONDS = 30

DEFAULT_BRIDGE_URL = "ws://localhost:3055"
DEFAULT_CHANNEL = "figma-copilot-default"

# CLI flag -> config key
_CLI_OVERRIDES = {
    "--bridge-url": "bridge_url",
    "--channel": "channel",
    "--log-level": "log_level",
    "--document": "document_file",
}


class PluginBridge:
    """Serves node commands arriving over the copilot websocket bridge.

    The agent side sends {type: tool_call, id, command, params}; every call
    is answered with {type: tool_response, id, result} or, on failure,
    {type: tool_response, id, error_structured: {code, message, details}}.
    """

    def __init__(self, bridge_url: str, channel: str, document: Document):
        self.bridge_url = bridge_url
        self.channel = channel
        self.document = document
        self.websocket = None
        self.running = True
        self.backoff = INITIAL_BACKOFF_SECONDS
        self._handlers = {
            MSG_TOOL_CALL: self._on_tool_call,
            MSG_SYSTEM: self._on_system,
            MSG_PONG: self._on_pong,
            MSG_ERROR: self._on_bridge_error,
        }
        set_document(document)

    async def _send(self, payload: Dict[str, Any]) -> None:
        if not self.websocket:
            raise RuntimeError("Bridge socket is not open")
        await self.websocket.send(json.dumps(payload))

    async def connect(self) -> bool:
        """Open the socket and join the channel; False when the bridge is unreachable."""
        try:
            logger.info(f"🔌 Opening bridge socket {self.bridge_url}")
            self.websocket = await websockets.connect(self.bridge_url, max_size=None)
            await self._send({"type": MSG_JOIN, "role": ROLE, "channel": self.channel})
            await self._send({"type": MSG_PING})
            logger.info(f"🤝 Joined channel '{self.channel}' as {ROLE}")
        except Exception as e:
            logger.error(f"❌ Bridge connection failed: {e}")
            return False
        self.backoff = INITIAL_BACKOFF_SECONDS
        return True

    async def execute_tool_call(self, message: Dict[str, Any]) -> Dict[str, Any]:
        """Run one tool_call against the document and build its tool_response."""
        call_id = message.get("id")
        command = message.get("command")
        response: Dict[str, Any] = {"type": MSG_TOOL_RESPONSE, "id": call_id}

        if command != COMMAND_MANAGE_NODES:
            logger.warning(f"⚠️ Rejecting unsupported command '{command}' (ID: {call_id})")
            response["error_structured"] = {
                "code": "unknown_command",
                "message": f"Unknown command: {command}. Supported commands: {COMMAND_MANAGE_NODES}",
                "details": {"command": command},
            }
            return response

        try:
            response["result"] = await manage_nodes(self.document, message.get("params") or {})
        except ToolExecutionError as te:
            logger.error(f"❌ {command} (ID: {call_id}) rejected: {te.code}: {te.message}")
            response["error_structured"] = te.payload
        except Exception as e:
            logger.exception(f"💥 {command} (ID: {call_id}) crashed")
            response["error_structured"] = {
                "code": UNKNOWN_ERROR,
                "message": str(e),
                "details": {"command": command},
            }
        return response

    async def handle_message(self, message: Dict[str, Any]) -> None:
        """Dispatch one decoded bridge message by its type."""
        msg_type = message.get("type")
        handler = self._handlers.get(msg_type)
        if handler is None:
            logger.debug(f"Skipping bridge message of type '{msg_type}'")
            return
        await handler(message)

    async def _on_tool_call(self, message: Dict[str, Any]) -> None:
        logger.info(f"🛠️ tool_call {message.get('command')} ({message.get('id', 'no-id')})")
        await self._send(await self.execute_tool_call(message))

    async def _on_system(self, message: Dict[str, Any]) -> None:
        logger.info(f"🔧 Bridge: {message.get('message')}")

    async def _on_pong(self, _: Dict[str, Any]) -> None:
        logger.debug("🏓 pong")

    async def _on_bridge_error(self, message: Dict[str, Any]) -> None:
        logger.error(f"❌ Bridge reported: {message.get('message', 'Unknown error')}")

    async def _next_message(self) -> Optional[Dict[str, Any]]:
        raw = await self.websocket.recv()
        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"❌ Undecodable bridge frame ({e}): {raw!r}")
            return None

    async def listen(self) -> None:
        """Serve messages until the socket closes or the bridge is shut down."""
        while self.running and self.websocket:
            try:
                message = await self._next_message()
            except asyncio.CancelledError:
                logger.info("🛑 Listener cancelled")
                break
            except Exception as e:
                logger.error(f"❌ Bridge socket closed: {e}")
                break
            if message is None:
                continue
            try:
                await self.handle_message(message)
            except Exception as e:
                logger.error(f"❌ Failed to handle '{message.get('type')}' message: {e}")

    async def run_with_reconnect(self) -> None:
        """Serve forever, reconnecting with exponential backoff."""
        while self.running:
            if await self.connect():
                await self.listen()
            if not self.running:
                break
            logger.info(f"⏳ Reconnecting to bridge in {self.backoff}s")
            await asyncio.sleep(self.backoff)
            self.backoff = min(self.backoff * 2, MAX_BACKOFF_SECONDS)

    def shutdown(self) -> None:
        logger.info("👋 Plugin bridge stopping")
        self.running = False
        self.websocket = None


def load_document(path: Optional[str]) -> Document:
    """Load the in-memory document from a JSON snapshot, or start with one empty page."""
    if not path:
        document = Document()
        document.create_page("Page 1")
        return document
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    logger.info(f"📂 Loaded document snapshot from {path}")
    return Document.from_dict(data)


def get_config(argv: Optional[List[str]] = None) -> Dict[str, Any]:
    """Read settings from the environment, then apply --key=value overrides."""
    config = {
        "bridge_url": os.getenv("BRIDGE_URL", DEFAULT_BRIDGE_URL),
        "channel": os.getenv("FIGMA_CHANNEL"),
        "log_level": os.getenv("LOG_LEVEL", "INFO"),
        "document_file": os.getenv("DOCUMENT_FILE"),
    }
    for arg in (sys.argv[1:] if argv is None else argv):
        flag, sep, value = arg.partition("=")
        if sep and flag in _CLI_OVERRIDES:
            config[_CLI_OVERRIDES[flag]] = value

    if not config["channel"]:
        config["channel"] = DEFAULT_CHANNEL
    config["log_level"] = config["log_level"].upper()
    return config


def main():
    config = get_config()

    logging.basicConfig(
        level=getattr(logging, config["log_level"], logging.INFO),
        format='[%(asctime)s] [plugin] [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%dT%H:%M:%S'
    )
    logger.info(f"🚀 Node engine bridge: url={config['bridge_url']} channel={config['channel']}")

    bridge = PluginBridge(config["bridge_url"], config["channel"], load_document(config["document_file"]))

    def _stop(signum, frame):
        logger.info(f"Received signal {signum}")
        bridge.shutdown()
        sys.exit(0)

    for sig in (signal.SIGTERM, signal.SIGINT):
        signal.signal(sig, _stop)

    try:
        asyncio.run(bridge.run_with_reconnect())
    except KeyboardInterrupt:
        logger.info("Plugin bridge interrupted")
    finally:
        bridge.shutdown()


if __name__ == "__main__":
    main()
