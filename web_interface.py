#!/usr/bin/env python3
"""
Web console for the Nexus command system
One ConsoleSession per WebSocket connection, JSON messages both ways
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Any

from fastapi import FastAPI, WebSocket, WebSocketDisconnect, HTTPException
from fastapi.responses import HTMLResponse
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from config_manager import NexusConsoleConfig
from nexus_commands.script_store import YamlScriptStore
from nexus_commands.session import ConsoleSession, OutputLine

WELCOME_TEXT = "Welcome to the Nexus console. Type 'help' for available commands."


@dataclass
class ConsoleClient:
	"""Per-connection state: the session and its outgoing message queue"""
	websocket: WebSocket
	session: ConsoleSession
	outbox: asyncio.Queue = field(default_factory=asyncio.Queue)
	sender: Optional[asyncio.Task] = None
	tasks: set = field(default_factory=set)
	connected_at: float = field(default_factory=time.time)

	def enqueue(self, message: Dict):
		self.outbox.put_nowait(message)

	def on_output(self, line: OutputLine):
		if line.kind == "clear":
			self.enqueue({"type": "clear"})
		else:
			self.enqueue({"type": "output", "text": line.text, "kind": line.kind})


class ConsoleWebInterface:
	"""Bridge between browser consoles and console sessions"""

	def __init__(self, config: NexusConsoleConfig = None, config_manager=None):
		self.config = config or NexusConsoleConfig()
		self.config_manager = config_manager
		self.clients: Dict[WebSocket, ConsoleClient] = {}
		self.started = time.time()
		self.lines_executed = 0

		self.logger = logging.getLogger(__name__)

		# A persistent store is shared so every tab sees the same saved scripts
		self.script_store = None
		if self.config.scripts.storage_file:
			self.script_store = YamlScriptStore(self.config.scripts.storage_file)
			self.logger.info(f"Web console using script file: {self.config.scripts.storage_file}")
		else:
			self.logger.info("Web console using in-memory scripts per session")

		if self.config_manager and getattr(self.config_manager, 'config_file_path', None):
			self.logger.info(f"Web console using config file: {self.config_manager.config_file_path}")
		else:
			self.logger.info("Web console using default configuration")

	async def connect_websocket(self, websocket: WebSocket) -> ConsoleClient:
		"""Accept a connection and give it a fresh console session"""
		await websocket.accept()

		session = ConsoleSession(self.config, store=self.script_store)
		client = ConsoleClient(websocket=websocket, session=session)
		client.sender = asyncio.create_task(self._sender_loop(client))
		session.add_listener(client.on_output)
		self.clients[websocket] = client

		session.add_output(WELCOME_TEXT, "info")
		if session.startup_commands:
			self._spawn(client, session.start())

		self.logger.info(f"New WebSocket client connected. Total: {len(self.clients)}")
		return client

	async def disconnect_websocket(self, websocket: WebSocket):
		"""Tear down a connection, stopping anything it still runs"""
		client = self.clients.pop(websocket, None)
		if client is None:
			return
		client.session.remove_listener(client.on_output)
		client.session.interpreter.stop()
		pending = list(client.tasks)
		if client.sender is not None:
			pending.append(client.sender)
		for task in pending:
			task.cancel()
		await asyncio.gather(*pending, return_exceptions=True)
		self.logger.info(f"WebSocket client disconnected. Remaining: {len(self.clients)}")

	async def send_to_client(self, websocket: WebSocket, message: Dict):
		"""Send message to specific client"""
		try:
			await websocket.send_text(json.dumps(message))
		except Exception as e:
			self.logger.warning(f"Failed to send to client: {e}")

	async def _sender_loop(self, client: ConsoleClient):
		"""Drain the client's outbox in order"""
		while True:
			message = await client.outbox.get()
			await self.send_to_client(client.websocket, message)

	def _spawn(self, client: ConsoleClient, coro):
		task = asyncio.create_task(coro)
		client.tasks.add(task)
		task.add_done_callback(client.tasks.discard)
		return task

	async def handle_client_message(self, websocket: WebSocket, command_data: Dict):
		"""Process one JSON message from the browser"""
		client = self.clients.get(websocket)
		if client is None:
			return

		if not isinstance(command_data, dict):
			client.enqueue({"type": "error", "message": "Expected a JSON object"})
			return

		action = command_data.get('action')

		if action == 'execute':
			line = command_data.get('line')
			if not isinstance(line, str):
				client.enqueue({"type": "error", "message": "'execute' needs a 'line' string"})
				return
			# Own task, so 'script stop' can arrive while a script is running
			self._spawn(client, self._execute_line(client, line))

		elif action == 'history':
			direction = command_data.get('direction', 'previous')
			if direction == 'previous':
				line = client.session.history_previous()
			elif direction == 'next':
				line = client.session.history_next()
			else:
				client.enqueue({"type": "error", "message": f"Unknown history direction: {direction}"})
				return
			client.enqueue({"type": "history", "line": line})

		elif action == 'complete':
			partial = command_data.get('partial', '') or ''
			items = [
				{"command": s.command, "description": s.description, "alias": s.is_alias}
				for s in client.session.complete(str(partial))
			]
			client.enqueue({"type": "suggestions", "items": items})

		else:
			self.logger.warning(f"Unknown action: {action}")
			client.enqueue({"type": "error", "message": f"Unknown action: {action}"})

	async def _execute_line(self, client: ConsoleClient, line: str):
		try:
			await client.session.submit(line)
			self.lines_executed += 1
		except asyncio.CancelledError:
			raise
		except Exception as e:
			self.logger.error(f"Error executing '{line}': {e}")
			self.logger.debug("Execution traceback", exc_info=True)
			client.enqueue({"type": "error", "message": str(e) or e.__class__.__name__})

	def get_current_status(self) -> Dict[str, Any]:
		"""Status summary for /api/status"""
		return {
			"status": "running",
			"sessions": len(self.clients),
			"uptime": round(time.time() - self.started, 1),
			"lines_executed": self.lines_executed,
			"scripts_running": sum(1 for c in self.clients.values() if c.session.interpreter.is_running),
			"script_storage": self.config.scripts.storage_file or "memory",
		}


# FastAPI application setup
app = FastAPI(title="Nexus Console", version="1.0.0")

# Add CORS middleware for development
app.add_middleware(
	CORSMiddleware,
	allow_origins=["*"],
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)

# Global web interface instance
web_interface: Optional[ConsoleWebInterface] = None


def initialize_web_interface(config=None, config_manager=None) -> Optional[ConsoleWebInterface]:
	"""Initialize the web console with the given configuration"""
	global web_interface

	try:
		web_interface = ConsoleWebInterface(config, config_manager)
		logging.getLogger(__name__).info("Web console initialized")
		return web_interface
	except Exception as e:
		logging.getLogger(__name__).error(f"Error initializing web console: {e}")
		return None


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
	"""WebSocket endpoint: one console session per connection"""
	if not web_interface:
		await websocket.close(code=1011, reason="Console not initialized")
		return

	interface = web_interface
	try:
		await interface.connect_websocket(websocket)

		while True:
			data = await websocket.receive_text()
			try:
				command = json.loads(data)
			except json.JSONDecodeError:
				client = interface.clients.get(websocket)
				if client is not None:
					client.enqueue({"type": "error", "message": "Invalid JSON received"})
				continue
			await interface.handle_client_message(websocket, command)
	except WebSocketDisconnect:
		pass
	except Exception as e:
		logging.getLogger(__name__).error(f"WebSocket error: {e}")
	finally:
		await interface.disconnect_websocket(websocket)


@app.get("/")
async def get_index():
	"""Serve the console page"""
	possible_paths = [
		Path("static/index.html"),
		Path("index.html"),
	]

	for html_file in possible_paths:
		if html_file.exists():
			try:
				return HTMLResponse(content=html_file.read_text(), status_code=200)
			except Exception as e:
				logging.getLogger(__name__).warning(f"Error reading {html_file}: {e}")
				continue

	return HTMLResponse(content=CONSOLE_PAGE, status_code=200)


@app.get("/api/status")
async def get_status():
	"""Get current console status via REST API"""
	if not web_interface:
		raise HTTPException(status_code=503, detail="Console not initialized")

	return web_interface.get_current_status()


def run_web_server(host="127.0.0.1", port=8000, config=None, config_manager=None):
	"""Run the web console until interrupted"""
	logger = logging.getLogger(__name__)

	if web_interface is None:
		initialize_web_interface(config, config_manager)

	logger.info(f"Starting Nexus web console on http://{host}:{port}")
	logger.info(f"WebSocket endpoint: ws://{host}:{port}/ws")

	# Configure logging based on config
	if config is not None:
		if config.console.verbose:
			log_level = "debug"
		elif config.console.quiet:
			log_level = "warning"
		else:
			log_level = "info"
		access_log = not config.console.quiet
	else:
		log_level = "info"
		access_log = True

	try:
		uvicorn.run(
			app,
			host=host,
			port=port,
			log_level=log_level,
			access_log=access_log
		)
	except Exception as e:
		logger.error(f"Failed to start web server: {e}")
		raise


CONSOLE_PAGE = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>Nexus Console</title>
<style>
  body { background: #0b0f14; color: #c8d3dc; font-family: monospace; margin: 0; }
  #out { white-space: pre-wrap; padding: 1em; height: calc(100vh - 4em); overflow-y: auto; }
  #in { width: 100%; box-sizing: border-box; background: #111820; color: inherit;
        border: 0; border-top: 1px solid #334; padding: 0.8em; font: inherit; }
  .command { color: #7fd1ff; } .error { color: #ff7b72; } .success { color: #7ee787; }
  .info { color: #d2a8ff; } .debug { color: #8b949e; }
</style>
</head>
<body>
<div id="out"></div>
<input id="in" autofocus autocomplete="off" placeholder="Type a command">
<script>
  const out = document.getElementById("out");
  const input = document.getElementById("in");
  const ws = new WebSocket((location.protocol === "https:" ? "wss://" : "ws://") + location.host + "/ws");
  const show = (text, kind) => {
    const div = document.createElement("div");
    div.className = kind;
    div.textContent = text;
    out.appendChild(div);
    out.scrollTop = out.scrollHeight;
  };
  ws.onmessage = (event) => {
    const msg = JSON.parse(event.data);
    if (msg.type === "output") show(msg.text, msg.kind);
    else if (msg.type === "clear") out.innerHTML = "";
    else if (msg.type === "history") input.value = msg.line;
    else if (msg.type === "suggestions") show(msg.items.map(s => s.command).join("  "), "info");
    else if (msg.type === "error") show(msg.message, "error");
  };
  input.addEventListener("keydown", (e) => {
    const send = (obj) => ws.send(JSON.stringify(obj));
    if (e.key === "Enter") { send({action: "execute", line: input.value}); input.value = ""; }
    else if (e.key === "ArrowUp") { send({action: "history", direction: "previous"}); e.preventDefault(); }
    else if (e.key === "ArrowDown") { send({action: "history", direction: "next"}); e.preventDefault(); }
    else if (e.key === "Tab") { send({action: "complete", partial: input.value}); e.preventDefault(); }
  });
</script>
</body>
</html>
"""


if __name__ == "__main__":
	logging.basicConfig(level=logging.INFO)
	run_web_server()
