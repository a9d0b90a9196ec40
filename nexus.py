#!/usr/bin/env python3
"""
Nexus Console
- Command router with aliases and execution history
- Script engine: variables, if/else/endif, for/done, wait, terminal
- Terminal console over stdin, or a web console over WebSocket (--web)
- Configuration files in YAML with CLI overrides

Text Input → ConsoleSession.submit() → CommandRouter.execute() → handler
run <name> → ScriptInterpreter → CommandRouter.execute() per statement
"""

import sys
import asyncio
import logging

from config_manager import setup_configuration
from nexus_commands.session import ConsoleSession, OutputLine


class DebugConfig:
	"""Logging level from the console section of the configuration"""

	@classmethod
	def set_mode(cls, verbose=False, quiet=False):
		if verbose:
			logging.basicConfig(level=logging.DEBUG, format='🐛 %(name)s: %(message)s')
		elif quiet:
			logging.basicConfig(level=logging.WARNING, format='⚠️  %(message)s')
		else:
			logging.basicConfig(level=logging.INFO, format='ℹ️  %(message)s')


class TerminalConsole:
	"""Console session driven from the terminal"""

	def __init__(self, session: ConsoleSession):
		self.session = session
		self.running = False
		self.logger = logging.getLogger(__name__)

	async def run(self):
		"""Read lines until 'quit' or end of input"""
		self.running = True
		self.session.add_listener(self._print_line)

		print("\n" + "=" * 60)
		print("💻 NEXUS CONSOLE READY")
		print("Type 'help' for commands, 'run hello-world' for a demo script")
		print("⌨️  Type 'quit' to exit")
		print("=" * 60)

		await self.session.start()
		loop = asyncio.get_running_loop()

		while self.running:
			try:
				line = await loop.run_in_executor(None, self._read_line)
			except EOFError:
				print()
				break

			if line.strip().lower() == 'quit':
				print("Exiting console...")
				break

			try:
				await self.session.submit(line)
			except Exception as e:
				self.logger.error(f"Console input error: {e}")

		self.running = False
		self.session.remove_listener(self._print_line)

	def _read_line(self) -> str:
		prompt = "(editor) " if self.session.editor.is_open else self.session.prompt
		return input(prompt)

	def _print_line(self, line: OutputLine):
		if line.kind == "command":
			return  # already visible as typed
		if line.kind == "clear":
			print("\033[2J\033[H", end="", flush=True)
			return
		print(line.text, flush=True)


# ===================================================================
# MAIN PROGRAM
# ===================================================================

def main(argv=None) -> int:
	config, should_exit, config_manager = setup_configuration(argv)
	if should_exit:
		return 0 if config is None else 1

	DebugConfig.set_mode(verbose=config.console.verbose, quiet=config.console.quiet)
	logger = logging.getLogger(__name__)

	if config.web.enabled:
		from web_interface import initialize_web_interface, run_web_server

		print(f"🌐 Web console starting on http://{config.web.host}:{config.web.port}")
		print("🌐 Press Ctrl+C to stop the web console")
		initialize_web_interface(config, config_manager)
		try:
			run_web_server(
				host=config.web.host,
				port=config.web.port,
				config=config,
				config_manager=config_manager
			)
		except KeyboardInterrupt:
			print("\n🛑 Web console shutting down...")
		return 0

	session = ConsoleSession(config)
	logger.debug(f"Session stats: {session.stats()}")
	try:
		asyncio.run(TerminalConsole(session).run())
	except KeyboardInterrupt:
		print("\n🛑 Console shutting down...")
	return 0


if __name__ == "__main__":
	try:
		sys.exit(main())
	except Exception as e:
		print(f"✗ Error: {e}")
		import traceback
		traceback.print_exc()
		sys.exit(1)
