#!/usr/bin/env python3
"""
Configuration system for the Nexus console
Supports YAML files, CLI overrides, and programmatic access for the web console
"""

import yaml
import argparse
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import dataclass, field
from copy import deepcopy
import logging

from nexus_commands.session import DEFAULT_FEATURES


@dataclass
class ConsoleConfig:
	"""Console messages logging level and prompt"""
	verbose: bool = False
	quiet: bool = False
	prompt: str = "nexus$ "
	startup_commands: list = field(default_factory=list)  # run once per session

	def to_dict(self) -> Dict[str, Any]:
		return {
			'verbose': self.verbose,
			'quiet': self.quiet,
			'prompt': self.prompt,
			'startup_commands': list(self.startup_commands),
		}

	@classmethod
	def from_dict(cls, data: Dict[str, Any]) -> 'ConsoleConfig':
		return cls(
			verbose=data.get('verbose', False),
			quiet=data.get('quiet', False),
			prompt=data.get('prompt', "nexus$ "),
			startup_commands=list(data.get('startup_commands') or []),
		)


@dataclass
class RouterConfig:
	"""Command router settings"""
	max_history: int = 1000  # 0 = unbounded

	def to_dict(self) -> Dict[str, Any]:
		return {
			'max_history': self.max_history,
		}

	@classmethod
	def from_dict(cls, data: Dict[str, Any]) -> 'RouterConfig':
		return cls(
			max_history=data.get('max_history', 1000),
		)


@dataclass
class ScriptConfig:
	"""Script engine configuration"""
	storage_file: str = ""  # empty = in-memory only
	load_examples: bool = True
	allow_nested_runs: bool = False
	max_nesting_depth: int = 4
	max_wait_ms: int = 60000
	interrupt_wait: bool = False
	max_loop_items: int = 10000

	def to_dict(self) -> Dict[str, Any]:
		"""Convert to dictionary for YAML serialization"""
		return {
			'storage_file': self.storage_file,
			'load_examples': self.load_examples,
			'allow_nested_runs': self.allow_nested_runs,
			'max_nesting_depth': self.max_nesting_depth,
			'max_wait_ms': self.max_wait_ms,
			'interrupt_wait': self.interrupt_wait,
			'max_loop_items': self.max_loop_items,
		}

	@classmethod
	def from_dict(cls, data: Dict[str, Any]) -> 'ScriptConfig':
		"""Create from dictionary (YAML loading)"""
		return cls(
			storage_file=data.get('storage_file', "") or "",
			load_examples=data.get('load_examples', True),
			allow_nested_runs=data.get('allow_nested_runs', False),
			max_nesting_depth=data.get('max_nesting_depth', 4),
			max_wait_ms=data.get('max_wait_ms', 60000),
			interrupt_wait=data.get('interrupt_wait', False),
			max_loop_items=data.get('max_loop_items', 10000),
		)


@dataclass
class WebConfig:
	"""Web console settings"""
	enabled: bool = False
	host: str = "127.0.0.1"
	port: int = 8000

	def to_dict(self) -> Dict[str, Any]:
		return {
			'enabled': self.enabled,
			'host': self.host,
			'port': self.port,
		}

	@classmethod
	def from_dict(cls, data: Dict[str, Any]) -> 'WebConfig':
		return cls(
			enabled=data.get('enabled', False),
			host=data.get('host', "127.0.0.1"),
			port=data.get('port', 8000),
		)


@dataclass
class NexusConsoleConfig:
	"""Complete configuration for the Nexus console"""
	console: ConsoleConfig = field(default_factory=ConsoleConfig)
	router: RouterConfig = field(default_factory=RouterConfig)
	scripts: ScriptConfig = field(default_factory=ScriptConfig)
	web: WebConfig = field(default_factory=WebConfig)
	features: Dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_FEATURES))

	# Metadata
	config_version: str = "1.0"
	description: str = "Nexus Console Configuration"

	def to_dict(self) -> Dict[str, Any]:
		"""Convert to dictionary for YAML serialization"""
		return {
			'config_version': self.config_version,
			'description': self.description,
			'console': self.console.to_dict(),
			'router': self.router.to_dict(),
			'scripts': self.scripts.to_dict(),
			'web': self.web.to_dict(),
			'features': dict(self.features),
		}

	@classmethod
	def from_dict(cls, data: Dict[str, Any]) -> 'NexusConsoleConfig':
		"""Create from dictionary (YAML loading). Missing sections keep defaults."""
		config = cls()

		if 'config_version' in data:
			config.config_version = str(data['config_version'])
		if 'description' in data:
			config.description = data['description']

		if isinstance(data.get('console'), dict):
			config.console = ConsoleConfig.from_dict(data['console'])
		if isinstance(data.get('router'), dict):
			config.router = RouterConfig.from_dict(data['router'])
		if isinstance(data.get('scripts'), dict):
			config.scripts = ScriptConfig.from_dict(data['scripts'])
		if isinstance(data.get('web'), dict):
			config.web = WebConfig.from_dict(data['web'])
		if isinstance(data.get('features'), dict):
			config.features.update(data['features'])

		return config


class ConfigurationManager:
	"""
	Manages configuration loading, merging, and validation
	"""

	def __init__(self, config_file: str = "nexus_console.yaml"):
		self.config_file = config_file
		self.config = NexusConsoleConfig()
		self.config_file_path: Optional[Path] = None

		self.logger = logging.getLogger(__name__)

		# Standard config file locations (in order of preference)
		self.config_search_paths = [
			Path.cwd() / "nexus_console.yaml",  # Current directory
			Path.cwd() / "config" / "nexus_console.yaml",  # Config subdirectory
			Path.home() / ".config" / "nexus_console" / "config.yaml",  # User config
			Path("/etc/nexus_console/config.yaml"),  # System config (Linux)
		]

	def load_config(self, config_file: Optional[str] = None) -> NexusConsoleConfig:
		"""
		Load configuration from file with fallback chain

		Args:
			config_file: Specific config file path, or None for auto-discovery

		Returns:
			Loaded configuration object (defaults if nothing was found)
		"""
		if config_file:
			config_path = Path(config_file)
			if config_path.exists():
				self.config = self._load_yaml_file(config_path)
				self.config_file_path = config_path
				self.logger.info(f"Loaded config from: {config_path}")
			else:
				self.logger.warning(f"Config file not found: {config_path}")
				self.logger.info("Using default configuration")
		else:
			for path in self.config_search_paths:
				if path.exists():
					self.config = self._load_yaml_file(path)
					self.config_file_path = path
					self.logger.info(f"Auto-discovered config: {path}")
					break
			else:
				self.logger.info("No config file found, using defaults")

		return self.config

	def _load_yaml_file(self, file_path: Path) -> NexusConsoleConfig:
		"""Load configuration from YAML file, falling back to defaults on error"""
		try:
			with open(file_path, 'r') as f:
				yaml_data = yaml.safe_load(f) or {}

			if not isinstance(yaml_data, dict):
				self.logger.error(f"Config file {file_path} does not contain a mapping")
				return NexusConsoleConfig()

			config = NexusConsoleConfig.from_dict(yaml_data)
			unknown = set(yaml_data) - {'config_version', 'description', 'console', 'router', 'scripts', 'web', 'features'}
			for key in sorted(unknown):
				self.logger.warning(f"Unknown config section '{key}' in {file_path}")
			return config

		except Exception as e:
			self.logger.error(f"Error loading config file {file_path}: {e}")
			return NexusConsoleConfig()

	def merge_cli_args(self, args: argparse.Namespace) -> NexusConsoleConfig:
		"""
		Merge CLI arguments into configuration (CLI takes precedence)

		Args:
			args: Parsed command line arguments

		Returns:
			Updated configuration
		"""
		if self.config is None:
			self.config = NexusConsoleConfig()

		# Console settings
		if getattr(args, 'verbose', False):
			self.config.console.verbose = True
		if getattr(args, 'quiet', False):
			self.config.console.quiet = True
		if getattr(args, 'prompt', None):
			self.config.console.prompt = args.prompt
		if getattr(args, 'execute', None):
			self.config.console.startup_commands = list(args.execute)

		# Router settings
		if getattr(args, 'max_history', None) is not None:
			self.config.router.max_history = args.max_history

		# Script settings
		if getattr(args, 'scripts_file', None):
			self.config.scripts.storage_file = args.scripts_file
		if getattr(args, 'no_examples', False):
			self.config.scripts.load_examples = False
		if getattr(args, 'allow_nested_runs', False):
			self.config.scripts.allow_nested_runs = True
		if getattr(args, 'max_wait_ms', None) is not None:
			self.config.scripts.max_wait_ms = args.max_wait_ms

		# Web settings
		if getattr(args, 'web', False):
			self.config.web.enabled = True
		if getattr(args, 'web_host', None):
			self.config.web.host = args.web_host
		if getattr(args, 'web_port', None):
			self.config.web.port = args.web_port

		# Feature flags
		if getattr(args, 'debug_mode', False):
			self.config.features['debug_mode'] = True

		return self.config

	def save_config(self, file_path: Optional[str] = None) -> bool:
		"""
		Save current configuration to YAML file

		Args:
			file_path: Target file path, or None to use loaded file path

		Returns:
			True if saved successfully
		"""
		if file_path:
			target_path = Path(file_path)
		elif self.config_file_path:
			target_path = self.config_file_path
		else:
			target_path = Path(self.config_file)

		try:
			target_path.parent.mkdir(parents=True, exist_ok=True)

			with open(target_path, 'w') as f:
				f.write("# Nexus Console Configuration\n")
				f.write("# Generated configuration file\n")
				f.write(f"# Version: {self.config.config_version}\n\n")

				yaml.dump(self.config.to_dict(), f,
						 default_flow_style=False,
						 sort_keys=False,
						 indent=2)

			self.logger.info(f"Configuration saved to: {target_path}")
			return True

		except Exception as e:
			self.logger.error(f"Error saving config to {target_path}: {e}")
			return False

	def create_sample_config(self, file_path: str = "nexus_console_sample.yaml") -> bool:
		"""Create a sample configuration file with comments"""
		try:
			with open(file_path, 'w') as f:
				f.write(self._generate_sample_yaml())

			self.logger.info(f"Sample configuration created: {file_path}")
			return True

		except Exception as e:
			self.logger.error(f"Error creating sample config: {e}")
			return False

	def _generate_sample_yaml(self) -> str:
		"""Generate sample YAML with comments"""
		return """# Nexus Console Configuration File

# =============================================================================
# CONSOLE
# =============================================================================
console:
  verbose: false                  # Verbose output (debug logging)
  quiet: false                    # Quiet mode (warnings and errors only)
  prompt: "nexus$ "               # Prompt shown before echoed commands
  startup_commands: []            # Lines run when a session opens, e.g. ["run hello-world"]

# =============================================================================
# COMMAND ROUTER
# =============================================================================
router:
  max_history: 1000               # History entries kept per session (0 = unbounded)

# =============================================================================
# SCRIPT ENGINE
# =============================================================================
scripts:
  storage_file: ""                # YAML file for saved scripts ("" = memory only)
  load_examples: true             # Seed hello-world, system-info, daily-routine
  allow_nested_runs: false        # Allow 'terminal run other' inside a script
  max_nesting_depth: 4            # Limit for nested runs
  max_wait_ms: 60000              # Upper bound for a single wait/sleep
  interrupt_wait: false           # 'script stop' cuts a running wait short
  max_loop_items: 10000           # Upper bound for one for-loop

# =============================================================================
# WEB CONSOLE
# =============================================================================
web:
  enabled: false                  # Serve the web console instead of the terminal loop
  host: "127.0.0.1"
  port: 8000

# =============================================================================
# FEATURE FLAGS
# =============================================================================
features:
  debug_mode: false               # Trace each script statement
  ai_enabled: false
  voice_enabled: false
  music_enabled: false
  effects_enabled: false

# =============================================================================
# CONFIGURATION METADATA
# =============================================================================
config_version: "1.0"
description: "Nexus Console Configuration"
"""

	def validate_config(self) -> tuple[bool, list[str]]:
		"""
		Validate configuration for common issues

		Returns:
			(is_valid, list_of_errors)
		"""
		errors = []

		if self.config.console.verbose and self.config.console.quiet:
			errors.append("verbose and quiet cannot both be enabled")

		if not isinstance(self.config.router.max_history, int) or self.config.router.max_history < 0:
			errors.append(f"Invalid max_history: {self.config.router.max_history}")

		scripts = self.config.scripts
		if not isinstance(scripts.max_nesting_depth, int) or scripts.max_nesting_depth < 1:
			errors.append(f"Invalid max_nesting_depth: {scripts.max_nesting_depth}")
		if not isinstance(scripts.max_wait_ms, (int, float)) or scripts.max_wait_ms < 0:
			errors.append(f"Invalid max_wait_ms: {scripts.max_wait_ms}")
		if not isinstance(scripts.max_loop_items, int) or scripts.max_loop_items < 1:
			errors.append(f"Invalid max_loop_items: {scripts.max_loop_items}")

		if not isinstance(self.config.web.port, int) or not (1 <= self.config.web.port <= 65535):
			errors.append(f"Invalid web port: {self.config.web.port}")

		for name, value in self.config.features.items():
			if not isinstance(value, bool):
				errors.append(f"Feature flag '{name}' must be true or false")

		return len(errors) == 0, errors

	def get_config(self) -> NexusConsoleConfig:
		"""Get a copy of the current configuration"""
		return deepcopy(self.config)

	def update_config(self, updates: Dict[str, Any]) -> bool:
		"""
		Update configuration programmatically

		Args:
			updates: Dictionary of configuration updates in dot notation
					e.g., {"web.port": 8080, "features.debug_mode": True}

		Returns:
			True if all updates applied successfully
		"""
		try:
			for key, value in updates.items():
				self._set_nested_attr(self.config, key, value)
			return True
		except Exception as e:
			self.logger.error(f"Error updating config: {e}")
			return False

	def _set_nested_attr(self, obj, attr_path: str, value):
		"""Set nested attribute using dot notation (dict keys for 'features')"""
		parts = attr_path.split('.')
		for part in parts[:-1]:
			obj = obj[part] if isinstance(obj, dict) else getattr(obj, part)
		if isinstance(obj, dict):
			obj[parts[-1]] = value
		elif hasattr(obj, parts[-1]):
			setattr(obj, parts[-1], value)
		else:
			raise AttributeError(f"Unknown config key: {attr_path}")

	def get_value(self, key: str):
		"""Get value from config using dot notation (e.g., 'scripts.max_wait_ms')"""
		value = self.config
		for k in key.split('.'):
			if isinstance(value, dict):
				if k not in value:
					return None
				value = value[k]
			elif hasattr(value, k):
				value = getattr(value, k)
			else:
				return None
		return value


def create_enhanced_argument_parser():
	"""Argument parser for the Nexus console"""
	parser = argparse.ArgumentParser(
		description='Nexus Console: command router and script engine',
		formatter_class=argparse.RawDescriptionHelpFormatter,
		epilog="""
Examples:
  %(prog)s                                 # Terminal console with defaults
  %(prog)s --web                           # Serve the web console
  %(prog)s --web --web-port 9000           # Web console on another port
  %(prog)s -x "run hello-world"            # Run a line at session start
  %(prog)s --scripts-file scripts.yaml     # Persist scripts to a file
  %(prog)s -c my_config.yaml               # Use specific config file
  %(prog)s --create-config sample.yaml     # Create sample config file

Configuration:
  Configuration is loaded in this order (later overrides earlier):
  1. Built-in defaults
  2. Configuration file (YAML)
  3. Command line arguments

  Config file search order:
  - nexus_console.yaml (current directory)
  - config/nexus_console.yaml
  - ~/.config/nexus_console/config.yaml
  - /etc/nexus_console/config.yaml
		"""
	)

	# Configuration file handling
	config_group = parser.add_argument_group('Configuration')
	config_group.add_argument(
		'-c', '--config',
		type=str,
		help='Configuration file path (YAML format)'
	)
	config_group.add_argument(
		'--create-config',
		type=str,
		metavar='FILE',
		help='Create sample configuration file and exit'
	)
	config_group.add_argument(
		'--save-config',
		type=str,
		metavar='FILE',
		help='Save current configuration to file'
	)

	# Console settings
	console_group = parser.add_argument_group('Console')
	console_group.add_argument(
		'-x', '--execute',
		action='append',
		metavar='LINE',
		help='Command line to run when the session starts (repeatable)'
	)
	console_group.add_argument(
		'--prompt',
		type=str,
		help='Prompt text'
	)
	console_group.add_argument(
		'--max-history',
		type=int,
		help='History entries kept per session (0 = unbounded)'
	)

	# Script settings
	script_group = parser.add_argument_group('Scripts')
	script_group.add_argument(
		'--scripts-file',
		type=str,
		metavar='FILE',
		help='YAML file to persist scripts to'
	)
	script_group.add_argument(
		'--no-examples',
		action='store_true',
		help='Do not load the built-in example scripts'
	)
	script_group.add_argument(
		'--allow-nested-runs',
		action='store_true',
		help='Allow scripts to run other scripts'
	)
	script_group.add_argument(
		'--max-wait-ms',
		type=int,
		help='Upper bound for a single wait/sleep in milliseconds'
	)

	# Web settings
	web_group = parser.add_argument_group('Web Console')
	web_group.add_argument(
		'--web',
		action='store_true',
		help='Serve the web console instead of the terminal loop'
	)
	web_group.add_argument(
		'--web-host',
		type=str,
		help='Host for web console (default: 127.0.0.1)'
	)
	web_group.add_argument(
		'--web-port',
		type=int,
		help='Port for web console (default: 8000)'
	)

	# Debug settings
	debug_group = parser.add_argument_group('Debug Options')
	debug_group.add_argument(
		'-v', '--verbose',
		action='store_true',
		help='Enable verbose debug output'
	)
	debug_group.add_argument(
		'-q', '--quiet',
		action='store_true',
		help='Quiet mode (minimal output)'
	)
	debug_group.add_argument(
		'--debug-mode',
		action='store_true',
		help='Start sessions with script tracing enabled'
	)

	return parser


def setup_configuration(argv=None) -> tuple[Optional[NexusConsoleConfig], bool, Optional[ConfigurationManager]]:
	"""
	Setup configuration system with CLI integration

	Args:
		argv: Command line arguments (None for sys.argv)

	Returns:
		(config_object, should_exit, config_manager)
	"""
	logger = logging.getLogger(__name__)

	parser = create_enhanced_argument_parser()
	args = parser.parse_args(argv)

	# Handle special commands first
	if args.create_config:
		manager = ConfigurationManager()
		if manager.create_sample_config(args.create_config):
			print(f"Sample configuration created: {args.create_config}")
			print(f"Edit the file and run again with: -c {args.create_config}")
		return None, True, None

	manager = ConfigurationManager()
	manager.load_config(args.config)

	# Merge CLI arguments (CLI overrides config file)
	config = manager.merge_cli_args(args)

	is_valid, errors = manager.validate_config()
	if not is_valid:
		print("Configuration errors:")
		for error in errors:
			print(f"  ✗ {error}")
		return NexusConsoleConfig(), True, None

	if args.save_config:
		if manager.save_config(args.save_config):
			print(f"Configuration saved to: {args.save_config}")

	logger.debug(f"Configuration ready: web={config.web.enabled}, scripts={config.scripts.storage_file or 'memory'}")
	return config, False, manager
