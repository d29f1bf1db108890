import argparse
import json
import os
from argparse import ArgumentParser
from collections.abc import Mapping
from dataclasses import dataclass, field
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Any

from pydantic.dataclasses import dataclass as p_dataclass

from .crypt import decrypt
from .exceptions import InvalidParameter, MissingParameter
from .models.mirrors import MirrorConfiguration
from .models.users import MAX_PASSWORD_LENGTH, Password
from .output import debug, error, logger, warn

ENV_MIRRORLIST = 'GB_MIRRORLIST'
ENV_ROOT_PASSWORD = 'GB_ROOT_PASSWORD'
ENV_TARGET_DEVICE = 'GB_TARGET_DEVICE'
ENV_CREDS_DECRYPTION_KEY = 'GOLDINSTALL_CREDS_DECRYPTION_KEY'

DEFAULT_SERVICES = ['dhcpcd.service']


def _string(config: Mapping[str, Any], name: str) -> str | None:
	value = config.get(name)

	if value is not None and not isinstance(value, str):
		raise InvalidParameter(name, f'expected a string, got {type(value).__name__}')

	return value


def _path(config: Mapping[str, Any], name: str) -> Path | None:
	value = config.get(name)

	if isinstance(value, Path):
		return value

	if value := _string(config, name):
		return Path(value)

	return None


def _string_list(config: Mapping[str, Any], name: str) -> list[str]:
	value = config.get(name)

	if value is None:
		return []

	if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
		raise InvalidParameter(name, 'expected a list of strings')

	return value


@p_dataclass
class Arguments:
	config: Path | None = None
	creds: Path | None = None
	creds_decryption_key: str | None = None
	device: Path | None = None
	mountpoint: Path = Path('/mnt')
	force_wipe: bool = False
	dry_run: bool = False
	debug: bool = False


@dataclass
class ProvisionConfig:
	version: str | None = None
	mirror_config: MirrorConfiguration | None = None
	root_password: Password | None = None
	device: Path | None = None
	mountpoint: Path = Path('/mnt')
	packages: list[str] = field(default_factory=list)
	services: list[str] = field(default_factory=lambda: list(DEFAULT_SERVICES))
	agent: str = 'goldboot'
	force_wipe: bool = False

	def safe_json(self) -> dict[str, Any]:
		return {
			'version': self.version,
			'mirror_config': self.mirror_config.json() if self.mirror_config else None,
			'device': str(self.device) if self.device else None,
			'mountpoint': str(self.mountpoint),
			'packages': self.packages,
			'services': self.services,
			'agent': self.agent,
			'force_wipe': self.force_wipe,
		}

	def missing_parameters(self) -> list[str]:
		missing = []

		if self.mirror_config is None or self.mirror_config.is_empty():
			missing.append('mirrorlist')

		if self.root_password is None or self.root_password.is_empty():
			missing.append('root_password')

		if self.device is None or not str(self.device).strip():
			missing.append('device')

		return missing

	def validate(self) -> None:
		"""
		Raises :py:class:`MissingParameter` naming every absent parameter, and
		:py:class:`InvalidParameter` for a root password above the length limit
		"""
		if missing := self.missing_parameters():
			raise MissingParameter(*missing)

		if self.root_password is not None and len(self.root_password.plaintext) > MAX_PASSWORD_LENGTH:
			raise InvalidParameter('root_password', f'longer than {MAX_PASSWORD_LENGTH} characters')

	@classmethod
	def from_config(cls, args_config: dict[str, Any]) -> 'ProvisionConfig':
		"""
		Builds the configuration from the merged JSON values, raising
		:py:class:`InvalidParameter` for a value of the wrong type
		"""
		config = ProvisionConfig()

		if (mirrorlist := args_config.get('mirrorlist')) is not None:
			try:
				config.mirror_config = MirrorConfiguration.parse_arg(mirrorlist)
			except ValueError as err:
				raise InvalidParameter('mirrorlist', str(err)) from err

		if root_password := _string(args_config, 'root_password'):
			config.root_password = Password(plaintext=root_password)

		if enc_password := _string(args_config, 'root_enc_password'):
			config.root_password = Password(enc_password=enc_password)

		if device := _path(args_config, 'device'):
			config.device = device

		if mountpoint := _path(args_config, 'mountpoint'):
			config.mountpoint = mountpoint

		if packages := _string_list(args_config, 'packages'):
			config.packages = packages

		if services := _string_list(args_config, 'services'):
			config.services = DEFAULT_SERVICES + [s for s in services if s not in DEFAULT_SERVICES]

		if agent := _string(args_config, 'agent'):
			config.agent = agent

		force_wipe = args_config.get('force_wipe', False)
		if not isinstance(force_wipe, bool):
			raise InvalidParameter('force_wipe', f'expected true or false, got {force_wipe!r}')
		config.force_wipe = force_wipe

		return config

	@classmethod
	def from_sources(
		cls,
		config: dict[str, Any] | None = None,
		creds: dict[str, Any] | None = None,
		args: Arguments | None = None,
		environ: Mapping[str, str] | None = None,
	) -> 'ProvisionConfig':
		"""
		Merges every parameter source, later ones win:
		config file, credentials file, environment, command line
		"""
		merged = {**(config or {}), **(creds or {})}
		environ = environ or {}

		for env_key, key in (
			(ENV_MIRRORLIST, 'mirrorlist'),
			(ENV_ROOT_PASSWORD, 'root_password'),
			(ENV_TARGET_DEVICE, 'device'),
		):
			if value := environ.get(env_key):
				merged[key] = value

				if key == 'root_password':
					merged.pop('root_enc_password', None)

		if args is not None:
			if args.device is not None:
				merged['device'] = args.device

			if args.mountpoint != Path('/mnt') or 'mountpoint' not in merged:
				merged['mountpoint'] = args.mountpoint

			if args.force_wipe:
				merged['force_wipe'] = True

		return cls.from_config(merged)


class ConfigHandler:
	def __init__(
		self,
		argv: list[str] | None = None,
		environ: Mapping[str, str] | None = None,
	) -> None:
		self._environ = os.environ if environ is None else environ
		self._parser: ArgumentParser = self._define_arguments()
		self._args: Arguments = self._parse_args(argv)

		config, creds = self._parse_config()

		self._config = ProvisionConfig.from_sources(config, creds, self._args, self._environ)
		self._config.version = self._get_version()

	@property
	def config(self) -> ProvisionConfig:
		return self._config

	@property
	def args(self) -> Arguments:
		return self._args

	@staticmethod
	def _get_version() -> str:
		try:
			return version('goldinstall')
		except PackageNotFoundError:
			return 'goldinstall version not found'

	def _define_arguments(self) -> ArgumentParser:
		parser = ArgumentParser(prog='goldinstall', formatter_class=argparse.ArgumentDefaultsHelpFormatter)
		parser.add_argument(
			'-v',
			'--version',
			action='version',
			default=False,
			version='%(prog)s ' + self._get_version(),
		)
		parser.add_argument(
			'--config',
			type=Path,
			nargs='?',
			default=None,
			help='JSON configuration file',
		)
		parser.add_argument(
			'--creds',
			type=Path,
			nargs='?',
			default=None,
			help='JSON credentials configuration file',
		)
		parser.add_argument(
			'--creds-decryption-key',
			type=str,
			nargs='?',
			default=None,
			help='Decryption key for credentials file',
		)
		parser.add_argument(
			'--device',
			type=Path,
			nargs='?',
			default=None,
			help=f'Target block device, overrides {ENV_TARGET_DEVICE}',
		)
		parser.add_argument(
			'--mountpoint',
			type=Path,
			nargs='?',
			default=Path('/mnt'),
			help='Define an alternate mount point for installation',
		)
		parser.add_argument(
			'--force-wipe',
			action='store_true',
			default=False,
			help='WARNING: Confirms that an existing partition table on the target device may be destroyed',
		)
		parser.add_argument(
			'--dry-run',
			'--dry_run',
			action='store_true',
			default=False,
			help='Validates the parameters and prints the planned layout and steps instead of performing an installation',
		)
		parser.add_argument(
			'--debug',
			action='store_true',
			default=False,
			help='Adds debug info into the log',
		)

		return parser

	def _parse_args(self, argv: list[str] | None) -> Arguments:
		argparse_args = vars(self._parser.parse_args(argv))
		args: Arguments = Arguments(**argparse_args)

		if args.debug:
			warn(f'Warning: --debug mode will write the planned configuration to {logger.path}!')

		if args.creds_decryption_key is None:
			if self._environ.get(ENV_CREDS_DECRYPTION_KEY):
				args.creds_decryption_key = self._environ.get(ENV_CREDS_DECRYPTION_KEY)

		return args

	def _parse_config(self) -> tuple[dict[str, Any], dict[str, Any]]:
		config: dict[str, Any] = {}
		creds: dict[str, Any] = {}

		if self._args.config is not None:
			config_data = self._read_file(self._args.config)
			config = self._load_json(self._args.config, config_data)

		if self._args.creds is not None:
			creds_data = self._read_file(self._args.creds)
			creds = self._process_creds_data(creds_data)

		return self._cleanup_config(config), self._cleanup_config(creds)

	def _process_creds_data(self, creds_data: str) -> dict[str, Any]:
		if creds_data.startswith('$'):  # encrypted data
			if self._args.creds_decryption_key is None:
				raise InvalidParameter('creds', f'the file is encrypted, provide --creds-decryption-key or {ENV_CREDS_DECRYPTION_KEY}')

			try:
				creds_data = decrypt(creds_data, self._args.creds_decryption_key)
			except ValueError as err:
				if 'Invalid password' in str(err):
					error('Incorrect credentials file decryption password')
					raise InvalidParameter('creds-decryption-key', 'incorrect credentials file decryption password') from err

				debug(f'Error decrypting credentials file: {err}')
				raise InvalidParameter('creds', str(err)) from err

		return self._load_json(self._args.creds, creds_data)

	def _load_json(self, path: Path | None, data: str) -> dict[str, Any]:
		try:
			loaded = json.loads(data)
		except json.JSONDecodeError as err:
			raise InvalidParameter(str(path), f'not a valid JSON file: {err}') from err

		if not isinstance(loaded, dict):
			raise InvalidParameter(str(path), 'expected a JSON object')

		return loaded

	def _read_file(self, path: Path) -> str:
		if not path.exists():
			error(f'Could not find file {path}')
			raise InvalidParameter(str(path), 'file does not exist')

		return path.read_text()

	def _cleanup_config(self, config: dict[str, Any]) -> dict[str, Any]:
		clean_args = {}
		for key, val in config.items():
			if isinstance(val, dict):
				val = self._cleanup_config(val)

			if val is not None:
				clean_args[key] = val

		return clean_args
