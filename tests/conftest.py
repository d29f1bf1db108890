from collections.abc import Iterator, Sequence
from pathlib import Path
from typing import Any

import pytest

from goldinstall.lib.args import ProvisionConfig
from goldinstall.lib.models.device import LsblkInfo, Size, Unit
from goldinstall.lib.models.mirrors import MirrorConfiguration
from goldinstall.lib.models.users import Password
from goldinstall.lib.output import logger


@pytest.fixture(autouse=True)
def log_directory(tmp_path: Path) -> Iterator[Path]:
	log_dir = tmp_path / 'log'
	log_dir.mkdir()

	previous = logger.directory
	logger.directory = log_dir
	logger.verbose = False

	yield log_dir

	logger.directory = previous


@pytest.fixture(scope='session')
def config_fixture() -> Path:
	return Path(__file__).parent / 'data' / 'test_config.json'


@pytest.fixture(scope='session')
def creds_fixture() -> Path:
	return Path(__file__).parent / 'data' / 'test_creds.json'


@pytest.fixture(scope='session')
def lsblk_fixture() -> Path:
	return Path(__file__).parent / 'data' / 'lsblk_vda.json'


def make_lsblk_info(
	size: Size = Size(10, Unit.GiB),
	type: str = 'disk',
	pttype: str | None = None,
	mountpoints: list[str | None] | None = None,
	children: list[dict[str, Any]] | None = None,
) -> LsblkInfo:
	return LsblkInfo.model_validate(
		{
			'name': 'vda',
			'path': '/dev/vda',
			'pkname': None,
			'log-sec': 512,
			'size': size.convert(Unit.B).value,
			'pttype': pttype,
			'type': type,
			'fstype': None,
			'uuid': None,
			'mountpoint': None,
			'mountpoints': [None] if mountpoints is None else mountpoints,
			'children': children or [],
		}
	)


class FakeDeviceHandler:
	def __init__(
		self,
		calls: list[tuple[Any, ...]],
		lsblk_info: LsblkInfo | None = None,
		uuid: str = '0f3c9a52-5d0b-4b7e-9a4e-0a6f1c3e2d11',
	) -> None:
		self.calls = calls
		self.lsblk_info = lsblk_info or make_lsblk_info()
		self.uuid = uuid
		self.failures: dict[str, Exception] = {}

	def _record(self, name: str, *args: Any) -> None:
		if name in self.failures:
			raise self.failures[name]
		self.calls.append((name, *args))

	def verify_target(self, device: Path, force_wipe: bool = False) -> LsblkInfo:
		if 'verify_target' in self.failures:
			raise self.failures['verify_target']
		return self.lsblk_info

	def partition(self, device: Path, layout: Any) -> None:
		self._record('partition', device, layout)

	def format(self, fs_type: Any, path: Path) -> None:
		self._record('format', fs_type, path)

	def mount(self, dev_path: Path, target_mountpoint: Path, mount_fs: str | None = None) -> None:
		self._record('mount', dev_path, target_mountpoint, mount_fs)

	def lookup_uuid(self, path: Path) -> str:
		self._record('lookup_uuid', path)
		return self.uuid


class FakeInstaller:
	def __init__(self, calls: list[tuple[Any, ...]]) -> None:
		self.calls = calls
		self.failures: dict[str, Exception] = {}

	def _record(self, name: str, *args: Any) -> None:
		if name in self.failures:
			raise self.failures[name]
		self.calls.append((name, *args))

	def activate_time_synchronization(self) -> None:
		self._record('activate_time_synchronization')

	def set_mirrors(self, mirror_config: MirrorConfiguration) -> None:
		self._record('set_mirrors', mirror_config.mirrorlist_content())

	def minimal_installation(self, additional_packages: Sequence[str] = ()) -> None:
		self._record('minimal_installation', additional_packages)

	def genfstab(self) -> None:
		self._record('genfstab')

	def configure_grub_cmdline(self, root_uuid: str) -> None:
		self._record('configure_grub_cmdline', root_uuid)

	def install_grub(self, efi_target: str | None = None) -> None:
		self._record('install_grub', efi_target)

	def enable_service(self, services: list[str]) -> None:
		self._record('enable_service', services)

	def set_root_password(self, password: Password | None) -> None:
		self._record('set_root_password')

	def add_autostart(self, agent: str) -> None:
		self._record('add_autostart', agent)

	def sync(self) -> None:
		self._record('sync')


@pytest.fixture
def calls() -> list[tuple[Any, ...]]:
	return []


@pytest.fixture
def fake_device_handler(calls: list[tuple[Any, ...]]) -> FakeDeviceHandler:
	return FakeDeviceHandler(calls)


@pytest.fixture
def fake_installer(calls: list[tuple[Any, ...]]) -> FakeInstaller:
	return FakeInstaller(calls)


@pytest.fixture
def provision_config() -> ProvisionConfig:
	return ProvisionConfig.from_config(
		{
			'mirrorlist': ['https://mirror.example.org/archlinux/$repo/os/$arch'],
			'root_password': 'goldpassword',
			'device': '/dev/vda',
		}
	)


@pytest.fixture
def lsblk_info_factory() -> Any:
	return make_lsblk_info
