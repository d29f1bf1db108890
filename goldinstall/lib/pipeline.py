from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .args import ProvisionConfig
from .disk.utils import partition_path
from .exceptions import ConfigWriteFailed, MissingParameter, ProvisioningError, SysCallError
from .general import locate_binary
from .hardware import SysInfo
from .installer import Installer
from .models.device import PartitionLayout, PartitionSpec
from .output import FormattedOutput, debug, error, info, warn

if TYPE_CHECKING:
	from .disk.device_handler import DeviceHandler

REQUIRED_TOOLS = (
	'timedatectl',
	'pacstrap',
	'genfstab',
	'arch-chroot',
	'mkfs.fat',
	'mkfs.ext4',
	'blkid',
	'lsblk',
	'mount',
	'partprobe',
	'udevadm',
)


class StepName(Enum):
	TimeSync = 'time_sync'
	Mirrors = 'mirrors'
	Partition = 'partition'
	Format = 'format'
	Mount = 'mount'
	Bootstrap = 'bootstrap'
	Fstab = 'fstab'
	BootloaderConfig = 'bootloader_config'
	BootloaderInstall = 'bootloader_install'
	Services = 'services'
	Credentials = 'credentials'
	Autostart = 'autostart'


@dataclass
class Step:
	name: StepName
	description: str
	action: Callable[[], None]

	def table_data(self) -> dict[str, str]:
		return {
			'step': self.name.value,
			'description': self.description,
		}


@dataclass
class ProvisionResult:
	completed: list[str] = field(default_factory=list)
	error: ProvisioningError | None = None

	@property
	def success(self) -> bool:
		return self.error is None

	@property
	def failed_step(self) -> str | None:
		return self.error.step if self.error else None


class ProvisioningPipeline:
	"""
	Runs the fixed provisioning sequence once, top to bottom.

	The parameter set is validated and the target device is checked before
	anything is touched. After that every step either completes or raises a
	:py:class:`ProvisioningError`, which stops the run and is returned in the
	:py:class:`ProvisionResult` tagged with the failing step.
	"""

	def __init__(
		self,
		config: ProvisionConfig,
		installer: Installer | None = None,
		device_handler: DeviceHandler | Any = None,
		on_step: Callable[[str], None] | None = None,
		required_tools: Sequence[str] = REQUIRED_TOOLS,
		efi_target: str | None = None,
	) -> None:
		if device_handler is None:
			# libparted is only needed once a device is actually reshaped
			from .disk.device_handler import DeviceHandler

			device_handler = DeviceHandler()

		self.config = config
		self.installer = installer or Installer(config.mountpoint)
		self.device_handler = device_handler
		self.on_step = on_step
		self.required_tools = required_tools
		self.efi_target = efi_target

		self._layout: PartitionLayout | None = None

	@property
	def device(self) -> Path:
		if self.config.device is None:
			raise MissingParameter('device')
		return self.config.device

	@property
	def layout(self) -> PartitionLayout:
		if self._layout is None:
			raise ProvisioningError('Partition layout requested before the target device was verified')
		return self._layout

	@property
	def steps(self) -> list[Step]:
		mnt = self.config.mountpoint

		return [
			Step(StepName.TimeSync, 'enable network time synchronization', self._time_sync),
			Step(StepName.Mirrors, 'write /etc/pacman.d/mirrorlist of the live system', self._mirrors),
			Step(StepName.Partition, f'create a GPT with boot and root partitions on {self.config.device}', self._partition),
			Step(StepName.Format, 'create FAT32 on boot and ext4 on root', self._format),
			Step(StepName.Mount, f'mount root at {mnt} and boot at {mnt / "boot"}', self._mount),
			Step(StepName.Bootstrap, 'install the base packages with pacstrap', self._bootstrap),
			Step(StepName.Fstab, f'append genfstab output to {mnt / "etc/fstab"}', self._fstab),
			Step(StepName.BootloaderConfig, 'set the kernel command line to the root UUID', self._bootloader_config),
			Step(StepName.BootloaderInstall, 'install GRUB to the EFI system partition', self._bootloader_install),
			Step(StepName.Services, f'enable {", ".join(self.config.services)}', self._services),
			Step(StepName.Credentials, 'set the root password', self._credentials),
			Step(StepName.Autostart, f'start {self.config.agent} from {mnt / "root/.xinitrc"}', self._autostart),
		]

	def preflight(self) -> None:
		self.config.validate()

		for tool in self.required_tools:
			locate_binary(tool)

		lsblk_info = self.device_handler.verify_target(self.device, self.config.force_wipe)
		self._layout = PartitionLayout.for_capacity(lsblk_info.size)

		debug(f'Machine: {SysInfo.machine()}, vendor: {SysInfo.sys_vendor()}')

		if not SysInfo.has_uefi():
			warn('The live environment was not booted in UEFI mode, installing the EFI bootloader is expected to fail')

	def plan(self) -> str:
		output = FormattedOutput.as_table(list(self.layout.partitions), capitalize=True)
		output += '\n'
		output += FormattedOutput.as_table(self.steps, capitalize=True)
		return output

	def run(self) -> ProvisionResult:
		result = ProvisionResult()

		try:
			self.preflight()
		except ProvisioningError as err:
			err.step = 'preflight'
			self._report(err)
			result.error = err
			return result

		for step in self.steps:
			if self.on_step:
				self.on_step(step.name.value)

			info(f'Running step {step.name.value}: {step.description}')

			try:
				step.action()
			except ProvisioningError as err:
				err.step = step.name.value
				self._report(err)
				result.error = err
				return result

			result.completed.append(step.name.value)

		try:
			self.installer.sync()
		except SysCallError as err:
			sync_error = ProvisioningError('Could not flush filesystem buffers', err.worker_log.decode(errors='backslashreplace'))
			sync_error.step = 'sync'
			self._report(sync_error)
			result.error = sync_error
			return result

		info('Provisioning completed without any errors')
		return result

	def _report(self, err: ProvisioningError) -> None:
		error(str(err))

		if err.cause:
			error(err.cause)

	def _partition_path(self, spec: PartitionSpec) -> Path:
		return partition_path(self.device, spec.number)

	def _time_sync(self) -> None:
		self.installer.activate_time_synchronization()

	def _mirrors(self) -> None:
		if self.config.mirror_config is None:
			raise MissingParameter('mirrorlist')

		self.installer.set_mirrors(self.config.mirror_config)

	def _partition(self) -> None:
		self.device_handler.partition(self.device, self.layout)

	def _format(self) -> None:
		for spec in self.layout.partitions:
			self.device_handler.format(spec.fs_type, self._partition_path(spec))

	def _mount(self) -> None:
		root = self.layout.root
		boot = self.layout.boot
		mountpoint = self.config.mountpoint

		self.device_handler.mount(self._partition_path(root), mountpoint, mount_fs=root.fs_type.fs_type_mount)
		self.device_handler.mount(self._partition_path(boot), mountpoint / 'boot', mount_fs=boot.fs_type.fs_type_mount)

	def _bootstrap(self) -> None:
		self.installer.minimal_installation(self.config.packages)

	def _fstab(self) -> None:
		self.installer.genfstab()

	def _bootloader_config(self) -> None:
		root_path = self._partition_path(self.layout.root)

		try:
			uuid = self.device_handler.lookup_uuid(root_path)
		except SysCallError as err:
			raise ConfigWriteFailed(self.config.mountpoint / 'etc/default/grub', err.message) from err

		debug(f'Root filesystem {root_path} has UUID {uuid}')

		self.installer.configure_grub_cmdline(uuid)

	def _bootloader_install(self) -> None:
		self.installer.install_grub(self.efi_target)

	def _services(self) -> None:
		self.installer.enable_service(self.config.services)

	def _credentials(self) -> None:
		self.installer.set_root_password(self.config.root_password)

	def _autostart(self) -> None:
		self.installer.add_autostart(self.config.agent)
