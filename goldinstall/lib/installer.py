import shlex
from collections.abc import Sequence
from pathlib import Path
from subprocess import CalledProcessError

from .exceptions import (
	BootloaderInstallFailed,
	ConfigWriteFailed,
	CredentialSetFailed,
	MissingParameter,
	ServiceEnableFailed,
	SysCallError,
	TimeSyncFailed,
)
from .general import SysCommand, run
from .hardware import SysInfo
from .models.mirrors import MirrorConfiguration
from .models.users import Password
from .output import debug, error, info
from .pacman import BASE_PACKAGES, Pacman

DEFAULT_AGENT = 'goldboot'


def _cause(err: SysCallError) -> str:
	return err.worker_log.decode(errors='backslashreplace')


class Installer:
	def __init__(
		self,
		target: Path,
		live_root: Path = Path('/'),
	):
		"""
		`Installer()` is the wrapper for the installation steps acting on the
		live system (``live_root``) and on the mounted target tree (``target``).
		"""
		self.target = target
		self.live_root = live_root
		self.pacman = Pacman(self.target)

	def sync(self) -> None:
		info('Syncing the system...')
		SysCommand('sync')

	def activate_time_synchronization(self) -> None:
		info('Activating network time synchronization')

		try:
			SysCommand('timedatectl set-ntp true')
		except SysCallError as err:
			raise TimeSyncFailed('Could not enable network time synchronization', _cause(err)) from err

	def set_mirrors(self, mirror_config: MirrorConfiguration) -> Path:
		"""
		Writes the mirror list of the live system, pacstrap copies it into the target.

		:param mirror_config: The mirror configuration to use.
		:type mirror_config: MirrorConfiguration
		"""
		if mirror_config.is_empty():
			raise MissingParameter('mirrorlist')

		mirrorlist_config = self.live_root / 'etc/pacman.d/mirrorlist'
		content = mirror_config.mirrorlist_content()

		debug(f'Mirrorlist:\n{content}')

		try:
			mirrorlist_config.parent.mkdir(parents=True, exist_ok=True)
			mirrorlist_config.write_text(content)
		except OSError as err:
			raise ConfigWriteFailed(mirrorlist_config, str(err)) from err

		return mirrorlist_config

	def minimal_installation(self, additional_packages: Sequence[str] = ()) -> None:
		packages = BASE_PACKAGES + [p for p in additional_packages if p not in BASE_PACKAGES]
		self.pacman.strap(packages)

	def genfstab(self, flags: str = '-U') -> None:
		fstab_path = self.target / 'etc' / 'fstab'
		info(f'Updating {fstab_path}')

		try:
			gen_fstab = SysCommand(f'genfstab {flags} {self.target}').output()
		except SysCallError as err:
			raise ConfigWriteFailed(fstab_path, _cause(err)) from err

		try:
			with open(fstab_path, 'ab') as fp:
				fp.write(gen_fstab)
		except OSError as err:
			raise ConfigWriteFailed(fstab_path, str(err)) from err

		if not fstab_path.is_file():
			raise ConfigWriteFailed(fstab_path, 'Could not create fstab file')

	def configure_grub_cmdline(self, root_uuid: str) -> str:
		"""
		Points the kernel at the root filesystem by UUID. The line is appended,
		grub's shell-style config lets the last assignment win.
		"""
		grub_default = self.target / 'etc/default/grub'
		line = f'GRUB_CMDLINE_LINUX="root=UUID={root_uuid}"'

		info(f'Setting kernel command line in {grub_default}: {line}')

		try:
			with open(grub_default, 'a') as fp:
				fp.write(f'{line}\n')
		except OSError as err:
			raise ConfigWriteFailed(grub_default, str(err)) from err

		return line

	def install_grub(self, efi_target: str | None = None) -> None:
		debug('Installing grub bootloader')

		efi_target = efi_target or SysInfo.efi_target()
		boot_dir = Path('/boot')

		command = [
			'arch-chroot',
			str(self.target),
			'grub-install',
			f'--target={efi_target}',
			f'--efi-directory={boot_dir}',
			'--bootloader-id=GRUB',
			'--removable',
		]

		try:
			SysCommand(command, peek_output=True)
		except SysCallError as err:
			raise BootloaderInstallFailed(f'Could not install GRUB to {self.target}{boot_dir}: {shlex.join(command)}', _cause(err)) from err

		try:
			SysCommand(f'arch-chroot {self.target} grub-mkconfig -o {boot_dir}/grub/grub.cfg')
		except SysCallError as err:
			raise BootloaderInstallFailed('Could not configure GRUB', _cause(err)) from err

	def arch_chroot(self, cmd: str) -> SysCommand:
		return SysCommand(f'arch-chroot {self.target} {cmd}')

	def enable_service(self, services: str | list[str]) -> None:
		if isinstance(services, str):
			services = [services]

		for service in services:
			info(f'Enabling service {service}')

			try:
				self.arch_chroot(f'systemctl enable {service}')
			except SysCallError as err:
				raise ServiceEnableFailed(service, _cause(err)) from err

	def set_root_password(self, password: Password | None) -> None:
		info('Setting password for root')

		if password is None or password.is_empty():
			raise MissingParameter('root_password')

		try:
			enc_password = password.enc_password
		except (OSError, ValueError) as err:
			raise CredentialSetFailed(f'Unable to hash the root password: {err}') from err

		input_data = f'root:{enc_password}'.encode()
		cmd = ['arch-chroot', str(self.target), 'chpasswd', '--encrypted']

		try:
			run(cmd, input_data=input_data)
		except (CalledProcessError, OSError) as err:
			exit_code = getattr(err, 'returncode', None)
			error(f'chpasswd failed with exit code {exit_code}')
			raise CredentialSetFailed('Unable to set the root password') from None

	def add_autostart(self, agent: str = DEFAULT_AGENT) -> Path:
		xinitrc = self.target / 'root/.xinitrc'

		info(f'Starting {agent} with the X session of root')

		try:
			xinitrc.parent.mkdir(parents=True, exist_ok=True)
			xinitrc.write_text(f'exec {agent}\n')
		except OSError as err:
			raise ConfigWriteFailed(xinitrc, str(err)) from err

		return xinitrc
