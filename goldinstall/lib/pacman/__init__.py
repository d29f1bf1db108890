import shlex
import time
from pathlib import Path

from ..exceptions import BootstrapFailed, SysCallError
from ..general import SysCommand
from ..output import error, info, warn

BASE_PACKAGES = [
	'systemd',
	'efibootmgr',
	'e2fsprogs',
	'grub',
	'dhcpcd',
	'xorg-server',
]


class Pacman:
	lock_file = Path('/var/lib/pacman/db.lck')
	lock_timeout = 60 * 10

	def __init__(self, target: Path):
		self.target = target

	def wait_for_lock(self) -> None:
		"""
		Protects us from colliding with other running pacman sessions on the live system.
		The grace period is 10 minutes before giving up.
		"""
		if self.lock_file.exists():
			warn(f'Pacman is already running, waiting maximum {self.lock_timeout // 60} minutes for it to terminate.')

		started = time.time()
		while self.lock_file.exists():
			time.sleep(0.25)

			if time.time() - started > self.lock_timeout:
				error('Pre-existing pacman lock never exited. Please clean up any existing pacman sessions before using goldinstall.')
				raise BootstrapFailed(f'Pacman database lock {self.lock_file} was never released')

	def strap(self, packages: str | list[str]) -> None:
		if isinstance(packages, str):
			packages = [packages]

		self.wait_for_lock()

		info(f'Installing packages: {packages}')

		cmd = ['pacstrap', '-K', str(self.target), *packages, '--noconfirm']

		try:
			SysCommand(cmd, peek_output=True)
		except SysCallError as err:
			error(f'Pacstrap failed: {shlex.join(cmd)}. See /var/log/goldinstall/install.log or above message for error details')
			raise BootstrapFailed(err.worker_log.decode(errors='backslashreplace')) from err


__all__ = [
	'BASE_PACKAGES',
	'Pacman',
]
