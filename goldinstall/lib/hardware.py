import os
import platform
from pathlib import Path


class SysInfo:
	@staticmethod
	def has_uefi() -> bool:
		return os.path.isdir('/sys/firmware/efi')

	@staticmethod
	def machine() -> str:
		return platform.machine()

	@staticmethod
	def efi_target() -> str:
		"""
		The grub-install target matching the live environment, e.g. x86_64-efi
		"""
		return f'{SysInfo.machine()}-efi'

	@staticmethod
	def sys_vendor() -> str | None:
		path = Path('/sys/class/dmi/id/sys_vendor')
		if path.exists():
			return path.read_text().strip() or None
		return None
