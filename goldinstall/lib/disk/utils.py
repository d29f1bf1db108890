import os
import stat
from pathlib import Path

from pydantic import BaseModel

from ..exceptions import DeviceUnavailable, SysCallError
from ..general import SysCommand
from ..models.device import LsblkInfo
from ..output import debug

WHOLE_DEVICE_TYPES = ('disk', 'loop')


class LsblkOutput(BaseModel):
	blockdevices: list[LsblkInfo]


def _fetch_lsblk_info(dev_path: Path | str) -> LsblkOutput:
	cmd = ['lsblk', '--json', '--bytes', '--output', ','.join(LsblkInfo.fields()), str(dev_path)]

	try:
		worker = SysCommand(cmd)
	except SysCallError as err:
		# Get the output minus the message/info from lsblk if it returns a non-zero exit code.
		if err.worker_log:
			debug(f'Error calling lsblk: {err.worker_log.decode()}')

		raise DeviceUnavailable(dev_path, 'lsblk could not read the device')

	output = worker.output(remove_cr=False)
	return LsblkOutput.model_validate_json(output)


def get_lsblk_info(dev_path: Path | str) -> LsblkInfo:
	infos = _fetch_lsblk_info(dev_path)

	if infos.blockdevices:
		return infos.blockdevices[0]

	raise DeviceUnavailable(dev_path, 'lsblk returned no information')


def partition_path(device: Path, number: int) -> Path:
	"""
	/dev/vda -> /dev/vda1, while devices ending in a digit get a separator,
	/dev/nvme0n1 -> /dev/nvme0n1p1 and /dev/loop0 -> /dev/loop0p1
	"""
	name = device.name

	if name[-1:].isdigit():
		return device.with_name(f'{name}p{number}')

	return device.with_name(f'{name}{number}')


def check_lsblk_info(device: Path, info: LsblkInfo, force_wipe: bool) -> None:
	if info.type not in WHOLE_DEVICE_TYPES:
		raise DeviceUnavailable(device, f'device type {info.type} is not a whole disk')

	if info.is_mounted():
		raise DeviceUnavailable(device, 'device or one of its partitions is mounted')

	if (info.pttype or info.children) and not force_wipe:
		raise DeviceUnavailable(device, 'device carries an existing partition table, confirm with --force-wipe')


def verify_target_device(device: Path, force_wipe: bool = False) -> LsblkInfo:
	if not device.exists():
		raise DeviceUnavailable(device, 'no such device')

	if not stat.S_ISBLK(device.stat().st_mode):
		raise DeviceUnavailable(device, 'not a block device')

	if not os.access(device, os.W_OK):
		raise DeviceUnavailable(device, 'not writable')

	info = get_lsblk_info(device)
	check_lsblk_info(device, info, force_wipe)

	debug(f'Target device {device}: {info.size.format_highest()}, table {info.pttype}')

	return info
