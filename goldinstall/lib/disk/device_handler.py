from __future__ import annotations

import logging
from pathlib import Path

import parted
from parted import (
	CreateException,
	Disk,
	DiskException,
	FileSystem,
	Geometry,
	GeometryException,
	IOException,
	Partition,
	PartitionException,
	freshDisk,
	getDevice,
)

from ..exceptions import FormatFailed, MountFailed, PartitionFailed, SysCallError
from ..general import SysCommand
from ..models.device import (
	FilesystemType,
	LsblkInfo,
	PartitionFlag,
	PartitionLayout,
	PartitionSpec,
	SectorSize,
	Unit,
)
from ..output import debug, error, info, log
from .utils import verify_target_device


_PARTED_FLAGS = {
	PartitionFlag.ESP: parted.PARTITION_ESP,
}

_PARTED_ERRORS = (CreateException, DiskException, GeometryException, IOException, PartitionException)


class DeviceHandler:
	"""
	Reshapes the target device: partition table, filesystems and mounts.
	Only used against a device that passed :py:meth:`verify_target`.
	"""

	def verify_target(self, device: Path, force_wipe: bool = False) -> LsblkInfo:
		return verify_target_device(device, force_wipe)

	def _fill_length(self, disk: Disk, start: int) -> int:
		# up to the end of the free region holding the start, the backup GPT lives behind it
		for region in disk.getFreeSpaceRegions():
			if region.start <= start <= region.end:
				return region.end - start + 1

		raise PartitionFailed(f'No free space left on {disk.device.path} at sector {start}')

	def _setup_partition(self, spec: PartitionSpec, disk: Disk, sector_size: SectorSize) -> None:
		start = spec.start.convert(Unit.sectors, sector_size).value

		if spec.fill:
			length = self._fill_length(disk, start)
		else:
			length = spec.length.convert(Unit.sectors, sector_size).value

		if length <= 0:
			raise PartitionFailed(f'Partition {spec.number} would be {length} sectors long')

		debug(f'\tPartition: {spec.number} ({spec.role.value})')
		debug(f'\tFilesystem: {spec.fs_type.parted_value}')
		debug(f'\tGeometry: {start} start sector, {length} length')

		try:
			geometry = Geometry(device=disk.device, start=start, length=length)

			partition = Partition(
				disk=disk,
				type=parted.PARTITION_NORMAL,
				fs=FileSystem(type=spec.fs_type.parted_value, geometry=geometry),
				geometry=geometry,
			)

			for flag in spec.flags:
				partition.setFlag(_PARTED_FLAGS[flag])

			disk.addPartition(partition=partition, constraint=disk.device.optimalAlignedConstraint)
		except _PARTED_ERRORS as ex:
			raise PartitionFailed(f'Unable to add partition {spec.number}: {ex}') from ex

	def _wipe(self, dev_path: Path) -> None:
		"""
		Wipe the first bytes of a device so auto-discovery tools
		don't recognize any leftover table or filesystem signature
		"""
		with open(dev_path, 'r+b') as p:
			p.write(bytearray(1024))

	def partition(self, device: Path, layout: PartitionLayout) -> None:
		"""
		Create a fresh GPT on the block device and create all partitions of the layout.
		"""
		# WARNING: the entire device will be wiped and all data lost
		info(f'Creating {layout.table} partition table on {device}')

		try:
			self._wipe(device)

			parted_device = getDevice(str(device))
			sector_size = SectorSize(parted_device.sectorSize, Unit.B)
			disk = freshDisk(parted_device, layout.table)

			for spec in layout.partitions:
				self._setup_partition(spec, disk, sector_size)

			disk.commit()
		except (*_PARTED_ERRORS, OSError) as err:
			raise PartitionFailed(f'Unable to partition {device}: {err}') from err

		self.partprobe(device)
		self.udev_sync()

	def format(self, fs_type: FilesystemType, path: Path) -> None:
		cmd = fs_type.mkfs_command(path)

		debug('Formatting filesystem:', ' '.join(cmd))

		try:
			SysCommand(cmd)
		except SysCallError as err:
			error(f'Could not format {path} with {fs_type.value}: {err.message}')
			raise FormatFailed(path, err.worker_log.decode(errors='backslashreplace')) from err

	def mount(
		self,
		dev_path: Path,
		target_mountpoint: Path,
		mount_fs: str | None = None,
	) -> None:
		try:
			target_mountpoint.mkdir(parents=True, exist_ok=True)
		except OSError as err:
			raise MountFailed(dev_path, f'Could not create mountpoint {target_mountpoint}: {err}') from err

		cmd = ['mount']

		if mount_fs:
			cmd.extend(('-t', mount_fs))

		cmd.extend((str(dev_path), str(target_mountpoint)))

		debug(f'Mounting {dev_path}: {" ".join(cmd)}')

		try:
			SysCommand(cmd)
		except SysCallError as err:
			raise MountFailed(dev_path, err.worker_log.decode(errors='backslashreplace')) from err

	def lookup_uuid(self, path: Path) -> str:
		"""
		The filesystem UUID of a formatted partition, read from disk
		"""
		uuid = SysCommand(['blkid', '-s', 'UUID', '-o', 'value', str(path)]).decode()

		if not uuid:
			raise SysCallError(f'blkid found no filesystem UUID on {path}')

		return uuid

	def partprobe(self, path: Path | None = None) -> None:
		if path is not None:
			command = f'partprobe {path}'
		else:
			command = 'partprobe'

		try:
			debug(f'Calling partprobe: {command}')
			SysCommand(command)
		except SysCallError as err:
			if 'have been written, but we have been unable to inform the kernel of the change' in str(err):
				log(f'Partprobe was not able to inform the kernel of the new disk state (ignoring error): {err}', fg='gray', level=logging.INFO)
			else:
				raise PartitionFailed(f'"{command}" failed to run', err.worker_log.decode(errors='backslashreplace')) from err

	@staticmethod
	def udev_sync() -> None:
		try:
			SysCommand('udevadm settle')
		except SysCallError as err:
			debug(f'Failed to synchronize with udev: {err}')
