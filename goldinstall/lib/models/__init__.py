from .device import (
	FilesystemType,
	LsblkInfo,
	PartitionFlag,
	PartitionLayout,
	PartitionRole,
	PartitionSpec,
	SectorSize,
	Size,
	Unit,
)
from .mirrors import CustomServer, MirrorConfiguration
from .users import Password

__all__ = [
	'CustomServer',
	'FilesystemType',
	'LsblkInfo',
	'MirrorConfiguration',
	'PartitionFlag',
	'PartitionLayout',
	'PartitionRole',
	'PartitionSpec',
	'Password',
	'SectorSize',
	'Size',
	'Unit',
]
