from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, ValidationInfo, field_validator

from ..exceptions import PartitionFailed


class Unit(Enum):
	B = 1
	KiB = 1024
	MiB = 1024**2
	GiB = 1024**3
	TiB = 1024**4

	sectors = 'sectors'


# candidates for Size.format_highest, smallest first
_BINARY_UNITS = (Unit.B, Unit.KiB, Unit.MiB, Unit.GiB, Unit.TiB)


@dataclass
class SectorSize:
	value: int
	unit: Unit = Unit.B

	def __post_init__(self) -> None:
		if self.unit == Unit.sectors:
			raise ValueError('A sector size can not be expressed in sectors')

	@staticmethod
	def default() -> SectorSize:
		return SectorSize(512, Unit.B)

	def in_bytes(self) -> int:
		return self.value * self.unit.value


@dataclass
class Size:
	"""
	A byte quantity. Sizes given in sectors carry the sector size of
	their device, every other unit is a fixed multiple of a byte.
	"""

	value: int
	unit: Unit
	sector_size: SectorSize = field(default_factory=SectorSize.default)

	def __post_init__(self) -> None:
		if not isinstance(self.sector_size, SectorSize):
			raise ValueError(f'Expected a SectorSize, got {self.sector_size!r}')

	def in_bytes(self) -> int:
		if self.unit == Unit.sectors:
			return self.value * self.sector_size.in_bytes()
		return self.value * self.unit.value

	def convert(self, target_unit: Unit, sector_size: SectorSize | None = None) -> Size:
		"""
		Rounds up when converting to sectors and down for every other unit
		"""
		sector_size = sector_size or self.sector_size

		if target_unit == Unit.sectors:
			return Size(math.ceil(self.in_bytes() / sector_size.in_bytes()), Unit.sectors, sector_size)

		return Size(self.in_bytes() // target_unit.value, target_unit, sector_size)

	def format_size(self, target_unit: Unit) -> str:
		return f'{self.convert(target_unit).value} {target_unit.name}'

	def format_highest(self) -> str:
		value = float(self.in_bytes())
		unit = Unit.B

		for larger in _BINARY_UNITS[1:]:
			if value < 1024:
				break
			value /= 1024
			unit = larger

		return f'{value:.1f}'.removesuffix('.0') + f' {unit.name}'

	def __add__(self, other: Size) -> Size:
		return Size(self.in_bytes() + other.in_bytes(), Unit.B, self.sector_size)

	def __sub__(self, other: Size) -> Size:
		return Size(abs(self.in_bytes() - other.in_bytes()), Unit.B, self.sector_size)

	def __le__(self, other: Size) -> bool:
		return self.in_bytes() <= other.in_bytes()

	def __eq__(self, other: object) -> bool:
		if isinstance(other, Size):
			return self.in_bytes() == other.in_bytes()
		return NotImplemented


class FilesystemType(Enum):
	Ext4 = 'ext4'
	Fat32 = 'fat32'

	@property
	def fs_type_mount(self) -> str:
		match self:
			case FilesystemType.Fat32:
				return 'vfat'
			case _:
				return self.value

	@property
	def parted_value(self) -> str:
		return self.value

	def mkfs_command(self, path: Path) -> list[str]:
		match self:
			case FilesystemType.Ext4:
				# Force create
				return ['mkfs.ext4', '-F', str(path)]
			case FilesystemType.Fat32:
				return ['mkfs.fat', '-F', '32', str(path)]


class PartitionFlag(Enum):
	ESP = 'esp'


class PartitionRole(Enum):
	Boot = 'boot'
	Root = 'root'


# GPT layout boundaries, the first MiB is left for the table and alignment
BOOT_START = Size(1, Unit.MiB)
BOOT_END = Size(256, Unit.MiB)


@dataclass(frozen=True)
class PartitionSpec:
	number: int
	role: PartitionRole
	start: Size
	length: Size
	fs_type: FilesystemType
	flags: tuple[PartitionFlag, ...] = ()
	fill: bool = False

	@property
	def end(self) -> Size:
		return self.start + self.length

	def table_data(self) -> dict[str, str | int]:
		return {
			'number': self.number,
			'role': self.role.value,
			'start': self.start.format_size(Unit.MiB),
			'end': '100%' if self.fill else self.end.format_size(Unit.MiB),
			'length': self.length.format_highest(),
			'filesystem': self.fs_type.value,
			'flags': ','.join(f.value for f in self.flags),
		}


@dataclass(frozen=True)
class PartitionLayout:
	capacity: Size
	partitions: tuple[PartitionSpec, ...]
	table: str = 'gpt'

	@classmethod
	def for_capacity(cls, capacity: Size) -> PartitionLayout:
		"""
		Boot partition from 1 MiB to 256 MiB flagged as ESP, root partition
		from 256 MiB to the end of the device.
		"""
		if capacity <= BOOT_END:
			raise PartitionFailed(
				f'Device capacity {capacity.format_highest()} is too small, more than {BOOT_END.format_highest()} is required'
			)

		boot = PartitionSpec(
			number=1,
			role=PartitionRole.Boot,
			start=BOOT_START,
			length=BOOT_END - BOOT_START,
			fs_type=FilesystemType.Fat32,
			flags=(PartitionFlag.ESP,),
		)

		root = PartitionSpec(
			number=2,
			role=PartitionRole.Root,
			start=BOOT_END,
			length=capacity - BOOT_END,
			fs_type=FilesystemType.Ext4,
			fill=True,
		)

		return cls(capacity=capacity, partitions=(boot, root))

	@property
	def boot(self) -> PartitionSpec:
		return next(p for p in self.partitions if p.role == PartitionRole.Boot)

	@property
	def root(self) -> PartitionSpec:
		return next(p for p in self.partitions if p.role == PartitionRole.Root)


class LsblkInfo(BaseModel):
	name: str
	path: Path
	pkname: str | None
	log_sec: int = Field(alias='log-sec')
	size: Size
	pttype: str | None
	type: str | None
	fstype: str | None
	uuid: str | None
	mountpoint: Path | None
	mountpoints: list[Path]
	children: list[LsblkInfo] = Field(default_factory=list)

	@field_validator('size', mode='before')
	@classmethod
	def convert_size(cls, v: int, info: ValidationInfo) -> Size:
		sector_size = SectorSize(info.data['log_sec'], Unit.B)
		return Size(v, Unit.B, sector_size)

	@field_validator('mountpoints', mode='before')
	@classmethod
	def remove_none(cls, v: list[Path | None] | None) -> list[Path]:
		return [item for item in v or [] if item is not None]

	@classmethod
	def fields(cls) -> list[str]:
		return [field.alias or name for name, field in cls.model_fields.items() if name != 'children']

	def is_mounted(self) -> bool:
		if self.mountpoints:
			return True
		return any(child.is_mounted() for child in self.children)
