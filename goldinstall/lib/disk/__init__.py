from .utils import get_lsblk_info, partition_path, verify_target_device

__all__ = [
	'get_lsblk_info',
	'partition_path',
	'verify_target_device',
]
