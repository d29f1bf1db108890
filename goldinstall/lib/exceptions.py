from __future__ import annotations

from pathlib import Path


class ProvisioningError(Exception):
	"""
	Base class for every error that terminates a provisioning run.
	``step`` is filled in by the pipeline driver with the name of the
	step that raised the error, ``cause`` holds the underlying tool output.
	"""

	def __init__(self, message: str, cause: str | None = None) -> None:
		super().__init__(message)
		self.message = message
		self.cause = cause
		self.step: str | None = None

	def __str__(self) -> str:
		if self.step:
			return f'[{self.step}] {self.message}'
		return self.message


class MissingParameter(ProvisioningError):
	def __init__(self, *names: str) -> None:
		super().__init__(f'Missing required parameter(s): {", ".join(names)}')
		self.names = list(names)

	@property
	def name(self) -> str:
		return self.names[0]


class InvalidParameter(ProvisioningError):
	def __init__(self, name: str, reason: str) -> None:
		super().__init__(f'Invalid parameter {name}: {reason}')
		self.name = name


class RequirementError(ProvisioningError):
	def __init__(self, tool: str) -> None:
		super().__init__(f'Binary {tool} does not exist.')
		self.tool = tool


class DeviceUnavailable(ProvisioningError):
	def __init__(self, device: Path | str, reason: str) -> None:
		super().__init__(f'Target device {device} is unavailable: {reason}')
		self.device = Path(device)
		self.reason = reason


class TimeSyncFailed(ProvisioningError):
	pass


class PartitionFailed(ProvisioningError):
	pass


class FormatFailed(ProvisioningError):
	def __init__(self, partition: Path, cause: str | None = None) -> None:
		super().__init__(f'Could not format {partition}', cause)
		self.partition = partition


class MountFailed(ProvisioningError):
	def __init__(self, partition: Path, cause: str | None = None) -> None:
		super().__init__(f'Could not mount {partition}', cause)
		self.partition = partition


class BootstrapFailed(ProvisioningError):
	def __init__(self, cause: str | None = None) -> None:
		super().__init__('Pacstrap failed to install the base system', cause)


class ConfigWriteFailed(ProvisioningError):
	def __init__(self, path: Path, cause: str | None = None) -> None:
		super().__init__(f'Could not write {path}', cause)
		self.path = path


class BootloaderInstallFailed(ProvisioningError):
	pass


class ServiceEnableFailed(ProvisioningError):
	def __init__(self, service: str, cause: str | None = None) -> None:
		super().__init__(f'Unable to enable service {service}', cause)
		self.service = service


class CredentialSetFailed(ProvisioningError):
	pass


class SysCallError(Exception):
	def __init__(self, message: str, exit_code: int | None = None, worker_log: bytes = b'') -> None:
		super().__init__(message)
		self.message = message
		self.exit_code = exit_code
		self.worker_log = worker_log
