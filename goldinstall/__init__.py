"""Unattended provisioning of Arch Linux golden images"""

import json
import os
import sys
import traceback
from collections.abc import Mapping

from .lib.args import ConfigHandler
from .lib.exceptions import ProvisioningError
from .lib.general import JSON
from .lib.hardware import SysInfo
from .lib.output import FormattedOutput, debug, error, info, logger, warn
from .lib.pipeline import ProvisioningPipeline, ProvisionResult


def _log_sys_info() -> None:
	# Log various information about hardware before starting the installation. This might assist in troubleshooting
	debug(f'Hardware vendor detected: {SysInfo.sys_vendor()}; machine: {SysInfo.machine()}; UEFI mode: {SysInfo.has_uefi()}')


def _dry_run(pipeline: ProvisioningPipeline) -> int:
	try:
		pipeline.preflight()
	except ProvisioningError as err:
		err.step = 'preflight'
		error(str(err))
		return 1

	info('Configuration:')
	info(json.dumps(pipeline.config.safe_json(), indent=4, sort_keys=True, cls=JSON))
	info(pipeline.plan())
	info('Dry run finished, no changes were made')

	return 0


def main(argv: list[str] | None = None, environ: Mapping[str, str] | None = None) -> int:
	"""
	This can either be run as the installed application: goldinstall
	OR straight as a module: python -m goldinstall
	"""
	try:
		handler = ConfigHandler(argv, environ)
	except ProvisioningError as err:
		error(str(err))
		return 1

	logger.verbose = handler.args.debug

	if not handler.args.dry_run and os.getuid() != 0:
		error('goldinstall requires root privileges to run. See --help for more.')
		return 1

	_log_sys_info()

	pipeline = ProvisioningPipeline(handler.config)

	if handler.args.dry_run:
		return _dry_run(pipeline)

	result: ProvisionResult = pipeline.run()

	if not result.success:
		error(f'Provisioning failed in step {result.failed_step}, see {logger.path} for details')
		return 1

	info(f'Completed steps: {", ".join(result.completed)}')
	return 0


def run_as_a_module() -> None:
	rc = 0
	exc = None

	try:
		rc = main()
	except Exception as e:
		exc = e
	finally:
		if exc:
			err = ''.join(traceback.format_exception(exc))
			error(err)

			warn(f'goldinstall experienced the above error. The log file is available at "{logger.path}".')
			rc = 1

		sys.exit(rc)


__all__ = [
	'ConfigHandler',
	'FormattedOutput',
	'ProvisionResult',
	'ProvisioningPipeline',
	'SysInfo',
	'debug',
	'error',
	'info',
	'main',
	'run_as_a_module',
	'warn',
]
