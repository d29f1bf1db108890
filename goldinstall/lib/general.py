from __future__ import annotations

import json
import os
import shlex
import stat
import subprocess
import sys
import time
from enum import Enum
from pathlib import Path
from shutil import which
from typing import Any

from .exceptions import RequirementError, SysCallError
from .output import debug, logger

# commands are parsed by their output, keep it in the C locale
_COMMAND_ENV = {'LC_ALL': 'C'}


def locate_binary(name: str) -> str:
	if path := which(name):
		return path
	raise RequirementError(name)


def jsonify(obj: Any) -> Any:
	"""
	Converts configuration objects into json.dumps() compatible values
	"""
	if isinstance(obj, dict):
		return {str(key): jsonify(value) for key, value in obj.items()}
	if isinstance(obj, list | tuple):
		return [jsonify(item) for item in obj]
	if isinstance(obj, Enum):
		return obj.value
	if isinstance(obj, Path):
		return str(obj)
	if hasattr(obj, 'json'):
		return jsonify(obj.json())

	return obj


class JSON(json.JSONEncoder):
	def encode(self, o: Any) -> str:
		return super().encode(jsonify(o))


def _append_log(name: str, data: bytes) -> None:
	logfile = logger.directory / name
	created = not logfile.exists()

	try:
		with logfile.open('ab') as fp:
			fp.write(data)

		if created:
			logfile.chmod(stat.S_IRUSR | stat.S_IWUSR | stat.S_IRGRP)
	except OSError:
		# the log directory is optional, commands still run without it
		pass


def _log_cmd(cmd: list[str]) -> None:
	_append_log('cmd_history.txt', f'{time.time()} {cmd}\n'.encode())


class SysCommand:
	"""
	Runs an external command to completion, merging stderr into stdout.
	Raises :py:class:`SysCallError` carrying the complete output when the
	command can't be started or exits with a non-zero exit code.
	"""

	def __init__(self, cmd: str | list[str], peek_output: bool = False):
		if isinstance(cmd, str):
			cmd = shlex.split(cmd)
		else:
			cmd = list(cmd)

		if cmd and not cmd[0].startswith(('/', './')):
			cmd[0] = locate_binary(cmd[0])

		self.cmd = cmd
		self.peek_output = peek_output

		self.exit_code: int | None = None
		self._trace_log = b''

		self.execute()

	def _peek(self, line: bytes) -> None:
		_append_log('cmd_output.txt', line)

		sys.stdout.write(line.decode('UTF-8', errors='backslashreplace'))
		sys.stdout.flush()

	def execute(self) -> None:
		_log_cmd(self.cmd)

		started = time.time()

		try:
			proc = subprocess.Popen(
				self.cmd,
				stdout=subprocess.PIPE,
				stderr=subprocess.STDOUT,
				stdin=subprocess.DEVNULL,
				env={**os.environ, **_COMMAND_ENV},
			)
		except OSError as err:
			raise SysCallError(f'{self.cmd} could not be started: {err}', worker_log=str(err).encode()) from err

		with proc:
			if proc.stdout is None:
				raise SysCallError(f'{self.cmd} has no output pipe')

			for line in proc.stdout:
				if self.peek_output:
					self._peek(line)
				self._trace_log += line

			self.exit_code = proc.wait()

		debug(f'{shlex.join(self.cmd)} exited with {self.exit_code} after {time.time() - started:.1f}s')

		if self.exit_code != 0:
			raise SysCallError(
				f'{self.cmd} exited with abnormal exit code [{self.exit_code}]: {self.decode()[-500:]}',
				self.exit_code,
				worker_log=self._trace_log,
			)

	def decode(self, errors: str = 'backslashreplace') -> str:
		return self._trace_log.decode('utf-8', errors=errors).strip()

	def output(self, remove_cr: bool = True) -> bytes:
		if remove_cr:
			return self._trace_log.replace(b'\r\n', b'\n')

		return self._trace_log


def run(
	cmd: list[str],
	input_data: bytes | None = None,
) -> subprocess.CompletedProcess[bytes]:
	"""
	Runs a command feeding ``input_data`` on stdin. Only the command line is
	logged, never the input, which makes it the channel for secrets.
	"""
	_log_cmd(cmd)

	return subprocess.run(
		cmd,
		input=input_data,
		stdout=subprocess.PIPE,
		stderr=subprocess.STDOUT,
		check=True,
	)
