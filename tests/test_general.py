import json
from pathlib import Path

import pytest

from goldinstall.lib.exceptions import RequirementError, SysCallError
from goldinstall.lib.general import JSON, SysCommand, locate_binary, run
from goldinstall.lib.models.device import FilesystemType
from goldinstall.lib.output import FormattedOutput, info, logger


def test_syscommand_output() -> None:
	worker = SysCommand(['echo', 'hello world'])

	assert worker.exit_code == 0
	assert worker.decode() == 'hello world'
	assert worker.output() == b'hello world\n'


def test_syscommand_from_string() -> None:
	assert SysCommand('true').exit_code == 0


def test_syscommand_failure() -> None:
	with pytest.raises(SysCallError) as exc_info:
		SysCommand('false')

	assert exc_info.value.exit_code == 1


def test_syscommand_failure_keeps_output() -> None:
	with pytest.raises(SysCallError) as exc_info:
		SysCommand(['sh', '-c', 'echo broken >&2; exit 3'])

	assert exc_info.value.exit_code == 3
	assert exc_info.value.worker_log == b'broken\n'


def test_command_history(log_directory: Path) -> None:
	SysCommand(['echo', 'history'])

	history = (log_directory / 'cmd_history.txt').read_text()
	assert 'echo' in history


def test_run_does_not_log_input(log_directory: Path) -> None:
	result = run(['cat'], input_data=b'root:secret-hash')

	assert result.stdout == b'root:secret-hash'
	assert 'secret-hash' not in (log_directory / 'cmd_history.txt').read_text()


def test_locate_missing_binary() -> None:
	with pytest.raises(RequirementError) as exc_info:
		locate_binary('goldinstall-missing-tool')

	assert exc_info.value.tool == 'goldinstall-missing-tool'

	with pytest.raises(RequirementError):
		SysCommand('goldinstall-missing-tool --version')


def test_json_encoder() -> None:
	output = json.loads(json.dumps({'device': Path('/dev/vda'), 'filesystems': (FilesystemType.Fat32, FilesystemType.Ext4)}, cls=JSON))

	assert output == {'device': '/dev/vda', 'filesystems': ['fat32', 'ext4']}


def test_as_table() -> None:
	class Row:
		def __init__(self, name: str, size: int) -> None:
			self.name = name
			self.size = size

	table = FormattedOutput.as_table([Row('boot', 255), Row('root', 9984)])
	lines = table.splitlines()

	assert lines[0] == 'name | size'
	assert lines[2] == 'boot |  255'
	assert lines[3] == 'root | 9984'


def test_syscommand_not_executable(tmp_path: Path) -> None:
	script = tmp_path / 'not-executable.sh'
	script.write_text('#!/bin/sh\necho unreachable\n')
	script.chmod(0o644)

	with pytest.raises(SysCallError) as exc_info:
		SysCommand([str(script)])

	assert exc_info.value.exit_code is None
	assert 'could not be started' in exc_info.value.message


def test_peek_output_is_teed(log_directory: Path, capsys: pytest.CaptureFixture[str]) -> None:
	SysCommand(['echo', 'progress'], peek_output=True)

	assert capsys.readouterr().out == 'progress\n'
	assert (log_directory / 'cmd_output.txt').read_text() == 'progress\n'


def test_unwritable_log_directory_falls_back_to_cwd(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
	blocker = tmp_path / 'blocker'
	blocker.write_text('')
	monkeypatch.chdir(tmp_path)

	logger.directory = blocker / 'log'
	info('still logged')

	assert logger.directory == tmp_path
	assert 'still logged' in (tmp_path / 'install.log').read_text()
