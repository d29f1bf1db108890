import shlex
from pathlib import Path
from subprocess import CalledProcessError
from typing import Any

import pytest
from pytest import MonkeyPatch

from goldinstall.lib import installer as installer_module
from goldinstall.lib import pacman as pacman_module
from goldinstall.lib.exceptions import (
	BootloaderInstallFailed,
	BootstrapFailed,
	ConfigWriteFailed,
	CredentialSetFailed,
	MissingParameter,
	ServiceEnableFailed,
	SysCallError,
	TimeSyncFailed,
)
from goldinstall.lib.installer import Installer
from goldinstall.lib.models.mirrors import MirrorConfiguration
from goldinstall.lib.models.users import Password

FSTAB_OUTPUT = b'UUID=0f3c9a52 / ext4 rw,relatime 0 1\n'


class Recorder:
	"""
	Stands in for SysCommand, records every command line and fails
	for commands containing one of ``fail_on``
	"""

	def __init__(self) -> None:
		self.commands: list[str] = []
		self.fail_on: list[str] = []

	def __call__(self, cmd: str | list[str], peek_output: bool = False) -> Any:
		line = cmd if isinstance(cmd, str) else shlex.join(cmd)
		self.commands.append(line)

		for pattern in self.fail_on:
			if pattern in line:
				raise SysCallError(f'{line} failed', 1, worker_log=b'error: something went wrong')

		return self

	def output(self, remove_cr: bool = True) -> bytes:
		return FSTAB_OUTPUT


@pytest.fixture
def recorder(monkeypatch: MonkeyPatch) -> Recorder:
	recorder = Recorder()
	monkeypatch.setattr(installer_module, 'SysCommand', recorder)
	monkeypatch.setattr(pacman_module, 'SysCommand', recorder)
	return recorder


@pytest.fixture
def target(tmp_path: Path) -> Path:
	target = tmp_path / 'mnt'
	(target / 'etc' / 'default').mkdir(parents=True)
	return target


@pytest.fixture
def installation(tmp_path: Path, target: Path) -> Installer:
	installation = Installer(target, live_root=tmp_path / 'live')
	installation.pacman.lock_file = tmp_path / 'db.lck'
	return installation


def test_time_sync(recorder: Recorder, installation: Installer) -> None:
	installation.activate_time_synchronization()
	assert recorder.commands == ['timedatectl set-ntp true']


def test_time_sync_failure(recorder: Recorder, installation: Installer) -> None:
	recorder.fail_on = ['timedatectl']

	with pytest.raises(TimeSyncFailed) as exc_info:
		installation.activate_time_synchronization()

	assert exc_info.value.cause == 'error: something went wrong'


def test_set_mirrors_from_urls(tmp_path: Path, installation: Installer) -> None:
	mirrorlist = installation.set_mirrors(MirrorConfiguration.from_urls(['https://mirror.example.org/$repo/os/$arch']))

	assert mirrorlist == tmp_path / 'live' / 'etc/pacman.d/mirrorlist'
	assert mirrorlist.read_text() == '## Custom Servers\nServer = https://mirror.example.org/$repo/os/$arch\n'


def test_set_mirrors_verbatim(installation: Installer) -> None:
	content = '# generated\nServer = https://mirror.example.org/$repo/os/$arch'
	mirrorlist = installation.set_mirrors(MirrorConfiguration(content=content))

	assert mirrorlist.read_text() == content + '\n'


def test_set_mirrors_empty(installation: Installer) -> None:
	with pytest.raises(MissingParameter) as exc_info:
		installation.set_mirrors(MirrorConfiguration(content='  '))

	assert exc_info.value.name == 'mirrorlist'


def test_minimal_installation(recorder: Recorder, installation: Installer, target: Path) -> None:
	installation.minimal_installation(['vim', 'grub'])

	assert recorder.commands == [f'pacstrap -K {target} systemd efibootmgr e2fsprogs grub dhcpcd xorg-server vim --noconfirm']


def test_minimal_installation_failure(recorder: Recorder, installation: Installer) -> None:
	recorder.fail_on = ['pacstrap']

	with pytest.raises(BootstrapFailed) as exc_info:
		installation.minimal_installation()

	assert exc_info.value.cause == 'error: something went wrong'
	assert len(recorder.commands) == 1


def test_pacman_lock_never_released(recorder: Recorder, installation: Installer) -> None:
	installation.pacman.lock_file.touch()
	installation.pacman.lock_timeout = 0

	with pytest.raises(BootstrapFailed):
		installation.minimal_installation()

	assert recorder.commands == []


def test_genfstab(recorder: Recorder, installation: Installer, target: Path) -> None:
	fstab = target / 'etc' / 'fstab'
	fstab.write_text('# Static information about the filesystems.\n')

	installation.genfstab()

	assert recorder.commands == [f'genfstab -U {target}']
	assert fstab.read_bytes() == b'# Static information about the filesystems.\n' + FSTAB_OUTPUT


def test_genfstab_failure(recorder: Recorder, installation: Installer, target: Path) -> None:
	recorder.fail_on = ['genfstab']

	with pytest.raises(ConfigWriteFailed) as exc_info:
		installation.genfstab()

	assert exc_info.value.path == target / 'etc' / 'fstab'


def test_configure_grub_cmdline(installation: Installer, target: Path) -> None:
	grub_default = target / 'etc/default/grub'
	grub_default.write_text('GRUB_DEFAULT=0\nGRUB_CMDLINE_LINUX=""\n')

	line = installation.configure_grub_cmdline('0f3c9a52-5d0b-4b7e-9a4e-0a6f1c3e2d11')

	assert line == 'GRUB_CMDLINE_LINUX="root=UUID=0f3c9a52-5d0b-4b7e-9a4e-0a6f1c3e2d11"'
	assert grub_default.read_text() == f'GRUB_DEFAULT=0\nGRUB_CMDLINE_LINUX=""\n{line}\n'


def test_configure_grub_cmdline_without_target(tmp_path: Path) -> None:
	installation = Installer(tmp_path / 'empty')

	with pytest.raises(ConfigWriteFailed):
		installation.configure_grub_cmdline('1234')


def test_install_grub(recorder: Recorder, installation: Installer, target: Path) -> None:
	installation.install_grub('x86_64-efi')

	assert recorder.commands == [
		f'arch-chroot {target} grub-install --target=x86_64-efi --efi-directory=/boot --bootloader-id=GRUB --removable',
		f'arch-chroot {target} grub-mkconfig -o /boot/grub/grub.cfg',
	]


def test_install_grub_failure(recorder: Recorder, installation: Installer) -> None:
	recorder.fail_on = ['grub-install']

	with pytest.raises(BootloaderInstallFailed):
		installation.install_grub('x86_64-efi')

	assert len(recorder.commands) == 1


def test_enable_service(recorder: Recorder, installation: Installer, target: Path) -> None:
	installation.enable_service(['dhcpcd.service', 'sshd.service'])

	assert recorder.commands == [
		f'arch-chroot {target} systemctl enable dhcpcd.service',
		f'arch-chroot {target} systemctl enable sshd.service',
	]


def test_enable_service_failure(recorder: Recorder, installation: Installer) -> None:
	recorder.fail_on = ['dhcpcd']

	with pytest.raises(ServiceEnableFailed) as exc_info:
		installation.enable_service('dhcpcd.service')

	assert exc_info.value.service == 'dhcpcd.service'


def test_set_root_password(monkeypatch: MonkeyPatch, installation: Installer, target: Path) -> None:
	runs: list[tuple[list[str], bytes | None]] = []

	def _run(cmd: list[str], input_data: bytes | None = None) -> None:
		runs.append((cmd, input_data))

	monkeypatch.setattr(installer_module, 'run', _run)

	installation.set_root_password(Password(enc_password='$y$j9T$salt$hash'))

	assert runs == [(['arch-chroot', str(target), 'chpasswd', '--encrypted'], b'root:$y$j9T$salt$hash')]


def test_set_root_password_hashes_plaintext(monkeypatch: MonkeyPatch, installation: Installer) -> None:
	runs: list[bytes | None] = []

	monkeypatch.setattr('goldinstall.lib.models.users.crypt_yescrypt', lambda plaintext: f'$y$hashed-{len(plaintext)}')
	monkeypatch.setattr(installer_module, 'run', lambda cmd, input_data=None: runs.append(input_data))

	installation.set_root_password(Password(plaintext='goldpassword'))

	assert runs == [b'root:$y$hashed-12']


def test_set_root_password_failure(monkeypatch: MonkeyPatch, installation: Installer) -> None:
	def _run(cmd: list[str], input_data: bytes | None = None) -> None:
		raise CalledProcessError(1, cmd, output=b'chpasswd: line 1: invalid')

	monkeypatch.setattr(installer_module, 'run', _run)

	with pytest.raises(CredentialSetFailed) as exc_info:
		installation.set_root_password(Password(enc_password='$y$j9T$salt$hash'))

	assert '$y$j9T$salt$hash' not in str(exc_info.value)
	assert exc_info.value.cause is None


def test_set_root_password_missing(installation: Installer) -> None:
	with pytest.raises(MissingParameter):
		installation.set_root_password(None)

	with pytest.raises(MissingParameter):
		installation.set_root_password(Password(plaintext='   '))


def test_add_autostart(installation: Installer, target: Path) -> None:
	xinitrc = installation.add_autostart()

	assert xinitrc == target / 'root/.xinitrc'
	assert xinitrc.read_text() == 'exec goldboot\n'


def test_sync(recorder: Recorder, installation: Installer) -> None:
	installation.sync()
	assert recorder.commands == ['sync']
