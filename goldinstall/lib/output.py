import logging
import sys
from dataclasses import asdict, is_dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

_ANSI_COLORS = {
	'red': '31',
	'yellow': '33',
	'white': '37',
	'gray': '38;5;246',
}


class FormattedOutput:
	@staticmethod
	def _row(o: Any) -> dict[str, Any]:
		if hasattr(o, 'table_data'):
			return o.table_data()
		if is_dataclass(o):
			return asdict(o)  # type: ignore[arg-type]
		return vars(o)

	@classmethod
	def as_table(cls, obj: list[Any], capitalize: bool = False) -> str:
		"""
		Renders objects as a plain text table with one row per object.
		The columns are the keys of the first row, numbers are right aligned.
		"""
		rows = [cls._row(o) for o in obj]
		if not rows:
			return ''

		columns = list(rows[0])
		widths = {col: max(len(col), *(len(str(row.get(col, ''))) for row in rows)) for col in columns}

		titles = []
		for col in columns:
			title = col.replace('_', ' ')
			titles.append((title.capitalize() if capitalize else title).ljust(widths[col]))

		header = ' | '.join(titles)
		lines = [header, '-' * len(header)]

		for row in rows:
			cells = []
			for col in columns:
				value = row.get(col, '')
				numeric = isinstance(value, int | float) or (isinstance(value, str) and value.isnumeric())
				cells.append(str(value).rjust(widths[col]) if numeric else str(value).ljust(widths[col]))
			lines.append(' | '.join(cells))

		return '\n'.join(lines) + '\n'


class Journald:
	@staticmethod
	def log(message: str, level: int = logging.DEBUG) -> None:
		"""
		Forwards a message to the systemd journal when python-systemd is installed
		"""
		try:
			from systemd.journal import JournalHandler  # type: ignore[import-not-found]
		except ModuleNotFoundError:
			return None

		journal = logging.getLogger('goldinstall')
		if not journal.handlers:
			handler = JournalHandler(SYSLOG_IDENTIFIER='goldinstall')
			handler.setFormatter(logging.Formatter('[%(levelname)s]: %(message)s'))
			journal.addHandler(handler)
			journal.setLevel(logging.DEBUG)

		journal.log(level, message)


class Logger:
	def __init__(self, path: Path = Path('/var/log/goldinstall')) -> None:
		self._path = path
		self.verbose = False

	@property
	def directory(self) -> Path:
		return self._path

	@directory.setter
	def directory(self, path: Path) -> None:
		self._path = path

	@property
	def path(self) -> Path:
		return self._path / 'install.log'

	def _ensure_writable(self) -> None:
		try:
			self._path.mkdir(parents=True, exist_ok=True)
			with self.path.open('a'):
				pass
		except OSError:
			unwritable = self.path
			self._path = Path.cwd()
			warn(f'Cannot write the log file {unwritable}, using {self.path} instead')

	def log(self, level: int, content: str) -> None:
		self._ensure_writable()

		stamp = datetime.now(tz=UTC).strftime('%Y-%m-%d %H:%M:%S')

		with self.path.open('a') as fp:
			fp.write(f'[{stamp}] - {logging.getLevelName(level)} - {content}\n')


logger = Logger()


def _colorize(text: str, fg: str) -> str:
	if not sys.stdout.isatty():
		return text
	return f'\033[{_ANSI_COLORS[fg]}m{text}\033[0m'


def log(*msgs: str, level: int = logging.INFO, fg: str = 'white') -> None:
	text = ' '.join(str(m) for m in msgs)

	logger.log(level, text)
	Journald.log(text, level=level)

	if level == logging.DEBUG and not logger.verbose:
		return

	sys.stdout.write(_colorize(text, fg) + '\n')
	sys.stdout.flush()


def debug(*msgs: str) -> None:
	log(*msgs, level=logging.DEBUG)


def info(*msgs: str) -> None:
	log(*msgs, level=logging.INFO)


def warn(*msgs: str) -> None:
	log(*msgs, level=logging.WARNING, fg='yellow')


def error(*msgs: str) -> None:
	log(*msgs, level=logging.ERROR, fg='red')
