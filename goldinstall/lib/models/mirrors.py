from dataclasses import dataclass, field
from typing import Any


@dataclass
class CustomServer:
	url: str

	def table_data(self) -> dict[str, str]:
		return {'Url': self.url}

	def json(self) -> dict[str, str]:
		return {'url': self.url}


@dataclass
class MirrorConfiguration:
	"""
	The mirrorlist written verbatim to /etc/pacman.d/mirrorlist of the live
	environment. Either given as complete file content or as a list of
	servers which is rendered into ``Server = <url>`` lines.
	"""

	content: str = ''
	custom_servers: list[CustomServer] = field(default_factory=list)

	def json(self) -> dict[str, Any]:
		return {
			'content': self.content,
			'custom_servers': [s.json() for s in self.custom_servers],
		}

	def is_empty(self) -> bool:
		return not self.content.strip() and not self.custom_servers

	def custom_servers_config(self) -> str:
		config = ''

		if self.custom_servers:
			config += '## Custom Servers\n'
			for server in self.custom_servers:
				config += f'Server = {server.url}\n'

		return config

	def mirrorlist_content(self) -> str:
		content = self.content
		if content and not content.endswith('\n'):
			content += '\n'

		return content + self.custom_servers_config()

	@classmethod
	def from_urls(cls, urls: list[str]) -> 'MirrorConfiguration':
		return cls(custom_servers=[CustomServer(url) for url in urls])

	@classmethod
	def parse_arg(cls, arg: str | list[str] | dict[str, Any]) -> 'MirrorConfiguration':
		"""
		Raises ValueError for anything that isn't mirrorlist content,
		a list of server urls or a previously serialized configuration
		"""
		if isinstance(arg, str):
			return cls(content=arg)

		if isinstance(arg, list):
			return cls(custom_servers=[cls._parse_server(s) for s in arg])

		if not isinstance(arg, dict):
			raise ValueError(f'expected a string, a list of urls or an object, got {type(arg).__name__}')

		content = arg.get('content', '')
		servers = arg.get('custom_servers', [])

		if not isinstance(content, str):
			raise ValueError('content must be a string')
		if not isinstance(servers, list):
			raise ValueError('custom_servers must be a list')

		return cls(content=content, custom_servers=[cls._parse_server(s) for s in servers])

	@staticmethod
	def _parse_server(server: Any) -> CustomServer:
		if isinstance(server, dict):
			server = server.get('url')

		if not isinstance(server, str) or not server.strip():
			raise ValueError(f'invalid server url {server!r}')

		return CustomServer(server)
