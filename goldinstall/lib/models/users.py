from ..crypt import crypt_yescrypt

MAX_PASSWORD_LENGTH = 64


class Password:
	def __init__(
		self,
		plaintext: str = '',
		enc_password: str | None = None,
	):
		if not plaintext and not enc_password:
			raise ValueError('Either plaintext or enc_password must be provided')

		self._plaintext = plaintext
		self._enc_password = enc_password

	@property
	def plaintext(self) -> str:
		return self._plaintext

	@property
	def enc_password(self) -> str:
		"""
		The yescrypt hash handed to chpasswd --encrypted, created on first use
		"""
		if self._enc_password is None:
			self._enc_password = crypt_yescrypt(self._plaintext)
		return self._enc_password

	def __eq__(self, other: object) -> bool:
		if not isinstance(other, Password):
			return NotImplemented

		if self._plaintext and other._plaintext:
			return self._plaintext == other._plaintext

		return self._enc_password == other._enc_password

	def is_empty(self) -> bool:
		return not self._plaintext.strip() and not self._enc_password

	def __str__(self) -> str:
		return self.hidden()

	def __repr__(self) -> str:
		return f'Password({self.hidden()})'

	def hidden(self) -> str:
		if self._plaintext:
			return '*' * len(self._plaintext)
		else:
			return '*' * 8
