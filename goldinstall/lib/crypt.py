import ctypes
import os
from base64 import urlsafe_b64decode, urlsafe_b64encode
from functools import cache
from pathlib import Path

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives.kdf.argon2 import Argon2id

from .output import debug

LOGIN_DEFS = Path('/etc/login.defs')

# pam_unix clamps YESCRYPT_COST_FACTOR to this range and falls back to 5
YESCRYPT_COST_RANGE = (3, 11)
YESCRYPT_DEFAULT_COST = 5

ENCRYPTED_PREFIX = '$argon2id$'


@cache
def _libcrypt() -> ctypes.CDLL:
	lib = ctypes.CDLL('libcrypt.so')

	lib.crypt.argtypes = [ctypes.c_char_p, ctypes.c_char_p]
	lib.crypt.restype = ctypes.c_char_p
	lib.crypt_gensalt.argtypes = [ctypes.c_char_p, ctypes.c_ulong, ctypes.c_char_p, ctypes.c_int]
	lib.crypt_gensalt.restype = ctypes.c_char_p

	return lib


def yescrypt_cost(login_defs: Path | None = None) -> int:
	"""
	The cost factor chpasswd would use, read from YESCRYPT_COST_FACTOR in login.defs
	"""
	login_defs = login_defs or LOGIN_DEFS

	if login_defs.exists():
		for line in login_defs.read_text().splitlines():
			fields = line.split()
			if fields[:1] == ['YESCRYPT_COST_FACTOR'] and len(fields) > 1 and fields[1].isdigit():
				low, high = YESCRYPT_COST_RANGE
				return min(max(int(fields[1]), low), high)

	return YESCRYPT_DEFAULT_COST


def crypt_yescrypt(plaintext: str) -> str:
	cost = yescrypt_cost()
	debug(f'Creating yescrypt hash with cost factor {cost}')

	lib = _libcrypt()

	setting = lib.crypt_gensalt(b'$y$', cost, None, 0)
	if setting is None:
		raise ValueError(f'crypt_gensalt() could not create a yescrypt setting for cost {cost}')

	hashed = lib.crypt(plaintext.encode('utf-8'), setting)
	if hashed is None:
		raise ValueError('crypt() could not hash the password')

	return hashed.decode('utf-8')


def _fernet(password: str, salt: bytes) -> Fernet:
	kdf = Argon2id(
		salt=salt,
		length=32,
		iterations=1,
		lanes=4,
		memory_cost=64 * 1024,
	)
	return Fernet(urlsafe_b64encode(kdf.derive(password.encode('utf-8'))))


def encrypt(password: str, data: str) -> str:
	"""
	Encrypts a credentials file as ``$argon2id$<salt>$<fernet token>``,
	salt and token urlsafe base64 encoded
	"""
	salt = os.urandom(16)
	token = _fernet(password, salt).encrypt(data.encode('utf-8'))

	return ENCRYPTED_PREFIX + urlsafe_b64encode(salt).decode() + '$' + urlsafe_b64encode(token).decode()


def decrypt(data: str, password: str) -> str:
	parts = data.strip().split('$')

	if len(parts) != 4 or parts[0]:
		raise ValueError('Malformed encrypted data')

	_, algorithm, salt, token = parts

	if algorithm != 'argon2id':
		raise ValueError(f'Unsupported algorithm {algorithm!r}')

	try:
		plain = _fernet(password, urlsafe_b64decode(salt)).decrypt(urlsafe_b64decode(token))
	except InvalidToken as err:
		raise ValueError('Invalid password') from err

	return plain.decode('utf-8')
