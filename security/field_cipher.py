"""
Symmetric encryption of individual sensitive fields (PAN, Aadhaar, names, DOB).

Current format: AES-256-CBC with a fresh random IV per value, key derived from
the configured passphrase with scrypt, encoded as ``ivHex:ciphertextHex``.

Legacy format: ciphertext hex only, no IV. Key and IV come from the passphrase
through OpenSSL's EVP_BytesToKey (MD5, no salt). Values in this format are
still decrypted so older records stay readable; nothing new is written in it.
"""

import hashlib
import hmac
import logging
import re
import secrets
from dataclasses import dataclass
from typing import Dict, Any, Iterable, Union

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from models.errors import ConfigurationError, InvalidInputError, DecryptionError

logger = logging.getLogger(__name__)

ENCRYPTED_PLACEHOLDER = "[ENCRYPTED]"

KEY_LENGTH = 32
IV_LENGTH = 16
BLOCK_BITS = 128

# scrypt cost parameters (N=2^14, r=8, p=1)
SCRYPT_N = 16384
SCRYPT_R = 8
SCRYPT_P = 1

_IV_FORMAT_PATTERN = re.compile(r"^[0-9a-fA-F]+:[0-9a-fA-F]+$")
_HEX_PATTERN = re.compile(r"^[0-9a-fA-F]+$")
_LEGACY_MIN_LENGTH = 20


@dataclass(frozen=True)
class IvCiphertext:
    """Current encoding: random IV plus ciphertext."""
    iv: bytes
    ciphertext: bytes

    def encode(self) -> str:
        return f"{self.iv.hex()}:{self.ciphertext.hex()}"


@dataclass(frozen=True)
class LegacyCiphertext:
    """Legacy encoding: ciphertext only, IV derived from the passphrase."""
    ciphertext: bytes

    def encode(self) -> str:
        return self.ciphertext.hex()


EncodedValue = Union[IvCiphertext, LegacyCiphertext]


def parse_encoded(encoded: str) -> EncodedValue:
    """
    Decode a stored string into one of the two ciphertext formats.

    Raises:
        DecryptionError: If the string matches neither format
    """
    if not isinstance(encoded, str) or not encoded:
        raise DecryptionError("Encrypted value must be a non-empty string")

    if ":" in encoded:
        parts = encoded.split(":")
        if len(parts) != 2 or not all(_HEX_PATTERN.match(p) for p in parts):
            raise DecryptionError("Malformed iv:ciphertext value")
        iv_hex, data_hex = parts
        if len(iv_hex) != IV_LENGTH * 2:
            raise DecryptionError(f"IV must be {IV_LENGTH} bytes")
        if len(data_hex) % (IV_LENGTH * 2) != 0:
            raise DecryptionError("Ciphertext is not a whole number of blocks")
        return IvCiphertext(iv=bytes.fromhex(iv_hex), ciphertext=bytes.fromhex(data_hex))

    if _HEX_PATTERN.match(encoded) and len(encoded) % (IV_LENGTH * 2) == 0:
        return LegacyCiphertext(ciphertext=bytes.fromhex(encoded))

    raise DecryptionError("Value is not in a recognised encrypted format")


def evp_bytes_to_key(passphrase: bytes, key_length: int = KEY_LENGTH,
                     iv_length: int = IV_LENGTH) -> tuple:
    """OpenSSL EVP_BytesToKey with MD5, one iteration and no salt."""
    derived = b""
    block = b""
    while len(derived) < key_length + iv_length:
        block = hashlib.md5(block + passphrase).digest()
        derived += block
    return derived[:key_length], derived[key_length:key_length + iv_length]


def looks_encrypted(text: Any) -> bool:
    """
    Heuristic check used to avoid double-encrypting a value.

    Matches the ``hex:hex`` format, or a long pure-hex string (legacy format).
    """
    if not text or not isinstance(text, str):
        return False
    if _IV_FORMAT_PATTERN.match(text):
        return True
    return len(text) > _LEGACY_MIN_LENGTH and bool(_HEX_PATTERN.match(text))


class FieldCipher:
    """Encrypt, decrypt and hash individual string fields."""

    def __init__(self, passphrase: str, salt: str = "salt"):
        if not passphrase:
            raise ConfigurationError("Encryption passphrase not configured")

        secret = passphrase.encode("utf-8")
        kdf = Scrypt(salt=salt.encode("utf-8"), length=KEY_LENGTH, n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P)
        self._key = kdf.derive(secret)
        self._legacy_key, self._legacy_iv = evp_bytes_to_key(secret)

    @classmethod
    def from_config(cls, cipher_config) -> "FieldCipher":
        """Build a cipher from a CipherConfig."""
        return cls(cipher_config.passphrase.get_secret_value(), salt=cipher_config.salt)

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a string with a fresh random IV.

        Args:
            plaintext: Non-empty string

        Returns:
            ``ivHex:ciphertextHex``

        Raises:
            InvalidInputError: If plaintext is empty or not a string
        """
        if not plaintext or not isinstance(plaintext, str):
            raise InvalidInputError("Invalid input for encryption")

        iv = secrets.token_bytes(IV_LENGTH)
        padder = padding.PKCS7(BLOCK_BITS).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()

        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()

        return IvCiphertext(iv=iv, ciphertext=ciphertext).encode()

    def decrypt(self, encoded: str) -> str:
        """
        Decrypt a value in either the current or the legacy format.

        Raises:
            DecryptionError: On malformed input or key mismatch
        """
        value = parse_encoded(encoded)

        if isinstance(value, IvCiphertext):
            key, iv = self._key, value.iv
        else:
            key, iv = self._legacy_key, self._legacy_iv

        try:
            decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(value.ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(BLOCK_BITS).unpadder()
            plaintext = unpadder.update(padded) + unpadder.finalize()
            return plaintext.decode("utf-8")
        except (ValueError, UnicodeDecodeError) as e:
            raise DecryptionError("Failed to decrypt data") from e

    def decrypt_for_display(self, encoded: str) -> str:
        """Decrypt for display paths; failures yield a placeholder instead of raising."""
        if not encoded:
            return ""
        if not looks_encrypted(encoded):
            return encoded
        try:
            return self.decrypt(encoded)
        except DecryptionError as e:
            logger.warning(f"Could not decrypt value for display: {e}")
            return ENCRYPTED_PLACEHOLDER

    def encrypt_fields(self, values: Dict[str, Any], fields: Iterable[str]) -> Dict[str, Any]:
        """Return a copy with the named non-empty string fields encrypted."""
        encrypted = dict(values)
        for field_name in fields:
            value = encrypted.get(field_name)
            if isinstance(value, str) and value.strip() and not looks_encrypted(value):
                encrypted[field_name] = self.encrypt(value)
        return encrypted

    def decrypt_fields(self, values: Dict[str, Any], fields: Iterable[str]) -> Dict[str, Any]:
        """Return a copy with the named encrypted fields decrypted for display."""
        decrypted = dict(values)
        for field_name in fields:
            value = decrypted.get(field_name)
            if isinstance(value, str) and looks_encrypted(value):
                decrypted[field_name] = self.decrypt_for_display(value)
        return decrypted

    @staticmethod
    def looks_encrypted(text: Any) -> bool:
        return looks_encrypted(text)

    @staticmethod
    def hash(text: str) -> str:
        """SHA-256 hex digest for equality checks without storing plaintext."""
        if not text or not isinstance(text, str):
            raise InvalidInputError("Invalid input for hashing")
        return hashlib.sha256(text.encode("utf-8")).hexdigest()

    @staticmethod
    def compare_hash(text: str, digest: str) -> bool:
        if not text or not digest or not isinstance(text, str) or not isinstance(digest, str):
            return False
        return hmac.compare_digest(FieldCipher.hash(text), digest)

    @staticmethod
    def generate_random_string(length: int = 32) -> str:
        return secrets.token_hex(length)
