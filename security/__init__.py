"""Field-level encryption and masking for sensitive identity data."""

from .field_cipher import (
    FieldCipher,
    IvCiphertext,
    LegacyCiphertext,
    parse_encoded,
    looks_encrypted,
    evp_bytes_to_key,
    ENCRYPTED_PLACEHOLDER,
)
from .masking import mask_identifier, mask_for_log

__all__ = [
    "FieldCipher",
    "IvCiphertext",
    "LegacyCiphertext",
    "parse_encoded",
    "looks_encrypted",
    "evp_bytes_to_key",
    "ENCRYPTED_PLACEHOLDER",
    "mask_identifier",
    "mask_for_log",
]
