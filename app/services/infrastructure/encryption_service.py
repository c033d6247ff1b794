"""
Encryption service for OAuth tokens.
Uses Fernet symmetric encryption with versioned keys so the active key can be
rotated without invalidating tokens stored under an older one.

Stored ciphertexts are prefixed with their key version: ``b"v2:" + fernet_token``.
"""

from cryptography.fernet import Fernet, InvalidToken

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

VERSION_PREFIX = b"v"
VERSION_SEPARATOR = b":"


class EncryptionError(Exception):
    """Custom exception for encryption/decryption errors."""

    pass


class TokenCipher:
    """
    Versioned Fernet cipher.

    ``keyring`` maps key version to a Fernet key. New ciphertexts always use
    ``current_version``; older versions stay readable until removed from the
    keyring.
    """

    def __init__(self, keyring: dict[int, str], current_version: int):
        if not keyring:
            raise EncryptionError("ENCRYPTION_KEYS not configured in environment")
        if current_version not in keyring:
            raise EncryptionError(f"Current key version {current_version} missing from keyring")

        try:
            self._fernets = {
                version: Fernet(key.encode("utf-8")) for version, key in keyring.items()
            }
        except Exception as e:
            logger.error("Failed to initialize Fernet cipher", error=str(e))
            raise EncryptionError(f"Invalid encryption key: {e}") from e

        self.current_version = current_version

    def encrypt(self, plaintext: str) -> bytes:
        """
        Encrypt a token string for database storage.

        Returns:
            bytes: version-tagged ciphertext, ready for BYTEA storage

        Raises:
            EncryptionError: If encryption fails
        """
        if not plaintext or not isinstance(plaintext, str):
            raise EncryptionError("Token must be a non-empty string")

        try:
            token = self._fernets[self.current_version].encrypt(plaintext.encode("utf-8"))
        except Exception as e:
            logger.error("Failed to encrypt token", error=str(e))
            raise EncryptionError(f"Encryption failed: {e}") from e

        return VERSION_PREFIX + str(self.current_version).encode() + VERSION_SEPARATOR + token

    def decrypt(self, ciphertext: bytes) -> str:
        """
        Decrypt a token from database storage.

        Raises:
            EncryptionError: If decryption fails or the key version is unknown
        """
        version, token = self.split_version(ciphertext)
        fernet = self._fernets.get(version)
        if fernet is None:
            raise EncryptionError(f"No key available for version {version}")

        try:
            return fernet.decrypt(token).decode("utf-8")
        except InvalidToken as e:
            logger.error("Token decryption failed - invalid token", key_version=version)
            raise EncryptionError("Invalid or corrupted token") from e

    def needs_rotation(self, ciphertext: bytes) -> bool:
        """True when the ciphertext was produced under a non-current key."""
        version, _ = self.split_version(ciphertext)
        return version != self.current_version

    @staticmethod
    def split_version(ciphertext: bytes) -> tuple[int, bytes]:
        if not ciphertext or not isinstance(ciphertext, (bytes, bytearray, memoryview)):
            raise EncryptionError("Encrypted token must be non-empty bytes")

        raw = bytes(ciphertext)
        if not raw.startswith(VERSION_PREFIX) or VERSION_SEPARATOR not in raw:
            raise EncryptionError("Encrypted token is missing its key version tag")

        header, _, token = raw.partition(VERSION_SEPARATOR)
        try:
            version = int(header[len(VERSION_PREFIX) :])
        except ValueError as e:
            raise EncryptionError("Malformed key version tag") from e
        return version, token


_cipher: TokenCipher | None = None


def get_token_cipher() -> TokenCipher:
    """Process-wide cipher built from settings on first use."""
    global _cipher
    if _cipher is None:
        _cipher = TokenCipher(
            settings.encryption_keyring(), settings.ENCRYPTION_CURRENT_KEY_VERSION
        )
        logger.info(
            "Token cipher initialized",
            key_versions=sorted(_cipher._fernets),
            current_version=_cipher.current_version,
        )
    return _cipher


def validate_encryption_config(cipher: TokenCipher | None = None) -> bool:
    """
    Validate that encryption is properly configured.

    Returns:
        bool: True if encryption is configured and working
    """
    try:
        cipher = cipher or get_token_cipher()
        test_data = "test_encryption_12345"
        is_valid = cipher.decrypt(cipher.encrypt(test_data)) == test_data

        if is_valid:
            logger.info("Encryption configuration validated successfully")
        else:
            logger.error("Encryption validation failed - data mismatch")

        return is_valid

    except Exception as e:
        logger.error("Encryption configuration validation failed", error=str(e))
        return False
