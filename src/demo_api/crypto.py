import functools
import os

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
import structlog


log = structlog.get_logger()

ALGORITHM = "AES-128-CBC"
BLOCK_SIZE = 16
KEY_ENV_VAR = "PAD_PROBER_DEMO_KEY"


class InvalidPadding(ValueError):
    pass


@functools.lru_cache(maxsize=1)
def get_key() -> bytes:
    """Returns the process-wide demo key.
    Taken from PAD_PROBER_DEMO_KEY (hex) when set, otherwise random."""
    key_hex = os.environ.get(KEY_ENV_VAR)
    if key_hex:
        key = bytes.fromhex(key_hex)
        if len(key) != BLOCK_SIZE:
            raise ValueError(f"{KEY_ENV_VAR} must be {BLOCK_SIZE} bytes of hex")
        log.info("demo key loaded", source=KEY_ENV_VAR)
        return key
    log.info("demo key generated", source="random")
    return os.urandom(BLOCK_SIZE)


def encrypt(key: bytes, plaintext: bytes, iv: bytes | None = None) -> bytes:
    """ Encrypts the plaintext with AES-128-CBC and PKCS#7 padding.
    The IV is prepended to the ciphertext.
    """
    if iv is None:
        iv = os.urandom(BLOCK_SIZE)

    padder = padding.PKCS7(BLOCK_SIZE * 8).padder()
    padded = padder.update(plaintext) + padder.finalize()

    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    return iv + encryptor.update(padded) + encryptor.finalize()


def decrypt(key: bytes, ciphertext: bytes) -> bytes:
    """ Decrypts IV || ciphertext and strips the padding.
    Raises InvalidPadding when the padding does not check out.
    """
    if len(ciphertext) % BLOCK_SIZE != 0 or len(ciphertext) < 2 * BLOCK_SIZE:
        raise ValueError("Ciphertext must be an IV plus at least one whole block")

    iv, body = ciphertext[:BLOCK_SIZE], ciphertext[BLOCK_SIZE:]
    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(body) + decryptor.finalize()

    unpadder = padding.PKCS7(BLOCK_SIZE * 8).unpadder()
    try:
        return unpadder.update(padded) + unpadder.finalize()
    except ValueError as e:
        raise InvalidPadding(str(e)) from e
