import os

import pytest
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from pad_prober.oracle import FunctionOracle

TOY_KEY = bytes.fromhex("3c1f0a5b7e2d9c4486f1e3a5c7092b6d")


def xor(*chunks: bytes) -> bytes:
    out = bytearray(len(chunks[0]))
    for chunk in chunks:
        for i, b in enumerate(chunk):
            out[i] ^= b
    return bytes(out)


def has_valid_padding(block: bytes) -> bool:
    pad = block[-1]
    return 1 <= pad <= len(block) and block[-pad:] == bytes([pad]) * pad


def pkcs7(plaintext: bytes, block_size: int = 16) -> bytes:
    pad = block_size - len(plaintext) % block_size
    return plaintext + bytes([pad]) * pad


class ToyCipher:
    """CBC over a toy block cipher: a block "decrypts" to prev ^ target ^ key."""

    def __init__(self, key: bytes = TOY_KEY):
        self.key = key
        self.block_size = len(key)

    def pad(self, plaintext: bytes) -> bytes:
        return pkcs7(plaintext, self.block_size)

    def encrypt_block(self, prev_block: bytes, plaintext_block: bytes) -> bytes:
        return xor(prev_block, plaintext_block, self.key)

    def encrypt(self, iv: bytes, padded_plaintext: bytes) -> bytes:
        """IV || blocks for an already padded plaintext."""
        blocks = [iv]
        for i in range(0, len(padded_plaintext), self.block_size):
            blocks.append(self.encrypt_block(blocks[-1], padded_plaintext[i:i + self.block_size]))
        return b"".join(blocks)

    def submit_guess(self, prev_block: bytes, target_block: bytes) -> bool:
        return has_valid_padding(xor(prev_block[-self.block_size:], target_block, self.key))


class AesVictim:
    """AES-128-CBC service that leaks padding validity."""

    def __init__(self):
        self.key = os.urandom(16)

    def encrypt(self, plaintext: bytes) -> bytes:
        iv = os.urandom(16)
        padder = padding.PKCS7(128).padder()
        padded = padder.update(plaintext) + padder.finalize()
        encryptor = Cipher(algorithms.AES(self.key), modes.CBC(iv)).encryptor()
        return iv + encryptor.update(padded) + encryptor.finalize()

    def submit_guess(self, prev_block: bytes, target_block: bytes) -> bool:
        iv = prev_block[-16:]
        decryptor = Cipher(algorithms.AES(self.key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(target_block) + decryptor.finalize()
        unpadder = padding.PKCS7(128).unpadder()
        try:
            unpadder.update(padded)
            unpadder.finalize()
        except ValueError:
            return False
        return True


@pytest.fixture
def toy():
    return ToyCipher()


@pytest.fixture
def toy8():
    return ToyCipher(TOY_KEY[:8])


@pytest.fixture
def toy_oracle(toy):
    return FunctionOracle(toy.submit_guess)


@pytest.fixture
def aes_victim():
    return AesVictim()
