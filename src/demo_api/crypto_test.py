import pytest
from structlog.testing import capture_logs

from demo_api import crypto

KEY_HEX = "000102030405060708090a0b0c0d0e0f"


@pytest.fixture
def fresh_key(monkeypatch):
    monkeypatch.delenv(crypto.KEY_ENV_VAR, raising=False)
    crypto.get_key.cache_clear()
    yield
    crypto.get_key.cache_clear()


class TestGetKey:
    """Test suite for the demo key"""

    def test_key_from_environment(self, fresh_key, monkeypatch):
        monkeypatch.setenv(crypto.KEY_ENV_VAR, KEY_HEX)

        with capture_logs() as logs:
            key = crypto.get_key()

        assert key == bytes.fromhex(KEY_HEX)
        assert logs == [{"event": "demo key loaded", "source": crypto.KEY_ENV_VAR, "log_level": "info"}]

    def test_random_key_is_cached(self, fresh_key):
        with capture_logs() as logs:
            key = crypto.get_key()
            assert crypto.get_key() is key

        assert len(key) == crypto.BLOCK_SIZE
        assert [entry["source"] for entry in logs] == ["random"]

    def test_bad_key_length(self, fresh_key, monkeypatch):
        monkeypatch.setenv(crypto.KEY_ENV_VAR, "0011")
        with pytest.raises(ValueError, match="must be 16 bytes"):
            crypto.get_key()


class TestCipher:
    """Test suite for AES-CBC encrypt/decrypt"""

    def test_round_trip_with_fixed_iv(self):
        key = bytes.fromhex(KEY_HEX)
        ciphertext = crypto.encrypt(key, b"Hello world", iv=bytes(16))

        assert ciphertext[:16] == bytes(16)
        assert crypto.decrypt(key, ciphertext) == b"Hello world"

    def test_bad_padding(self):
        key = bytes.fromhex(KEY_HEX)
        ciphertext = bytearray(crypto.encrypt(key, b"Hello world"))
        ciphertext[15] ^= 0x05

        with pytest.raises(crypto.InvalidPadding):
            crypto.decrypt(key, bytes(ciphertext))

    @pytest.mark.parametrize("length", [0, 16, 20])
    def test_misaligned(self, length):
        with pytest.raises(ValueError, match="whole block"):
            crypto.decrypt(bytes(16), bytes(length))
