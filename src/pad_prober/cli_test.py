import pytest
from click.testing import CliRunner

from pad_prober.cli import cli

IV = bytes.fromhex("58b1ffb4210a580f748b4ac714c001bd")

PLUGIN = '''
KEY = bytes.fromhex("{key}")


def submit_guess(prev_block, target_block):
    block = bytes(p ^ t ^ k for p, t, k in zip(prev_block[-16:], target_block, KEY))
    pad = block[-1]
    return 1 <= pad <= 16 and block[-pad:] == bytes([pad]) * pad
'''

REJECTING_PLUGIN = '''
def submit_guess(prev_block, target_block):
    return False
'''


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def ciphertext_file(tmp_path, toy):
    ciphertext = toy.encrypt(IV, toy.pad(b"Squeamish Ossifrage"))
    path = tmp_path / "message.hex"
    path.write_text(ciphertext.hex())
    return path


@pytest.fixture
def plugin_file(tmp_path, toy):
    path = tmp_path / "oracle_plugin.py"
    path.write_text(PLUGIN.format(key=toy.key.hex()))
    return path


class TestSolve:
    """Test suite for the solve command"""

    def test_solve_with_plugin(self, runner, ciphertext_file, plugin_file):
        result = runner.invoke(cli, [
            "solve", "-c", str(ciphertext_file), "-f", "hex",
            "--oracle-fn", str(plugin_file), "--no-ui",
        ])

        assert result.exit_code == 0, result.output
        assert "Squeamish Ossifrage" in result.output
        written = ciphertext_file.with_name("message.hex.plaintext").read_bytes()
        assert written == b"Squeamish Ossifrage"

    def test_solve_with_workers(self, runner, ciphertext_file, plugin_file):
        result = runner.invoke(cli, [
            "solve", "-c", str(ciphertext_file), "-f", "hex",
            "--oracle-fn", str(plugin_file), "--no-ui", "--workers", "2",
        ])
        assert result.exit_code == 0, result.output
        assert "Squeamish Ossifrage" in result.output

    def test_requires_exactly_one_oracle(self, runner, ciphertext_file, plugin_file):
        result = runner.invoke(cli, ["solve", "-c", str(ciphertext_file), "-f", "hex", "--no-ui"])
        assert result.exit_code == 2
        assert "exactly one of --url or --oracle-fn" in result.output

        result = runner.invoke(cli, [
            "solve", "-c", str(ciphertext_file), "-f", "hex", "--no-ui",
            "--oracle-fn", str(plugin_file), "--url", "http://oracle.test/?c=",
        ])
        assert result.exit_code == 2

    def test_failure_reports_block(self, runner, tmp_path, ciphertext_file):
        plugin = tmp_path / "reject.py"
        plugin.write_text(REJECTING_PLUGIN)

        result = runner.invoke(cli, [
            "--log-level", "ERROR",
            "solve", "-c", str(ciphertext_file), "-f", "hex",
            "--oracle-fn", str(plugin), "--no-ui",
        ])

        assert result.exit_code == 1
        assert "Decryption failed at block 1, byte 15 (exhausted" in result.output

    def test_malformed_ciphertext(self, runner, tmp_path, plugin_file):
        path = tmp_path / "short.hex"
        path.write_text("00" * 20)

        result = runner.invoke(cli, [
            "solve", "-c", str(path), "-f", "hex", "--oracle-fn", str(plugin_file), "--no-ui",
        ])

        assert result.exit_code == 1
        assert "not a multiple of the block size" in result.output

    def test_undecodable_ciphertext(self, runner, tmp_path, plugin_file):
        path = tmp_path / "bad.hex"
        path.write_text("not hex")

        result = runner.invoke(cli, [
            "solve", "-c", str(path), "-f", "hex", "--oracle-fn", str(plugin_file), "--no-ui",
        ])

        assert result.exit_code == 2
        assert "Could not decode ciphertext" in result.output

    def test_invalid_config(self, runner, ciphertext_file, plugin_file):
        result = runner.invoke(cli, [
            "solve", "-c", str(ciphertext_file), "-f", "hex",
            "--oracle-fn", str(plugin_file), "--no-ui", "--workers", "0",
        ])
        assert result.exit_code == 2
