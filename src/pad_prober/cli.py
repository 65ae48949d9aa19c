from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Tuple

import click
from pydantic import ValidationError
import requests
import structlog

from pad_prober.config import AttackConfig
from pad_prober.errors import AttackCancelled, ByteUnrecoverable, PadProberError
from pad_prober.log import configure_logging
from pad_prober.message import MessageDecryptor, split_blocks
from pad_prober.oracle import FunctionOracle, HttpOracle, PaddingOracle
from pad_prober.progress import ProgressTracker, SingleSlotQueue, StateSnapshot
from pad_prober.ui import ui_loop
from pad_prober.utils import (
    CIPHERTEXT_FORMATS,
    b64_decode,
    load_ciphertext,
    load_guess_fn,
    strip_plaintext_padding,
    CiphertextFormat,
)

log = structlog.get_logger(__name__)

DEFAULT_DEMO_BASE_URL = "http://127.0.0.1:8000"


@click.group()
@click.option("--log-level", default="WARNING", show_default=True,
              type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False))
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON lines")
def cli(log_level: str, json_logs: bool):
    configure_logging(log_level, json_logs)


def attack_options(fn):
    """Options shared by every command that runs the attack."""
    options = [
        click.option("--block-size", "-b", default=16, show_default=True, type=int),
        click.option("--candidates", type=click.Choice(["text", "printable", "full"]),
                     default="text", show_default=True, help="Guess candidate preset"),
        click.option("--max-queries", type=int, default=None, help="Query cap per block"),
        click.option("--workers", "-w", default=1, show_default=True, type=int,
                     help="Decrypt this many blocks in parallel"),
        click.option("--timeout", default=10.0, show_default=True, type=float,
                     help="Per-query timeout in seconds"),
        click.option("--no-ui", is_flag=True, help="Disable the live progress view"),
    ]
    for option in reversed(options):
        fn = option(fn)
    return fn


def build_config(block_size: int, candidates: str, max_queries: Optional[int],
                 workers: int, timeout: float) -> AttackConfig:
    try:
        return AttackConfig.from_preset(
            candidates,
            block_size=block_size,
            max_queries_per_block=max_queries,
            workers=workers,
            timeout=timeout,
        )
    except ValidationError as e:
        raise click.BadParameter(str(e)) from e


def _run(decryptor: MessageDecryptor, tracker: ProgressTracker, ciphertext: bytes) -> bytes:
    try:
        return decryptor.decrypt(ciphertext)
    finally:
        # Always close the queue so the UI can exit.
        tracker.finish()


def solver(oracle: PaddingOracle, ciphertext: bytes, config: AttackConfig, show_ui: bool = True) -> bytes:
    """Run the padding oracle attack and return the unpadded plaintext."""
    try:
        blocks = split_blocks(ciphertext, config.block_size)
        if not show_ui:
            plaintext = MessageDecryptor(oracle, config).decrypt(ciphertext)
        else:
            state_queue: SingleSlotQueue[StateSnapshot] = SingleSlotQueue()
            tracker = ProgressTracker(blocks, state_queue)
            decryptor = MessageDecryptor(oracle, config, observer=tracker)

            with ThreadPoolExecutor(max_workers=1) as executor:
                future = executor.submit(_run, decryptor, tracker, ciphertext)

                try:
                    ui_loop(state_queue)
                except KeyboardInterrupt:
                    tracker.cancel()
                    state_queue.close()

                plaintext = future.result()
    except ByteUnrecoverable as e:
        raise click.ClickException(
            f"Decryption failed at block {e.block_index}, byte {e.byte_index} "
            f"({e.reason}, {e.candidate_count} candidates, {e.queries} queries)"
        ) from e
    except AttackCancelled as e:
        raise click.Abort() from e
    except PadProberError as e:
        raise click.ClickException(str(e)) from e
    finally:
        oracle.close()

    log.info("message decrypted", bytes=len(plaintext), queries=oracle.queries)
    return strip_plaintext_padding(plaintext, config.block_size)


def echo_plaintext(plaintext: bytes) -> None:
    click.echo(plaintext.decode("utf-8", errors="replace"))


@cli.command()
@click.option("--ciphertext-path", "-c", required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--ciphertext-format", "-f", type=click.Choice(CIPHERTEXT_FORMATS), default="b64",
              show_default=True)
@click.option("--url", "-u", default=None, help="Oracle URL prefix; the hex ciphertext is appended")
@click.option("--oracle-fn", "-g", default=None, type=click.Path(exists=True, dir_okay=False),
              help="Python file defining submit_guess(prev_block, target_block) -> bool")
@click.option("--accept-status", multiple=True, type=int, default=(404,), show_default=True,
              help="HTTP status meaning valid padding")
@click.option("--reject-status", multiple=True, type=int, default=(403,), show_default=True,
              help="HTTP status meaning invalid padding")
@attack_options
def solve(
    ciphertext_path: str,
    ciphertext_format: CiphertextFormat,
    url: Optional[str],
    oracle_fn: Optional[str],
    accept_status: Tuple[int, ...],
    reject_status: Tuple[int, ...],
    block_size: int,
    candidates: str,
    max_queries: Optional[int],
    workers: int,
    timeout: float,
    no_ui: bool,
):
    """Decrypt a ciphertext file through a padding oracle."""
    if (url is None) == (oracle_fn is None):
        raise click.UsageError("Pass exactly one of --url or --oracle-fn")

    config = build_config(block_size, candidates, max_queries, workers, timeout)
    try:
        ciphertext = load_ciphertext(ciphertext_path, ciphertext_format)
    except ValueError as e:
        raise click.BadParameter(f"Could not decode ciphertext: {e}", param_hint="--ciphertext-path")

    if url is not None:
        oracle: PaddingOracle = HttpOracle(
            url,
            accepted_status=accept_status,
            rejected_status=reject_status,
            timeout=config.timeout,
            block_size=config.block_size,
        )
    else:
        try:
            oracle = FunctionOracle(load_guess_fn(oracle_fn), block_size=config.block_size)
        except PadProberError as e:
            raise click.BadParameter(str(e), param_hint="--oracle-fn")

    plaintext = solver(oracle, ciphertext, config, show_ui=not no_ui)
    plaintext_path = f"{ciphertext_path}.plaintext"
    with open(plaintext_path, "wb") as f:
        f.write(plaintext)
    echo_plaintext(plaintext)


def fetch_demo_data(endpoint: str, timeout: float = 10.0) -> bytes:
    """Fetch the demo ciphertext from the given demo endpoint."""
    response = requests.get(endpoint, timeout=timeout)
    if response.status_code != 200:
        raise click.ClickException(
            f"Failed to get {endpoint}: {response.status_code} {response.text}"
        )
    data = response.json()
    return b64_decode(data["ciphertext_b64"])


@cli.command()
@click.argument("name", type=click.Choice(["hello", "alphabet", "ossifrage"]))
@click.option("--base-url", default=DEFAULT_DEMO_BASE_URL, show_default=True)
@attack_options
def demo(
    name: str,
    base_url: str,
    block_size: int,
    candidates: str,
    max_queries: Optional[int],
    workers: int,
    timeout: float,
    no_ui: bool,
):
    """Attack a canned message served by the demo API."""
    config = build_config(block_size, candidates, max_queries, workers, timeout)
    try:
        ciphertext = fetch_demo_data(f"{base_url}/api/demo/{name}", timeout=config.timeout)
    except requests.RequestException as e:
        raise click.ClickException(f"Demo API not reachable at {base_url}: {e}")
    oracle = HttpOracle(f"{base_url}/po?er=", timeout=config.timeout, block_size=config.block_size)
    echo_plaintext(solver(oracle, ciphertext, config, show_ui=not no_ui))


@cli.command("demo-api")
@click.option("--host", default="127.0.0.1", help="Host to bind the server to")
@click.option("--port", default=8000, help="Port to bind the server to")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
def demo_api(host: str, port: int, reload: bool):
    """Start the demo API server for testing padding oracle attacks."""
    try:
        import uvicorn
        from demo_api.api import app
    except ImportError as e:
        click.echo(f"Error: Demo API dependencies not available: {e}")
        click.echo("Install with: pip install 'pad-prober[demo]'")
        raise click.Abort()

    click.echo(f"Starting demo API server on http://{host}:{port}")
    click.echo("Available endpoints:")
    click.echo("  - GET  /api/demo/{name} - Canned ciphertexts (hello, alphabet, ossifrage)")
    click.echo("  - POST /api/encrypt     - Encrypt plaintext")
    click.echo("  - GET  /po?er=<hex>     - Padding oracle (404 valid, 403 invalid)")
    click.echo("\nPress Ctrl+C to stop the server")

    if reload:
        # Use import string for reload mode
        uvicorn.run("demo_api.api:app", host=host, port=port, reload=True)
    else:
        uvicorn.run(app, host=host, port=port, reload=False)


def main():
    cli(auto_envvar_prefix="PAD_PROBER")


if __name__ == "__main__":
    main()
