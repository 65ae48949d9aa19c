from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import List, Optional

import structlog

from pad_prober.block import BlockDecryptor, BlockStats
from pad_prober.config import AttackConfig
from pad_prober.errors import ByteUnrecoverable, MalformedCiphertext
from pad_prober.oracle import PaddingOracle
from pad_prober.progress import ProgressTracker

log = structlog.get_logger(__name__)


@dataclass
class BlockResult:
    index: int
    plaintext: Optional[bytes] = None
    error: Optional[ByteUnrecoverable] = None
    stats: BlockStats = field(default_factory=BlockStats)

    @property
    def ok(self) -> bool:
        return self.error is None


def split_blocks(ciphertext: bytes, block_size: int = 16) -> List[bytes]:
    """Split a ciphertext into blocks, rejecting anything the attack can't use."""
    if len(ciphertext) % block_size != 0:
        raise MalformedCiphertext(
            f"Ciphertext length {len(ciphertext)} is not a multiple of the block size {block_size}"
        )
    blocks = [bytes(ciphertext[i:i + block_size]) for i in range(0, len(ciphertext), block_size)]
    if len(blocks) < 2:
        raise MalformedCiphertext(
            f"Ciphertext needs an IV and at least one block, got {len(blocks)} block(s)"
        )
    return blocks


class MessageDecryptor:
    """Decrypts every block after the IV and joins the results in order."""

    def __init__(
        self,
        oracle: PaddingOracle,
        config: Optional[AttackConfig] = None,
        *,
        observer: Optional[ProgressTracker] = None,
    ):
        self.oracle = oracle
        self.config = config or AttackConfig()
        self.observer = observer
        if oracle.block_size != self.config.block_size:
            raise ValueError(
                f"Oracle block size {oracle.block_size} does not match "
                f"configured block size {self.config.block_size}"
            )

    def _block_decryptor(self) -> BlockDecryptor:
        return BlockDecryptor(
            self.oracle,
            block_size=self.config.block_size,
            candidates=self.config.candidates,
            max_queries=self.config.max_queries_per_block,
            unreachable_warn_threshold=self.config.unreachable_warn_threshold,
            observer=self.observer,
        )

    def decrypt(self, ciphertext: bytes) -> bytes:
        """Recover the whole message or raise the first block failure."""
        results = self.decrypt_blocks(ciphertext, stop_on_error=True)
        for result in results:
            if result.error is not None:
                raise result.error
        return b"".join(result.plaintext for result in results)

    def decrypt_blocks(self, ciphertext: bytes, *, stop_on_error: bool = True) -> List[BlockResult]:
        """Decrypt block by block and report each outcome.

        With `stop_on_error` the run ends at the first failed block and the
        returned list stops there. Otherwise every block is attempted.
        """
        blocks = split_blocks(ciphertext, self.config.block_size)
        pairs = list(range(1, len(blocks)))
        log.info("decrypting message", blocks=len(pairs), workers=self.config.workers)

        if self.config.workers > 1 and len(pairs) > 1:
            return self._decrypt_parallel(blocks, pairs, stop_on_error)

        results = []
        for index in pairs:
            result = self._decrypt_pair(blocks, index)
            results.append(result)
            if stop_on_error and not result.ok:
                break
        return results

    def _decrypt_pair(self, blocks: List[bytes], index: int) -> BlockResult:
        decryptor = self._block_decryptor()
        try:
            plaintext, stats = decryptor.decrypt_with_stats(blocks[index - 1], blocks[index], block_index=index)
        except ByteUnrecoverable as e:
            return BlockResult(index=index, error=e, stats=e.stats or BlockStats(queries=e.queries))
        return BlockResult(index=index, plaintext=plaintext, stats=stats)

    def _decrypt_parallel(self, blocks: List[bytes], pairs: List[int], stop_on_error: bool) -> List[BlockResult]:
        with ThreadPoolExecutor(max_workers=self.config.workers) as executor:
            futures = [executor.submit(self._decrypt_pair, blocks, index) for index in pairs]
            for future in as_completed(futures):
                if future.exception() is not None or (stop_on_error and not future.result().ok):
                    # Blocks already running are waited for, queued ones dropped.
                    executor.shutdown(wait=True, cancel_futures=True)
                    break

        # Pairs are submitted in order, so cancelled futures only trail the finished ones.
        ordered = []
        for future in futures:
            if future.cancelled():
                break
            result = future.result()
            ordered.append(result)
            if stop_on_error and not result.ok:
                break
        return ordered
