"""Padding oracle abstraction.

An oracle answers one question per call: does the ciphertext decrypt to
well-formed padding? Anything the transport cannot answer cleanly is folded
into a rejection, but the kind of non-answer is kept in the verdict and
logged so it can be told apart when diagnosing a run.
"""
from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections import Counter
from enum import Enum
from typing import Callable, Iterable, Tuple

import requests
import structlog

from pad_prober.errors import MalformedCiphertext, OracleUnreachable

log = structlog.get_logger(__name__)

SubmitGuessFn = Callable[[bytes, bytes], bool]


class OracleVerdict(str, Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    UNREACHABLE = "unreachable"
    UNEXPECTED = "unexpected"

    @property
    def accepted(self) -> bool:
        return self is OracleVerdict.ACCEPTED

    def __str__(self):
        return self.value


class PaddingOracle(ABC):
    """Base oracle. Subclasses implement `_submit` for a single round trip."""

    def __init__(self, block_size: int = 16):
        self.block_size = block_size
        self._lock = threading.Lock()
        self._counts: Counter[OracleVerdict] = Counter()

    @abstractmethod
    def _submit(self, candidate: bytes) -> OracleVerdict:
        """Send one candidate. Raise OracleUnreachable on transport failure."""

    def verdict(self, candidate: bytes) -> OracleVerdict:
        if len(candidate) % self.block_size != 0 or len(candidate) < 2 * self.block_size:
            raise MalformedCiphertext(
                f"Oracle candidate must be at least two {self.block_size}-byte blocks, "
                f"got {len(candidate)} bytes"
            )
        try:
            result = self._submit(candidate)
        except OracleUnreachable as e:
            log.warning("oracle unreachable", error=str(e))
            result = OracleVerdict.UNREACHABLE
        with self._lock:
            self._counts[result] += 1
        return result

    def query(self, candidate: bytes) -> bool:
        """True iff the oracle accepted the padding of `candidate`."""
        return self.verdict(candidate).accepted

    @property
    def queries(self) -> int:
        with self._lock:
            return sum(self._counts.values())

    def count(self, verdict: OracleVerdict) -> int:
        with self._lock:
            return self._counts[verdict]

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


class FunctionOracle(PaddingOracle):
    """Oracle backed by a user function `submit_guess(prev_block, target_block)`.

    The candidate's last block is passed as `target_block` and everything
    before it as `prev_block`. Exceptions raised by the function count as an
    unreachable oracle.
    """

    def __init__(self, submit_guess: SubmitGuessFn, block_size: int = 16):
        super().__init__(block_size)
        self.submit_guess = submit_guess

    def _submit(self, candidate: bytes) -> OracleVerdict:
        prev_block = candidate[:-self.block_size]
        target_block = candidate[-self.block_size:]
        try:
            accepted = self.submit_guess(prev_block, target_block)
        except Exception as e:
            raise OracleUnreachable(f"submit_guess raised {type(e).__name__}: {e}") from e
        return OracleVerdict.ACCEPTED if accepted else OracleVerdict.REJECTED


class HttpOracle(PaddingOracle):
    """Oracle reached with `GET <url><hex ciphertext>`.

    By default 404 means the padding was accepted (the message itself was
    not) and 403 means bad padding.
    """

    def __init__(
        self,
        url: str,
        *,
        accepted_status: Iterable[int] = (404,),
        rejected_status: Iterable[int] = (403,),
        timeout: float = 10.0,
        block_size: int = 16,
    ):
        super().__init__(block_size)
        self.url = url
        self.accepted_status: Tuple[int, ...] = tuple(accepted_status)
        self.rejected_status: Tuple[int, ...] = tuple(rejected_status)
        self.timeout = timeout
        self._local = threading.local()
        self._sessions: list[requests.Session] = []

    @property
    def session(self) -> requests.Session:
        # One connection pool per worker thread.
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            self._local.session = session
            with self._lock:
                self._sessions.append(session)
        return session

    def close(self) -> None:
        with self._lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()

    def _submit(self, candidate: bytes) -> OracleVerdict:
        url = f"{self.url}{candidate.hex()}"
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise OracleUnreachable(f"GET {self.url}... failed: {e}") from e

        status = response.status_code
        if status in self.accepted_status:
            return OracleVerdict.ACCEPTED
        if status in self.rejected_status:
            return OracleVerdict.REJECTED
        log.warning("unexpected oracle status", status=status, url=self.url)
        return OracleVerdict.UNEXPECTED
