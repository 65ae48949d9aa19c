"""Ordered guess-candidate sets for byte discovery.

The search tries candidates in the given order, so cheap wins go first. The
pad band (1..block_size) always leads so the final byte of a padded block is
reachable.
"""
from itertools import chain
from typing import Iterable, Literal, Tuple, TypeAlias

CandidatePreset: TypeAlias = Literal["text", "printable", "full"]

SPACE = 0x20


def pad_band(block_size: int) -> range:
    return range(1, block_size + 1)


def text_candidates(block_size: int = 16) -> Tuple[int, ...]:
    """Pad band, space, then upper- and lowercase Latin letters."""
    return tuple(dict.fromkeys(chain(
        pad_band(block_size),
        (SPACE,),
        range(ord("A"), ord("Z") + 1),
        range(ord("a"), ord("z") + 1),
    )))


def printable_candidates(block_size: int = 16) -> Tuple[int, ...]:
    """Pad band, then every printable ASCII character."""
    # Large block sizes overlap the printable range.
    return tuple(dict.fromkeys(chain(pad_band(block_size), range(SPACE, 0x7F))))


def full_candidates(block_size: int = 16) -> Tuple[int, ...]:
    return tuple(range(256))


PRESETS = {
    "text": text_candidates,
    "printable": printable_candidates,
    "full": full_candidates,
}


def from_preset(name: CandidatePreset, block_size: int = 16) -> Tuple[int, ...]:
    try:
        factory = PRESETS[name]
    except KeyError:
        raise ValueError(f"Unknown candidate preset: {name}") from None
    return factory(block_size)


def normalize(values: Iterable[int]) -> Tuple[int, ...]:
    """Validate a user supplied candidate order."""
    ordered = tuple(values)
    if not ordered:
        raise ValueError("Candidate set must not be empty")
    for value in ordered:
        if not 0 <= value <= 0xFF:
            raise ValueError(f"Candidate {value} is not a byte value")
    if len(set(ordered)) != len(ordered):
        raise ValueError("Candidate set must not contain duplicates")
    return ordered
