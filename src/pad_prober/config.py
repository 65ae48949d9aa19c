from typing import Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator

from pad_prober import candidates as candidate_sets


class AttackConfig(BaseModel):
    """Tunables for one decryption run."""

    block_size: int = Field(default=16, ge=1, le=255)
    candidates: Optional[Tuple[int, ...]] = None
    max_queries_per_block: Optional[int] = Field(default=None, gt=0)
    unreachable_warn_threshold: int = Field(default=10, gt=0)
    workers: int = Field(default=1, gt=0)
    timeout: float = Field(default=10.0, gt=0)

    @field_validator("candidates")
    @classmethod
    def check_candidates(cls, value: Optional[Tuple[int, ...]]) -> Optional[Tuple[int, ...]]:
        if value is None:
            return value
        return candidate_sets.normalize(value)

    @model_validator(mode="after")
    def default_candidates(self) -> "AttackConfig":
        # The pad band depends on the block size.
        if self.candidates is None:
            self.candidates = candidate_sets.text_candidates(self.block_size)
        return self

    @classmethod
    def from_preset(cls, preset: candidate_sets.CandidatePreset = "text", **kwargs) -> "AttackConfig":
        block_size = kwargs.get("block_size", 16)
        return cls(candidates=candidate_sets.from_preset(preset, block_size), **kwargs)
