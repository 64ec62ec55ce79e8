"""Fraud analysis result entity. Attached 1:1 to a stream event; never mutated."""

from dataclasses import dataclass

from royalty_pipeline.domain.enums import FraudFlag, FraudVerdict


@dataclass(frozen=True)
class FraudAnalysisResult:
    """Score, triggered flags and verdict for one stream event."""

    event_id: str
    score: float
    flags: frozenset[FraudFlag]
    verdict: FraudVerdict

    def __post_init__(self) -> None:
        if not 0.0 <= self.score <= 1.0:
            raise ValueError(f"Fraud score must be within [0, 1], got {self.score}")

    @property
    def counts_as_valid(self) -> bool:
        return self.verdict == FraudVerdict.CLEAN

    @property
    def counts_as_flagged(self) -> bool:
        return self.verdict == FraudVerdict.SUSPICIOUS

    def sorted_flags(self) -> list[str]:
        """Flag values in stable order (persistence and API output)."""
        return sorted(flag.value for flag in self.flags)
