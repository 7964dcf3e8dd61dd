"""Search data models."""

from array import array
from dataclasses import dataclass, field


@dataclass(frozen=True)
class Posting:
    """A term occurrence list for one document field."""

    doc_id: int
    frequency: int = 0
    doc_length: int = 0
    positions: array = field(default_factory=lambda: array("I"))

    @classmethod
    def from_row(cls, doc_id: int, tf: int, doc_length: int, positions_blob: bytes | None) -> "Posting":
        positions = array("I")
        if positions_blob:
            positions.frombytes(positions_blob)
        return cls(doc_id=int(doc_id), frequency=int(tf or 0), doc_length=int(doc_length or 0), positions=positions)


@dataclass(frozen=True)
class SearchHit:
    """One matching document in engine order."""

    doc_id: int
    key: str
    score: float
