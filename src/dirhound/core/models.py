"""
Core data structures shared by the engine, the HTTP client and the reporters.
"""

import hashlib
from dataclasses import dataclass
from typing import Any, Dict


# The signature covers the body length plus the head of the body.
SIGNATURE_SAMPLE_SIZE = 1024


@dataclass(frozen=True)
class Candidate:
    """A single path drawn from the wordlist, ranked by its position"""
    index: int
    path: str


@dataclass(frozen=True)
class ProbeOutcome:
    """
    Result of one successful request attempt.

    Transport failures never produce an outcome; they are raised as
    TransportError instead.
    """
    status: int
    length: int  # body size in bytes
    elapsed: float  # seconds
    word_count: int = 0
    signature: str = ""

    @classmethod
    def from_body(cls, status: int, body: bytes, elapsed: float) -> "ProbeOutcome":
        """Build an outcome from a raw response body"""
        return cls(
            status=status,
            length=len(body),
            elapsed=elapsed,
            word_count=len(body.split()),
            signature=body_signature(body),
        )

    @property
    def is_success(self) -> bool:
        return 200 <= self.status < 300


@dataclass(frozen=True)
class ScanResult:
    """An outcome together with the candidate and URL that produced it"""
    candidate: Candidate
    url: str
    outcome: ProbeOutcome
    wildcard: bool = False

    @property
    def path(self) -> str:
        return self.candidate.path

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        return {
            "word": self.candidate.path,
            "index": self.candidate.index,
            "url": self.url,
            "status": self.outcome.status,
            "content_length": self.outcome.length,
            "response_time_ms": int(self.outcome.elapsed * 1000),
            "word_count": self.outcome.word_count,
            "wildcard": self.wildcard,
        }


def body_signature(body: bytes) -> str:
    """
    Hex SHA-256 of the body length and its first SIGNATURE_SAMPLE_SIZE bytes.

    Pages that share a long common header but differ in size get
    different signatures.
    """
    digest = hashlib.sha256(len(body).to_bytes(8, "big"))
    digest.update(body[:SIGNATURE_SAMPLE_SIZE])
    return digest.hexdigest()
