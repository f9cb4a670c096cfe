"""
Core module - The scan engine.

This package contains the components that drive a scan: wordlist streaming,
evasion policy, wildcard detection, filtering, the worker pool and
checkpoint/resume.
"""

from .errors import (
    DirhoundError,
    TransportError,
    SourceError,
    ConfigurationError,
    StateError,
    CheckpointNotFound,
    CorruptState,
    CheckpointWriteError,
    ConfigMismatch,
)
from .config import ScanConfig, FilterSpec, EvasionConfig, WildcardConfig, AuthConfig
from .models import Candidate, ProbeOutcome, ScanResult
from .wordlist import WordSource, load_wordlist
from .evasion import EvasionPolicy
from .wildcard import WildcardBaseline, WildcardProfile
from .filters import FilterChain
from .state import ScanCheckpoint, ScanState, load_checkpoint, persist_checkpoint, config_fingerprint
from .pool import ProgressTracker, WorkerPool
from .engine import ScanSession, SessionState, SessionSummary, run


__all__ = [
    # Errors
    "DirhoundError",
    "TransportError",
    "SourceError",
    "ConfigurationError",
    "StateError",
    "CheckpointNotFound",
    "CorruptState",
    "CheckpointWriteError",
    "ConfigMismatch",
    # Configuration
    "ScanConfig",
    "FilterSpec",
    "EvasionConfig",
    "WildcardConfig",
    "AuthConfig",
    # Data structures
    "Candidate",
    "ProbeOutcome",
    "ScanResult",
    # Components
    "WordSource",
    "load_wordlist",
    "EvasionPolicy",
    "WildcardBaseline",
    "WildcardProfile",
    "FilterChain",
    "ScanCheckpoint",
    "ScanState",
    "load_checkpoint",
    "persist_checkpoint",
    "config_fingerprint",
    "ProgressTracker",
    "WorkerPool",
    # Session
    "ScanSession",
    "SessionState",
    "SessionSummary",
    "run",
]
