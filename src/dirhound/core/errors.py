"""
Error taxonomy for the scan engine.

Only TransportError is recovered locally (the candidate is counted as
failed). Every other error aborts the session before or right after the
initialization phase.
"""


class DirhoundError(Exception):
    """Base exception for all scanner errors"""
    pass


class TransportError(DirhoundError):
    """Raised when a single request fails at the network level"""

    def __init__(self, url: str, reason: str):
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason


class SourceError(DirhoundError):
    """Raised when the wordlist is unreadable or a seek offset is out of range"""
    pass


class ConfigurationError(DirhoundError):
    """Raised when scan settings are invalid (never silently clamped)"""
    pass


class StateError(DirhoundError):
    """Base exception for checkpoint problems"""
    pass


class CheckpointNotFound(StateError):
    """Raised when there is no checkpoint file to resume from"""
    pass


class CorruptState(StateError):
    """Raised when a checkpoint file is unreadable, malformed or from another format version"""
    pass


class CheckpointWriteError(StateError):
    """Raised when a checkpoint cannot be written to disk"""
    pass


class ConfigMismatch(StateError):
    """Raised when a checkpoint was written for a different scan configuration"""

    def __init__(self, expected: str, found: str):
        super().__init__(
            "Checkpoint belongs to a different scan configuration "
            f"(expected fingerprint {expected[:12]}, found {found[:12]})"
        )
        self.expected = expected
        self.found = found
