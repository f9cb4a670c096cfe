"""
Scan State - Checkpoint persistence for resumable scans.

A checkpoint records how far the scan got (the offset of the first
candidate not yet known to be finished), the counts for everything before
that offset, and a fingerprint of the configuration that produced it.

File layout (JSON):
    {"version": 1, "offset": 1200, "processed_count": 1200,
     "accepted_count": 7, "failed_count": 3,
     "config_fingerprint": "9f2c...", "saved_at": "2025-01-01T12:00:00"}

Any other version, or anything that does not parse into this shape, is
rejected as CorruptState.
"""

import hashlib
import json
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Literal

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import ScanConfig
from .errors import CheckpointNotFound, CheckpointWriteError, ConfigMismatch, CorruptState


CHECKPOINT_VERSION = 1


class ScanCheckpoint(BaseModel):
    """Persisted progress marker"""
    model_config = ConfigDict(frozen=True, extra="forbid")

    version: Literal[1] = CHECKPOINT_VERSION
    offset: int = Field(ge=0)
    processed_count: int = Field(default=0, ge=0)
    accepted_count: int = Field(default=0, ge=0)
    failed_count: int = Field(default=0, ge=0)
    config_fingerprint: str
    saved_at: datetime = Field(default_factory=datetime.now)


def config_fingerprint(config: ScanConfig, wordlist_identity: str) -> str:
    """
    Hash of everything a checkpoint must agree on to be resumable.

    Args:
        config: Scan configuration
        wordlist_identity: Content hash of the wordlist (WordSource.identity())
    """
    material = dict(config.fingerprint_material(), wordlist=wordlist_identity)
    encoded = json.dumps(material, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


class ScanState:
    """
    Reads and writes checkpoints for one scan.

    Writes go to a temporary file in the same directory which then replaces
    the target, so an interrupted write never leaves a half-written
    checkpoint behind.

    Example:
        >>> state = ScanState("scan.state")
        >>> state.save(checkpoint)
        >>> checkpoint = state.load()
        >>> state.verify(checkpoint, fingerprint)
    """

    def __init__(self, path):
        self.path = Path(path)
        self.saves = 0

        self.logger = structlog.get_logger(__name__)

    def save(self, checkpoint: ScanCheckpoint):
        """
        Persist a checkpoint atomically.

        Raises:
            CheckpointWriteError: If the directory or file cannot be written
        """
        payload = checkpoint.model_dump_json(indent=2)
        directory = self.path.parent

        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=directory)
        except OSError as e:
            raise CheckpointWriteError(f"Cannot write checkpoint {self.path}: {e}") from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError as e:
            Path(tmp_path).unlink(missing_ok=True)
            raise CheckpointWriteError(f"Cannot write checkpoint {self.path}: {e}") from e
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

        self.saves += 1
        self.logger.debug(
            "checkpoint_saved",
            path=str(self.path),
            offset=checkpoint.offset,
            processed=checkpoint.processed_count,
            accepted=checkpoint.accepted_count,
        )

    def load(self) -> ScanCheckpoint:
        """
        Read the checkpoint file.

        Raises:
            CheckpointNotFound: If the file does not exist
            CorruptState: If the file is unreadable, malformed or from
                another format version
        """
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise CheckpointNotFound(f"No checkpoint at {self.path}") from e
        except (OSError, UnicodeDecodeError) as e:
            raise CorruptState(f"Cannot read checkpoint {self.path}: {e}") from e

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise CorruptState(f"Checkpoint {self.path} is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise CorruptState(f"Checkpoint {self.path} is not a JSON object")

        if data.get("version") != CHECKPOINT_VERSION:
            raise CorruptState(
                f"Checkpoint {self.path} has unsupported version {data.get('version')!r} "
                f"(expected {CHECKPOINT_VERSION})"
            )

        try:
            checkpoint = ScanCheckpoint.model_validate(data)
        except ValidationError as e:
            raise CorruptState(f"Checkpoint {self.path} is malformed: {e}") from e

        self.logger.info(
            "checkpoint_loaded",
            path=str(self.path),
            offset=checkpoint.offset,
            processed=checkpoint.processed_count,
        )
        return checkpoint

    @staticmethod
    def verify(checkpoint: ScanCheckpoint, fingerprint: str):
        """
        Raises:
            ConfigMismatch: If the checkpoint was written for another configuration
        """
        if checkpoint.config_fingerprint != fingerprint:
            raise ConfigMismatch(expected=fingerprint, found=checkpoint.config_fingerprint)

    def exists(self) -> bool:
        return self.path.is_file()


def load_checkpoint(path) -> ScanCheckpoint:
    return ScanState(path).load()


def persist_checkpoint(path, checkpoint: ScanCheckpoint):
    ScanState(path).save(checkpoint)
