"""
Unit tests for checkpoint persistence.

Run with: pytest tests/unit/test_state.py -v
"""

import json

import pytest

from dirhound.core.config import FilterSpec
from dirhound.core.errors import (
    CheckpointNotFound,
    CheckpointWriteError,
    ConfigMismatch,
    CorruptState,
    StateError,
)
from dirhound.core.state import (
    CHECKPOINT_VERSION,
    ScanCheckpoint,
    ScanState,
    config_fingerprint,
    load_checkpoint,
    persist_checkpoint,
)


def make_checkpoint(**overrides):
    values = {
        "offset": 120,
        "processed_count": 120,
        "accepted_count": 4,
        "failed_count": 2,
        "config_fingerprint": "ab" * 32,
    }
    values.update(overrides)
    return ScanCheckpoint(**values)


class TestScanState:
    """Test suite for ScanState class"""

    def test_save_then_load_round_trip(self, tmp_path):
        """Test a saved checkpoint loads back unchanged"""
        state = ScanState(tmp_path / "scan.state")
        checkpoint = make_checkpoint()

        state.save(checkpoint)

        assert state.load() == checkpoint
        assert state.saves == 1

    def test_save_creates_parent_directories(self, tmp_path):
        """Test checkpoints can be written into a new directory"""
        path = tmp_path / "nested" / "dir" / "scan.state"

        persist_checkpoint(path, make_checkpoint())

        assert load_checkpoint(path).offset == 120

    def test_save_leaves_no_temporary_files(self, tmp_path):
        """Test the atomic write cleans up after itself"""
        state = ScanState(tmp_path / "scan.state")

        state.save(make_checkpoint(offset=1))
        state.save(make_checkpoint(offset=2))

        assert [p.name for p in tmp_path.iterdir()] == ["scan.state"]
        assert state.load().offset == 2

    def test_unwritable_location_raises_state_error(self, tmp_path):
        """Test I/O failures surface as CheckpointWriteError naming the path"""
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("regular file")
        state = ScanState(blocker / "scan.state")

        with pytest.raises(CheckpointWriteError, match="scan.state") as exc_info:
            state.save(make_checkpoint())

        assert isinstance(exc_info.value, StateError)
        assert isinstance(exc_info.value.__cause__, OSError)
        assert state.saves == 0

    def test_file_is_versioned_json(self, tmp_path):
        """Test the on-disk format carries the version and counts"""
        path = tmp_path / "scan.state"
        persist_checkpoint(path, make_checkpoint())

        data = json.loads(path.read_text())

        assert data["version"] == CHECKPOINT_VERSION
        assert data["offset"] == 120
        assert data["accepted_count"] == 4
        assert "saved_at" in data

    def test_missing_file(self, tmp_path):
        """Test loading a missing checkpoint raises CheckpointNotFound"""
        state = ScanState(tmp_path / "missing.state")

        assert not state.exists()
        with pytest.raises(CheckpointNotFound):
            state.load()

    def test_invalid_json_is_corrupt(self, tmp_path):
        """Test garbage content raises CorruptState"""
        path = tmp_path / "scan.state"
        path.write_text("{not json")

        with pytest.raises(CorruptState):
            ScanState(path).load()

    def test_unknown_version_is_corrupt(self, tmp_path):
        """Test checkpoints from another format version are rejected"""
        path = tmp_path / "scan.state"
        persist_checkpoint(path, make_checkpoint())
        data = json.loads(path.read_text())
        data["version"] = 2
        path.write_text(json.dumps(data))

        with pytest.raises(CorruptState, match="version"):
            ScanState(path).load()

    def test_missing_field_is_corrupt(self, tmp_path):
        """Test a checkpoint without an offset is rejected"""
        path = tmp_path / "scan.state"
        path.write_text(json.dumps({"version": 1, "config_fingerprint": "x"}))

        with pytest.raises(CorruptState):
            ScanState(path).load()

    def test_negative_offset_is_corrupt(self, tmp_path):
        """Test out-of-range values are rejected"""
        path = tmp_path / "scan.state"
        path.write_text(json.dumps({"version": 1, "offset": -5, "config_fingerprint": "x"}))

        with pytest.raises(CorruptState):
            ScanState(path).load()

    def test_verify_accepts_matching_fingerprint(self):
        """Test verify() passes for the same fingerprint"""
        ScanState.verify(make_checkpoint(), "ab" * 32)

    def test_verify_rejects_other_fingerprint(self):
        """Test verify() raises ConfigMismatch for a different fingerprint"""
        with pytest.raises(ConfigMismatch) as exc_info:
            ScanState.verify(make_checkpoint(), "cd" * 32)

        assert exc_info.value.found == "ab" * 32
        assert exc_info.value.expected == "cd" * 32


class TestConfigFingerprint:
    """Test suite for config_fingerprint()"""

    def test_stable_for_equal_configs(self, wordlist, make_config):
        """Test the same settings give the same fingerprint"""
        path = wordlist(["admin"])

        first = config_fingerprint(make_config(path), "hash")
        second = config_fingerprint(make_config(path), "hash")

        assert first == second

    def test_ignores_speed_settings(self, wordlist, make_config):
        """Test threads and timeouts do not change the fingerprint"""
        path = wordlist(["admin"])

        slow = config_fingerprint(make_config(path, threads=1, timeout=30), "hash")
        fast = config_fingerprint(make_config(path, threads=50, timeout=2), "hash")

        assert slow == fast

    def test_trailing_slash_is_irrelevant(self, wordlist, make_config):
        """Test the target is compared without a trailing slash"""
        path = wordlist(["admin"])

        plain = config_fingerprint(make_config(path, target="https://example.com"), "hash")
        slashed = config_fingerprint(make_config(path, target="https://example.com/"), "hash")

        assert plain == slashed

    def test_changes_with_filters_target_and_wordlist(self, wordlist, make_config):
        """Test result-affecting settings change the fingerprint"""
        path = wordlist(["admin"])
        base = config_fingerprint(make_config(path), "hash")

        assert config_fingerprint(make_config(path, target="https://other.example"), "hash") != base
        assert config_fingerprint(make_config(path, filters=FilterSpec(only_success=True)), "hash") != base
        assert config_fingerprint(make_config(path), "other-hash") != base

    def test_code_order_is_irrelevant(self, wordlist, make_config):
        """Test excluded codes are compared as a set"""
        path = wordlist(["admin"])

        first = config_fingerprint(make_config(path, filters={"exclude_codes": [404, 403]}), "h")
        second = config_fingerprint(make_config(path, filters={"exclude_codes": [403, 404]}), "h")

        assert first == second


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
