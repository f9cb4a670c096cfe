"""
Scan Engine - Runs one scan session from configuration to summary.

Session lifecycle:
    INITIALIZING -> RUNNING | RESUMED -> COMPLETED | CANCELLED

1. Validate inputs, open the wordlist, fingerprint the configuration
2. Load and verify the resume checkpoint (if any) and seek the wordlist
3. Build a fresh wildcard profile (never restored from a checkpoint)
4. Write the initial checkpoint
5. Run the worker pool with periodic checkpoints
6. Write the final checkpoint on completion or cancellation

Usage:
    summary = await run(ScanConfig.create(target="https://example.com", wordlist="words.txt"))
"""

import asyncio
import signal
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import structlog

from .config import ScanConfig
from .errors import CheckpointNotFound
from .evasion import EvasionPolicy
from .filters import FilterChain
from .pool import ProgressTracker, WorkerPool
from .state import ScanCheckpoint, ScanState, config_fingerprint
from .wildcard import WildcardBaseline, WildcardProfile
from .wordlist import load_wordlist


class SessionState(Enum):
    """Scan session status"""
    INITIALIZING = "initializing"
    RUNNING = "running"
    RESUMED = "resumed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


@dataclass
class SessionSummary:
    """Outcome of a scan session (counts cover this session only)"""
    scan_id: str
    target: str
    state: SessionState
    processed: int = 0
    accepted: int = 0
    failed: int = 0
    filtered: int = 0
    wildcards: int = 0
    abandoned: int = 0
    elapsed: float = 0.0
    resumed_from: Optional[int] = None
    checkpoint_offset: int = 0
    wildcard_entries: int = 0
    filter_reasons: Dict[str, int] = field(default_factory=dict)

    @property
    def rate(self) -> float:
        return self.processed / self.elapsed if self.elapsed > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        return {
            "scan_id": self.scan_id,
            "target": self.target,
            "state": self.state.value,
            "processed": self.processed,
            "accepted": self.accepted,
            "failed": self.failed,
            "filtered": self.filtered,
            "wildcards": self.wildcards,
            "abandoned": self.abandoned,
            "elapsed": round(self.elapsed, 3),
            "rate": round(self.rate, 2),
            "resumed_from": self.resumed_from,
            "checkpoint_offset": self.checkpoint_offset,
            "wildcard_entries": self.wildcard_entries,
            "filter_reasons": dict(self.filter_reasons),
        }


class ScanSession:
    """
    Owns everything a scan needs for its lifetime: evasion policy, wildcard
    profile, progress tracker and checkpoint file.

    Example:
        >>> session = ScanSession(config, sink=MemorySink())
        >>> session.subscribe(lambda event, data: print(event))
        >>> summary = await session.run()
    """

    def __init__(
        self,
        config: ScanConfig,
        client=None,
        sink=None,
        sleep: Callable = asyncio.sleep,
    ):
        """
        Initialize the session.

        Args:
            config: Validated scan configuration
            client: RequestClient (an AiohttpClient built from config if None)
            sink: ResultSink receiving accepted results
            sleep: Coroutine function used for pre-request delays
        """
        self.config = config
        self.client = client
        self.sink = sink
        self._sleep = sleep

        self.state = SessionState.INITIALIZING
        self.scan_id = f"scan_{datetime.now().strftime('%Y%m%d_%H%M%S')}"

        self.profile: Optional[WildcardProfile] = None
        self.tracker: Optional[ProgressTracker] = None
        self.checkpoint: Optional[ScanCheckpoint] = None
        self._pool: Optional[WorkerPool] = None
        self._cancel_requested = False

        # Observer pattern - callbacks
        self.observers: List[Callable] = []

        self.logger = structlog.get_logger(__name__)

    def subscribe(self, observer: Callable):
        """
        Subscribe to session events.

        Events: state_changed, wildcard_profile_built, result_accepted,
        candidate_completed, candidate_failed.
        """
        self.observers.append(observer)

    def _notify_observers(self, event: str, data: Dict[str, Any]):
        for observer in self.observers:
            try:
                observer(event, data)
            except Exception as e:
                self.logger.error(
                    "observer_error",
                    observer=getattr(observer, "__name__", repr(observer)),
                    error=str(e),
                )

    def _set_state(self, state: SessionState):
        self.logger.info("session_state", scan_id=self.scan_id, old=self.state.value, new=state.value)
        self.state = state
        self._notify_observers("state_changed", {"state": state})

    def cancel(self):
        """
        Request cancellation: stop dispatching, let in-flight requests finish
        within the grace period, then flush a checkpoint.
        """
        if self._cancel_requested:
            return
        self._cancel_requested = True
        self.logger.warning("scan_cancel_requested", scan_id=self.scan_id)
        if self._pool is not None:
            self._pool.stop()

    async def run(self, install_signal_handlers: bool = False) -> SessionSummary:
        """
        Run the session to completion or cancellation.

        Args:
            install_signal_handlers: Turn SIGINT/SIGTERM into cancel()

        Raises:
            SourceError: Wordlist unreadable or resume offset out of range
            ConfigMismatch: Resume checkpoint belongs to another configuration
            CorruptState: Resume checkpoint unreadable or malformed
        """
        config = self.config
        start_time = time.monotonic()

        self.logger.info(
            "scan_started",
            scan_id=self.scan_id,
            target=config.target,
            wordlist=str(config.wordlist),
            threads=config.threads,
        )

        source = load_wordlist(config.wordlist)
        owns_client = self.client is None
        if owns_client:
            from ..http.client import AiohttpClient
            self.client = AiohttpClient.from_config(config)

        handled_signals = self._install_signal_handlers() if install_signal_handlers else []
        try:
            fingerprint = config_fingerprint(config, source.identity())
            resumed_from = self._resume(source, fingerprint)

            policy = EvasionPolicy(config.evasion, static_headers=config.headers)
            self.profile = await self._build_profile(policy)

            state = ScanState(config.checkpoint_path) if config.checkpoint_path else None
            self.tracker = ProgressTracker(
                fingerprint=fingerprint,
                start_offset=source.position(),
                carried=self.checkpoint,
                sink=self.sink,
                state=state,
                checkpoint_every=config.checkpoint_every,
            )
            await self.tracker.flush()

            self._pool = WorkerPool(
                source=source,
                client=self.client,
                policy=policy,
                profile=self.profile,
                chain=FilterChain(config.filters),
                tracker=self.tracker,
                base_url=config.base_url,
                workers=config.threads,
                sleep=self._sleep,
                notify=self._notify_observers,
            )
            if self._cancel_requested:
                self._pool.stop()

            self._set_state(SessionState.RESUMED if resumed_from is not None else SessionState.RUNNING)
            await self._pool.run(grace_period=config.grace_period)

            final_state = SessionState.CANCELLED if self._cancel_requested else SessionState.COMPLETED
            final_checkpoint = await self.tracker.flush() or self.tracker.checkpoint()
            self._set_state(final_state)

        except Exception as e:
            self.logger.error("scan_failed", scan_id=self.scan_id, error=str(e), exc_info=True)
            raise

        finally:
            self._remove_signal_handlers(handled_signals)
            source.close()
            if self.sink is not None:
                self.sink.close()
            if owns_client:
                await self.client.close()

        summary = SessionSummary(
            scan_id=self.scan_id,
            target=config.target,
            state=final_state,
            processed=self.tracker.processed,
            accepted=self.tracker.accepted,
            failed=self.tracker.failed,
            filtered=self.tracker.filtered,
            wildcards=self.tracker.wildcards,
            abandoned=self._pool.abandoned,
            elapsed=time.monotonic() - start_time,
            resumed_from=resumed_from,
            checkpoint_offset=final_checkpoint.offset,
            wildcard_entries=len(self.profile.entries),
            filter_reasons=dict(self.tracker.filter_reasons),
        )

        self.logger.info("scan_complete", **summary.to_dict())
        return summary

    def _resume(self, source, fingerprint: str) -> Optional[int]:
        """Load, verify and apply the resume checkpoint; returns its offset"""
        if self.config.resume_file is None:
            return None

        state = ScanState(self.config.resume_file)
        try:
            checkpoint = state.load()
        except CheckpointNotFound:
            self.logger.warning(
                "checkpoint_not_found",
                path=str(self.config.resume_file),
                message="starting from the beginning",
            )
            return None

        ScanState.verify(checkpoint, fingerprint)
        source.seek(checkpoint.offset)
        self.checkpoint = checkpoint

        self.logger.info(
            "scan_resumed",
            offset=checkpoint.offset,
            processed=checkpoint.processed_count,
            accepted=checkpoint.accepted_count,
        )
        return checkpoint.offset

    async def _build_profile(self, policy: EvasionPolicy) -> WildcardProfile:
        settings = self.config.wildcard
        if not settings.enabled or self._cancel_requested:
            return WildcardProfile(length_tolerance=settings.length_tolerance)

        baseline = WildcardBaseline(
            client=self.client,
            policy=policy,
            base_url=self.config.base_url,
            probes=settings.probes,
            token_length=settings.token_length,
            length_tolerance=settings.length_tolerance,
            sleep=self._sleep,
        )
        profile = await baseline.build()
        self._notify_observers("wildcard_profile_built", {"profile": profile})
        return profile

    def _install_signal_handlers(self) -> list:
        loop = asyncio.get_running_loop()
        installed = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.cancel)
                installed.append(sig)
            except (NotImplementedError, RuntimeError):
                # Not supported on this platform/loop
                pass
        return installed

    def _remove_signal_handlers(self, signals: list):
        if not signals:
            return
        loop = asyncio.get_running_loop()
        for sig in signals:
            loop.remove_signal_handler(sig)

    def get_status(self) -> Dict[str, Any]:
        return {
            "scan_id": self.scan_id,
            "state": self.state.value,
            "progress": self.tracker.get_stats() if self.tracker else {},
        }


async def run(
    config: ScanConfig,
    client=None,
    sink=None,
    install_signal_handlers: bool = False,
) -> SessionSummary:
    """Run a scan session and return its summary"""
    session = ScanSession(config, client=client, sink=sink)
    return await session.run(install_signal_handlers=install_signal_handlers)
