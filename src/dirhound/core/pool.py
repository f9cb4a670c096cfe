"""
Worker Pool - Concurrent probing driven by a single coordination point.

ProgressTracker is the only shared mutable state: it hands out candidates
(exactly one worker per candidate), records completions, forwards accepted
results to the sink and keeps the checkpoint watermark. Everything goes
through one asyncio.Lock.

Candidates are dispatched in wordlist order but complete in any order. The
watermark is the lowest index not yet completed; checkpoints store it, so a
resume repeats at most the work that was still in flight or finished out
of order beyond it, and never skips anything.

Design Pattern: Producer-Consumer (shared cursor, N consumers)
"""

import asyncio
from collections import Counter
from typing import Callable, Dict, Optional, Tuple

import structlog

from .errors import TransportError
from .evasion import EvasionPolicy
from .filters import FilterChain, FilterReason
from .models import Candidate, ScanResult
from .state import ScanCheckpoint, ScanState
from .wildcard import WildcardProfile, matches
from .wordlist import WordSource


def build_url(base_url: str, path: str) -> str:
    """Join the target base URL and a candidate path"""
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


class ProgressTracker:
    """
    Synchronized cursor, counters and checkpoint watermark.

    Counters on the tracker (processed, accepted, ...) cover this session.
    Checkpoints add the counts carried over from the checkpoint the session
    resumed from, so the persisted numbers are cumulative.
    """

    def __init__(
        self,
        fingerprint: str,
        start_offset: int = 0,
        carried: Optional[ScanCheckpoint] = None,
        sink=None,
        state: Optional[ScanState] = None,
        checkpoint_every: int = 100,
    ):
        """
        Initialize the tracker.

        Args:
            fingerprint: Configuration fingerprint stored in checkpoints
            start_offset: Index of the first candidate of this session
            carried: Checkpoint being resumed (its counts are carried over)
            sink: ResultSink receiving accepted results
            state: Where periodic checkpoints are written (None disables them)
            checkpoint_every: Completions between periodic checkpoints
        """
        self.fingerprint = fingerprint
        self.start_offset = start_offset
        self.sink = sink
        self.state = state
        self.checkpoint_every = checkpoint_every

        self._lock = asyncio.Lock()
        # Serializes checkpoint writes in snapshot order
        self._write_lock = asyncio.Lock()
        self._write_task: Optional[asyncio.Future] = None

        # Session counters
        self.dispatched = 0
        self.processed = 0
        self.accepted = 0
        self.failed = 0
        self.filtered = 0
        self.wildcards = 0
        self.filter_reasons: Counter = Counter()

        # Watermark bookkeeping: completions above the watermark wait here
        # as (accepted, failed) until every lower index has completed.
        self.watermark = start_offset
        self._completed_ahead: Dict[int, Tuple[bool, bool]] = {}
        self._committed_processed = carried.processed_count if carried else 0
        self._committed_accepted = carried.accepted_count if carried else 0
        self._committed_failed = carried.failed_count if carried else 0
        self._since_checkpoint = 0

        self.logger = structlog.get_logger(__name__)

    async def dispatch(self, source: WordSource) -> Optional[Candidate]:
        """Pull the next candidate; None once the source is exhausted"""
        async with self._lock:
            candidate = source.next()
            if candidate is not None:
                self.dispatched += 1
            return candidate

    async def complete(
        self,
        candidate: Candidate,
        result: Optional[ScanResult] = None,
        accepted: bool = False,
        failed: bool = False,
        reason: Optional[str] = None,
    ):
        """
        Record that a candidate has been fully handled.

        Called exactly once per dispatched candidate, whatever the outcome.
        Accepted results are emitted to the sink while the lock is held, so
        sink writes never interleave. Periodic checkpoints are snapshotted
        under the lock and written outside it.
        """
        snapshot = None
        async with self._lock:
            self.processed += 1
            if failed:
                self.failed += 1
            elif accepted:
                self.accepted += 1
                if self.sink is not None and result is not None:
                    self.sink.emit(result)
            else:
                self.filtered += 1
                if reason:
                    self.filter_reasons[reason] += 1
                    if reason == FilterReason.WILDCARD:
                        self.wildcards += 1

            self._completed_ahead[candidate.index] = (accepted and not failed, failed)
            self._advance_watermark()

            self._since_checkpoint += 1
            if self._since_checkpoint >= self.checkpoint_every:
                snapshot = self._snapshot_locked()

        if snapshot is not None:
            await self._write(snapshot)

    def _advance_watermark(self):
        while self.watermark in self._completed_ahead:
            was_accepted, was_failed = self._completed_ahead.pop(self.watermark)
            self._committed_processed += 1
            self._committed_accepted += int(was_accepted)
            self._committed_failed += int(was_failed)
            self.watermark += 1

    def checkpoint(self) -> ScanCheckpoint:
        """Snapshot of the committed progress"""
        return ScanCheckpoint(
            offset=self.watermark,
            processed_count=self._committed_processed,
            accepted_count=self._committed_accepted,
            failed_count=self._committed_failed,
            config_fingerprint=self.fingerprint,
        )

    def _snapshot_locked(self) -> Optional[ScanCheckpoint]:
        self._since_checkpoint = 0
        if self.state is None:
            return None
        return self.checkpoint()

    async def _write(self, checkpoint: ScanCheckpoint):
        # Entered without suspending after the snapshot, so writes keep snapshot order
        async with self._write_lock:
            previous = self._write_task
            if previous is not None and not previous.done():
                # Left running by a cancelled writer
                await asyncio.wait({previous})
            loop = asyncio.get_running_loop()
            self._write_task = loop.run_in_executor(None, self.state.save, checkpoint)
            await asyncio.shield(self._write_task)

    async def flush(self) -> Optional[ScanCheckpoint]:
        """Write a checkpoint now (no-op without a state file)"""
        async with self._lock:
            checkpoint = self._snapshot_locked()
        if checkpoint is not None:
            await self._write(checkpoint)
        return checkpoint

    @property
    def in_flight(self) -> int:
        return self.dispatched - self.processed

    def get_stats(self) -> dict:
        return {
            "dispatched": self.dispatched,
            "processed": self.processed,
            "accepted": self.accepted,
            "failed": self.failed,
            "filtered": self.filtered,
            "wildcards": self.wildcards,
            "watermark": self.watermark,
            "filter_reasons": dict(self.filter_reasons),
        }


class WorkerPool:
    """
    Fixed number of asyncio workers sharing one candidate source.

    Each worker loops: dispatch -> pre-request delay -> rotated headers ->
    send -> wildcard classification -> filter -> complete. A transport error
    marks the candidate failed and the worker moves on.

    Example:
        >>> pool = WorkerPool(source, client, policy, profile, chain, tracker,
        ...                   base_url="https://example.com", workers=20)
        >>> await pool.run(grace_period=10)
    """

    def __init__(
        self,
        source: WordSource,
        client,
        policy: EvasionPolicy,
        profile: WildcardProfile,
        chain: FilterChain,
        tracker: ProgressTracker,
        base_url: str,
        workers: int = 20,
        sleep: Callable = asyncio.sleep,
        notify: Optional[Callable[[str, dict], None]] = None,
    ):
        self.source = source
        self.client = client
        self.policy = policy
        self.profile = profile
        self.chain = chain
        self.tracker = tracker
        self.base_url = base_url.rstrip("/")
        self.workers = workers
        self._sleep = sleep
        self._notify = notify

        self._stopping = asyncio.Event()
        self._tasks = []
        self._in_flight: Dict[int, Candidate] = {}
        self.abandoned = 0

        self.logger = structlog.get_logger(__name__)

    @property
    def stopping(self) -> bool:
        return self._stopping.is_set()

    def stop(self):
        """Stop dispatching new candidates; in-flight requests continue"""
        if not self._stopping.is_set():
            self.logger.info("pool_stopping", in_flight=len(self._in_flight))
            self._stopping.set()

    def start(self):
        """Spawn the worker tasks"""
        self._tasks = [
            asyncio.create_task(self._worker(i), name=f"dirhound-worker-{i}")
            for i in range(self.workers)
        ]
        self.logger.info("pool_started", workers=self.workers)

    async def run(self, grace_period: float = 10.0):
        """
        Run until the source is exhausted or stop() is called.

        After stop(), in-flight requests get `grace_period` seconds to finish;
        whatever is still running then is cancelled and counted as abandoned.

        Raises:
            Exception: The first unexpected error raised by a worker
        """
        if not self._tasks:
            self.start()

        stopper = asyncio.create_task(self._stopping.wait())
        pending = set(self._tasks)
        try:
            while pending:
                done, pending = await asyncio.wait(
                    pending | {stopper},
                    return_when=asyncio.FIRST_COMPLETED,
                )
                pending.discard(stopper)

                for task in done:
                    if task is stopper or task.cancelled():
                        continue
                    error = task.exception()
                    if error is not None:
                        self.logger.error("worker_crashed", task=task.get_name(), error=str(error))
                        self._stopping.set()
                        await self._drain(pending, grace_period=0)
                        raise error

                if stopper in done:
                    await self._drain(pending, grace_period)
                    return
        finally:
            stopper.cancel()

    async def _drain(self, pending, grace_period: float):
        if pending and grace_period > 0:
            _, pending = await asyncio.wait(pending, timeout=grace_period)

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        self.abandoned = len(self._in_flight)
        if self.abandoned:
            self.logger.warning(
                "requests_abandoned",
                count=self.abandoned,
                indexes=sorted(c.index for c in self._in_flight.values()),
            )

    async def _worker(self, worker_id: int):
        self.logger.debug("worker_started", worker_id=worker_id)

        while not self._stopping.is_set():
            candidate = await self.tracker.dispatch(self.source)
            if candidate is None:
                break

            self._in_flight[worker_id] = candidate
            await self._probe(candidate)
            del self._in_flight[worker_id]

        self.logger.debug("worker_finished", worker_id=worker_id)

    async def _probe(self, candidate: Candidate):
        delay = self.policy.next_delay()
        if delay > 0:
            await self._sleep(delay)

        url = build_url(self.base_url, candidate.path)
        headers = self.policy.next_headers()

        try:
            outcome = await self.client.send(url, headers)
        except TransportError as e:
            self.logger.debug("request_failed", url=url, error=e.reason)
            await self.tracker.complete(candidate, failed=True)
            self._emit("candidate_failed", {"candidate": candidate, "url": url, "error": e.reason})
            return

        self.policy.on_response(outcome.status)

        is_wildcard = matches(self.profile, outcome)
        reason = self.chain.reason(outcome, is_wildcard)
        result = ScanResult(candidate=candidate, url=url, outcome=outcome, wildcard=is_wildcard)

        await self.tracker.complete(
            candidate,
            result=result,
            accepted=reason is None,
            reason=reason,
        )

        if reason is None:
            self.logger.info("result_accepted", url=url, status=outcome.status, length=outcome.length)
            self._emit("result_accepted", {"result": result})
        else:
            self.logger.debug("result_filtered", url=url, status=outcome.status, reason=reason)
        self._emit("candidate_completed", {"result": result, "accepted": reason is None})

    def _emit(self, event: str, data: dict):
        if self._notify is not None:
            self._notify(event, data)
