"""
Wildcard Baseline - Recognise server-generated "always succeeds" responses.

Some servers answer every unknown path with the same catch-all page or
redirect, often with a 200 status. Before the scan starts we request a few
random paths that cannot exist and keep their outcomes as a profile. Any
real candidate whose outcome looks like one of those is wildcard noise.

Matching rule: same status code AND (body length within a tolerance OR
identical body signature).
"""

import asyncio
import math
import random
import string
from dataclasses import dataclass
from typing import Optional, Tuple

import structlog

from .errors import TransportError
from .evasion import EvasionPolicy
from .models import ProbeOutcome


# Probes answered with these codes show the server handles unknown paths
# normally, so they are not recorded.
NOT_FOUND_CODES = frozenset({404, 410})

PROBE_EXTENSIONS: Tuple[str, ...] = (".php", ".html", ".asp", ".txt")

DEFAULT_LENGTH_TOLERANCE = 0.05


@dataclass(frozen=True)
class WildcardProfile:
    """Reference outcomes gathered from nonexistent paths"""
    entries: Tuple[ProbeOutcome, ...] = ()
    length_tolerance: float = DEFAULT_LENGTH_TOLERANCE
    probes_sent: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.entries

    def to_dict(self) -> dict:
        return {
            "entries": [
                {"status": e.status, "length": e.length, "signature": e.signature[:16]}
                for e in self.entries
            ],
            "length_tolerance": self.length_tolerance,
            "probes_sent": self.probes_sent,
        }


def matches(profile: WildcardProfile, outcome: ProbeOutcome) -> bool:
    """
    Check whether an outcome is wildcard noise.

    Args:
        profile: Baseline built before the scan
        outcome: Outcome of a real candidate

    Returns:
        True if any profile entry has the same status and either a length
        within tolerance or the same body signature
    """
    for entry in profile.entries:
        if entry.status != outcome.status:
            continue
        if entry.signature == outcome.signature:
            return True
        window = math.ceil(entry.length * profile.length_tolerance)
        if abs(outcome.length - entry.length) <= window:
            return True
    return False


class WildcardBaseline:
    """
    Builds the wildcard profile and classifies outcomes against it.

    Probes go through the same client and evasion policy as the real scan
    so they look identical to the server.

    Example:
        >>> baseline = WildcardBaseline(client, policy, "https://example.com")
        >>> profile = await baseline.build()
        >>> baseline.matches(profile, outcome)
    """

    def __init__(
        self,
        client,
        policy: EvasionPolicy,
        base_url: str,
        probes: int = 4,
        token_length: int = 16,
        length_tolerance: float = DEFAULT_LENGTH_TOLERANCE,
        sleep=None,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize the baseline builder.

        Args:
            client: RequestClient used for the probes
            policy: Evasion policy applied to each probe
            base_url: Target base URL
            probes: Number of nonexistent paths to request
            token_length: Length of the random path tokens
            length_tolerance: Fraction of the reference length accepted as "same size"
            sleep: Coroutine function used for delays (asyncio.sleep if None)
            rng: Random generator for the probe tokens
        """
        self.client = client
        self.policy = policy
        self.base_url = base_url.rstrip("/")
        self.probes = probes
        self.token_length = token_length
        self.length_tolerance = length_tolerance
        self._sleep = sleep
        self._rng = rng or random.Random()

        self.logger = structlog.get_logger(__name__)

    def random_path(self, with_extension: bool = False) -> str:
        """A random token that is virtually guaranteed not to exist"""
        alphabet = string.ascii_lowercase + string.digits
        token = "".join(self._rng.choice(alphabet) for _ in range(self.token_length))
        if with_extension:
            token += self._rng.choice(PROBE_EXTENSIONS)
        return token

    async def build(self) -> WildcardProfile:
        """
        Probe random paths and record the outcomes.

        Transport failures are skipped; if every probe fails the profile is
        empty and nothing will ever be classified as wildcard.
        """
        sleep = self._sleep or asyncio.sleep
        entries = []

        for i in range(self.probes):
            path = self.random_path(with_extension=bool(i % 2))
            url = f"{self.base_url}/{path}"

            delay = self.policy.next_delay()
            if delay > 0:
                await sleep(delay)

            try:
                outcome = await self.client.send(url, self.policy.next_headers())
            except TransportError as e:
                self.logger.warning("wildcard_probe_failed", url=url, error=e.reason)
                continue

            self.policy.on_response(outcome.status)

            self.logger.debug(
                "wildcard_probe",
                url=url,
                status=outcome.status,
                length=outcome.length,
            )

            if outcome.status in NOT_FOUND_CODES:
                continue
            entries.append(outcome)

        profile = WildcardProfile(
            entries=tuple(entries),
            length_tolerance=self.length_tolerance,
            probes_sent=self.probes,
        )

        if profile.is_empty:
            self.logger.info("wildcard_not_detected", probes=self.probes)
        else:
            self.logger.warning(
                "wildcard_detected",
                entries=len(entries),
                statuses=sorted({e.status for e in entries}),
            )

        return profile

    def matches(self, profile: WildcardProfile, outcome: ProbeOutcome) -> bool:
        return matches(profile, outcome)
