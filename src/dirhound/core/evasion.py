"""
Evasion Policy - Per-request header rotation and request pacing.

This module decides, for every request, which headers to send and how long
to pause beforehand. It is shared by all workers.

Features:
1. User-Agent rotation from a configured pool
2. Spoofed client IP headers (X-Forwarded-For, X-Real-IP, True-Client-IP)
3. Optional browser-like Referer / Accept-* headers
4. Uniform random delay in [delay_min, delay_max]
5. Optional back-off that grows on 429 responses and resets on success
"""

import random
from typing import Dict, Optional, Tuple

import structlog

from .config import DEFAULT_USER_AGENT, EvasionConfig


IP_HEADERS: Tuple[str, ...] = ("X-Forwarded-For", "X-Real-IP", "True-Client-IP")

REFERERS: Tuple[str, ...] = (
    "https://www.google.com/",
    "https://www.bing.com/",
    "https://duckduckgo.com/",
    "https://github.com/",
)

ACCEPT_LANGUAGES: Tuple[str, ...] = (
    "en-US,en;q=0.9",
    "en-GB,en;q=0.8",
    "fr-FR,fr;q=0.7",
    "de-DE,de;q=0.6",
    "es-ES,es;q=0.5",
)

ACCEPT_ENCODINGS: Tuple[str, ...] = ("gzip, deflate, br", "gzip, deflate", "br", "*")

BROWSER_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"


class EvasionPolicy:
    """
    Computes header overrides and pre-request delays.

    The rotation pools are immutable tuples and selection draws from a
    private random generator seeded from OS entropy, so concurrent workers
    never share mutable pool state and sequences differ between runs.

    Example:
        >>> policy = EvasionPolicy(EvasionConfig(rotate_user_agent=True, delay_min=100, delay_max=300))
        >>> headers = policy.next_headers()
        >>> await asyncio.sleep(policy.next_delay())
    """

    def __init__(
        self,
        config: Optional[EvasionConfig] = None,
        static_headers: Optional[Dict[str, str]] = None,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize the policy.

        Args:
            config: Evasion configuration (uses defaults if None)
            static_headers: Custom headers sent with every request
            rng: Random generator (a fresh OS-seeded one if None)
        """
        self.config = config or EvasionConfig()
        self.static_headers = dict(static_headers or {})
        self.user_agents = tuple(ua for ua in self.config.user_agents if ua)
        self.spoof_ips = tuple(self.config.spoof_ips)
        self._rng = rng or random.Random()

        # Extra delay in milliseconds, raised on 429 when back-off is enabled
        self.backoff = 0

        self.logger = structlog.get_logger(__name__)

        self.logger.debug(
            "evasion_policy_initialized",
            rotate_user_agent=self.config.rotate_user_agent,
            rotate_ip_headers=self.config.rotate_ip_headers,
            user_agents=len(self.user_agents),
            delay_min=self.config.delay_min,
            delay_max=self.config.delay_max,
        )

    @property
    def rotating(self) -> bool:
        return (
            self.config.rotate_user_agent
            or self.config.rotate_ip_headers
            or self.config.browser_headers
        )

    def next_headers(self) -> Dict[str, str]:
        """
        Headers for the next request.

        Returns a copy of the static headers when no rotation is enabled.
        """
        headers = dict(self.static_headers)
        if not self.rotating:
            return headers

        if self.config.rotate_user_agent:
            headers["User-Agent"] = self.random_user_agent()

        if self.config.rotate_ip_headers:
            spoofed_ip = self.random_ip()
            for name in IP_HEADERS:
                headers[name] = spoofed_ip

        if self.config.browser_headers:
            headers.setdefault("Accept", BROWSER_ACCEPT)
            headers["Referer"] = self._rng.choice(REFERERS)
            headers["Accept-Language"] = self._rng.choice(ACCEPT_LANGUAGES)
            headers["Accept-Encoding"] = self._rng.choice(ACCEPT_ENCODINGS)
            headers.setdefault("Upgrade-Insecure-Requests", "1")

        return headers

    def next_delay(self) -> float:
        """
        Pause before the next request, in seconds.

        Zero when no delay is configured, otherwise uniform in
        [delay_min, delay_max] plus the current back-off.
        """
        if self.config.delay_max == 0 and self.backoff == 0:
            return 0.0

        if self.config.delay_max > self.config.delay_min:
            delay_ms = self._rng.uniform(self.config.delay_min, self.config.delay_max)
        else:
            delay_ms = float(self.config.delay_min)

        return (delay_ms + self.backoff) / 1000.0

    def on_response(self, status: int):
        """
        Feed a response status into the back-off.

        A 429 raises the extra delay by backoff_step (up to backoff_max);
        a 2xx resets it.
        """
        if not self.config.backoff_on_429:
            return

        if status == 429:
            old_backoff = self.backoff
            self.backoff = min(self.config.backoff_max, self.backoff + self.config.backoff_step)
            if self.backoff != old_backoff:
                self.logger.warning(
                    "rate_limit_hit",
                    status_code=429,
                    old_backoff=f"{old_backoff}ms",
                    new_backoff=f"{self.backoff}ms",
                )
        elif 200 <= status < 300 and self.backoff:
            self.logger.info("rate_limit_backoff_reset", old_backoff=f"{self.backoff}ms")
            self.backoff = 0

    def random_user_agent(self) -> str:
        if not self.user_agents:
            return DEFAULT_USER_AGENT
        return self._rng.choice(self.user_agents)

    def random_ip(self) -> str:
        if self.spoof_ips:
            return self._rng.choice(self.spoof_ips)
        rng = self._rng
        return (
            f"{rng.randint(1, 254)}.{rng.randint(0, 255)}."
            f"{rng.randint(0, 255)}.{rng.randint(1, 254)}"
        )

    def reset(self):
        """Clear the back-off"""
        self.backoff = 0

    def get_stats(self) -> dict:
        return {
            "backoff": f"{self.backoff}ms",
            "user_agents": len(self.user_agents),
            "spoof_ips": len(self.spoof_ips),
            "config": {
                "delay_min": self.config.delay_min,
                "delay_max": self.config.delay_max,
            },
        }
