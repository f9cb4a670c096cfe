"""
Shared fixtures: a scripted RequestClient and wordlist/config builders.
"""

import asyncio
from typing import Dict, Iterable, List, Optional, Tuple

import pytest

from dirhound.core.config import ScanConfig
from dirhound.core.errors import TransportError
from dirhound.core.models import ProbeOutcome
from dirhound.http.client import RequestClient


class StubClient(RequestClient):
    """
    RequestClient that answers from a path -> (status, body) table.

    Unknown paths get `default`. Paths in `fail` raise TransportError.
    Every call is recorded as (url, headers).
    """

    def __init__(
        self,
        base_url: str = "https://example.com",
        responses: Optional[Dict[str, Tuple[int, bytes]]] = None,
        default: Tuple[int, bytes] = (404, b"Not Found"),
        fail: Iterable[str] = (),
        latency: float = 0.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.responses = responses or {}
        self.default = default
        self.fail = set(fail)
        self.latency = latency
        self.calls: List[Tuple[str, Dict[str, str]]] = []
        self.closed = False

    def path_of(self, url: str) -> str:
        return url[len(self.base_url) + 1:]

    async def send(self, url, headers):
        self.calls.append((url, dict(headers)))
        await asyncio.sleep(self.latency)

        path = self.path_of(url)
        if path in self.fail:
            raise TransportError(url, "connection refused")

        status, body = self.responses.get(path, self.default)
        return ProbeOutcome.from_body(status, body, elapsed=0.01)

    @property
    def requested_paths(self) -> List[str]:
        return [self.path_of(url) for url, _ in self.calls]

    async def close(self):
        self.closed = True


@pytest.fixture
def stub_client():
    """Factory for StubClient instances"""
    return StubClient


@pytest.fixture
def wordlist(tmp_path):
    """Factory writing a wordlist file and returning its path"""

    def _write(words: Iterable[str], name: str = "words.txt"):
        path = tmp_path / name
        path.write_text("\n".join(words) + "\n", encoding="utf-8")
        return path

    return _write


@pytest.fixture
def make_config(tmp_path):
    """Factory for ScanConfig with test-friendly defaults"""

    def _make(wordlist_path, **overrides):
        values = {
            "target": "https://example.com",
            "wordlist": wordlist_path,
            "threads": 1,
            "grace_period": 1.0,
        }
        values.update(overrides)
        return ScanConfig.create(**values)

    return _make


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: end-to-end tests against a local HTTP server")
