"""
Result sinks - Receivers for accepted results.

The engine calls emit() once per accepted result, serialized by the
progress tracker. Results arrive in completion order, not wordlist order;
sinks that need ordering sort on close (see MemorySink.sorted()).
"""

from abc import ABC, abstractmethod
from typing import List

from rich.console import Console
from rich.text import Text

from ..core.models import ScanResult


class ResultSink(ABC):
    """Abstract receiver for accepted results"""

    @abstractmethod
    def emit(self, result: ScanResult):
        pass

    def close(self):
        pass


class MemorySink(ResultSink):
    """Keeps every accepted result in memory"""

    def __init__(self):
        self.results: List[ScanResult] = []

    def emit(self, result: ScanResult):
        self.results.append(result)

    def sorted(self) -> List[ScanResult]:
        """Results in wordlist order"""
        return sorted(self.results, key=lambda r: r.candidate.index)

    def paths(self) -> List[str]:
        return [r.path for r in self.sorted()]

    def __len__(self) -> int:
        return len(self.results)


class ConsoleSink(ResultSink):
    """
    Prints accepted results with rich.

    Example output:
        admin: 200 [1534B] [42ms] ✓
        backup: 403
    """

    def __init__(
        self,
        console: Console,
        show_content_length: bool = False,
        show_response_time: bool = False,
    ):
        self.console = console
        self.show_content_length = show_content_length
        self.show_response_time = show_response_time

    def format(self, result: ScanResult) -> Text:
        outcome = result.outcome
        success = outcome.is_success
        line = Text()
        line.append(result.path, style="bold green" if success else "bold")
        line.append(": ")
        line.append(str(outcome.status), style=status_style(outcome.status))

        if self.show_content_length:
            line.append(f" [{outcome.length}B]", style="cyan")
        if self.show_response_time:
            line.append(f" [{int(outcome.elapsed * 1000)}ms]", style="yellow")
        if success:
            line.append(" ✓", style="bold green")
        return line

    def emit(self, result: ScanResult):
        self.console.print(self.format(result))


class MultiSink(ResultSink):
    """Fans results out to several sinks"""

    def __init__(self, *sinks: ResultSink):
        self.sinks = list(sinks)

    def emit(self, result: ScanResult):
        for sink in self.sinks:
            sink.emit(result)

    def close(self):
        for sink in self.sinks:
            sink.close()


def status_style(status: int) -> str:
    if 200 <= status < 300:
        return "green"
    if 300 <= status < 400:
        return "blue"
    if status in (401, 403):
        return "yellow"
    return "red"
