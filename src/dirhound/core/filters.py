"""
Filter Chain - Per-outcome acceptance decision.

Criteria are evaluated in a fixed order and the first failing one rejects
the outcome:

1. wildcard suppression
2. excluded status codes
3. only-success mode (2xx)
4. content length range
5. maximum response time
6. word count range

The chain holds no state, so it is safe to share between workers.
"""

from typing import Optional

from .config import FilterSpec
from .models import ProbeOutcome


class FilterReason:
    """Names of the criteria that can reject an outcome"""
    WILDCARD = "wildcard"
    STATUS = "status"
    NOT_SUCCESS = "not_success"
    SIZE = "size"
    TIME = "time"
    WORDS = "words"


class FilterChain:
    """
    Composable acceptance predicate over probe outcomes.

    Example:
        >>> chain = FilterChain(FilterSpec(exclude_codes={404}, only_success=True))
        >>> chain.accept(outcome, is_wildcard=False)
        True
    """

    def __init__(self, spec: Optional[FilterSpec] = None):
        self.spec = spec or FilterSpec()

    def reason(self, outcome: ProbeOutcome, is_wildcard: bool) -> Optional[str]:
        """
        Name of the first criterion the outcome fails, or None if it passes.
        """
        spec = self.spec

        if spec.suppress_wildcards and is_wildcard:
            return FilterReason.WILDCARD

        if outcome.status in spec.exclude_codes:
            return FilterReason.STATUS

        if spec.only_success and not outcome.is_success:
            return FilterReason.NOT_SUCCESS

        if spec.size_range is not None:
            low, high = spec.size_range
            if not low <= outcome.length <= high:
                return FilterReason.SIZE

        if spec.max_time is not None and outcome.elapsed * 1000 > spec.max_time:
            return FilterReason.TIME

        if spec.word_range is not None:
            low, high = spec.word_range
            if not low <= outcome.word_count <= high:
                return FilterReason.WORDS

        return None

    def accept(self, outcome: ProbeOutcome, is_wildcard: bool) -> bool:
        """True if the outcome passes every configured criterion"""
        return self.reason(outcome, is_wildcard) is None

    def __repr__(self) -> str:
        return f"FilterChain({self.spec!r})"
