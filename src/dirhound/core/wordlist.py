"""
WordSource - Lazy, seekable stream of candidates from a wordlist file.

The file is read line by line so arbitrarily large wordlists never have to
fit in memory. Blank lines and lines starting with '#' are skipped and do
not consume an index, so indexes stay stable between a run and its resume.
"""

import hashlib
from pathlib import Path
from typing import Iterator, Optional

import structlog

from .errors import SourceError
from .models import Candidate


class WordSource:
    """
    Streaming wordlist reader with a resumable cursor.

    Example:
        >>> with WordSource("common.txt") as source:
        ...     source.seek(100)
        ...     candidate = source.next()
        ...     print(candidate.index, candidate.path)
    """

    def __init__(self, path, encoding: str = "utf-8"):
        self.path = Path(path)
        self.encoding = encoding
        self._file = None
        self._position = 0
        self._exhausted = False

        self.logger = structlog.get_logger(__name__)

    def open(self) -> "WordSource":
        """Open the backing file and rewind to the first candidate"""
        self.close()
        try:
            self._file = open(self.path, "r", encoding=self.encoding, errors="strict")
        except OSError as e:
            raise SourceError(f"Cannot read wordlist {self.path}: {e}") from e
        self._position = 0
        self._exhausted = False
        return self

    def close(self):
        if self._file is not None:
            self._file.close()
            self._file = None

    def __enter__(self) -> "WordSource":
        if self._file is None:
            self.open()
        return self

    def __exit__(self, *args):
        self.close()

    def _lines(self) -> Iterator[str]:
        try:
            for line in self._file:
                word = line.strip()
                if word and not word.startswith("#"):
                    yield word
        except UnicodeDecodeError as e:
            raise SourceError(f"Wordlist {self.path} is not valid {self.encoding}: {e}") from e
        except OSError as e:
            raise SourceError(f"Error reading wordlist {self.path}: {e}") from e

    def next(self) -> Optional[Candidate]:
        """
        Return the next candidate, or None once the wordlist is exhausted.
        """
        if self._file is None:
            self.open()
        if self._exhausted:
            return None

        for word in self._lines():
            candidate = Candidate(index=self._position, path=word)
            self._position += 1
            return candidate

        self._exhausted = True
        return None

    def seek(self, offset: int):
        """
        Position the cursor so that the next candidate has index `offset`.

        Seeking to exactly the number of entries is allowed and leaves
        nothing to read.

        Raises:
            SourceError: If offset is negative or past the end of the list
        """
        if offset < 0:
            raise SourceError(f"Seek offset must be non-negative, got {offset}")

        self.open()
        skipped = 0
        while skipped < offset:
            if self.next() is None:
                raise SourceError(
                    f"Seek offset {offset} is beyond the end of {self.path} ({skipped} entries)"
                )
            skipped += 1

        self.logger.debug("wordlist_seek", path=str(self.path), offset=offset)

    def position(self) -> int:
        """Index of the next candidate to be produced"""
        return self._position

    def count(self) -> int:
        """Total number of candidates (reads the file once, cursor untouched)"""
        counter = WordSource(self.path, encoding=self.encoding).open()
        try:
            total = 0
            while counter.next() is not None:
                total += 1
            return total
        finally:
            counter.close()

    def identity(self) -> str:
        """
        Content hash of the wordlist, used to tie checkpoints to the file.
        """
        digest = hashlib.sha256()
        try:
            with open(self.path, "rb") as f:
                for chunk in iter(lambda: f.read(1 << 16), b""):
                    digest.update(chunk)
        except OSError as e:
            raise SourceError(f"Cannot read wordlist {self.path}: {e}") from e
        return digest.hexdigest()

    def __repr__(self) -> str:
        return f"WordSource(path={str(self.path)!r}, position={self._position})"


def load_wordlist(path) -> WordSource:
    """
    Open a wordlist for streaming.

    Raises:
        SourceError: If the file does not exist or cannot be opened
    """
    source = WordSource(path)
    if not source.path.is_file():
        raise SourceError(f"Wordlist not found: {source.path}")
    return source.open()
