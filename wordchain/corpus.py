from itertools import islice
from pathlib import Path
from typing import Iterable, Iterator, List

DEFAULT_CORPUS = [
    "The Count of Monte Cristo is a novel written by Alexandre Dumas",
    "It tells the story of a sailor who is falsely imprisoned",
    "The sailor escapes and seeks revenge on the men who betrayed him",
    "A novel is a long story written in prose",
]


def read_lines(path) -> Iterator[str]:
    """
    Stream a corpus file one line at a time, newline stripped.
    Undecodable bytes are replaced rather than aborting the build.
    """
    with open(Path(path), "r", encoding="utf-8", errors="replace") as f:
        for line in f:
            yield line.rstrip("\n")


def batched(lines: Iterable[str], size: int) -> Iterator[List[str]]:
    if size < 1:
        raise ValueError("batch size must be >= 1")
    it = iter(lines)
    while True:
        batch = list(islice(it, size))
        if not batch:
            return
        yield batch
