import bisect
import logging
import random
import threading
import time
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from typing import Dict, Iterable, Iterator, List, NamedTuple, Optional, Tuple

from .corpus import batched
from .tokens import END, START, Token, tokenize

logger = logging.getLogger(__name__)


class EmptyEdgeSetError(AssertionError):
    """A node with no outgoing transitions was sampled. Indicates a construction bug."""


class FrozenEdgeSetError(RuntimeError):
    """A transition was recorded after the edge set was frozen."""


def weighted_choice(cumulative, rng) -> int:
    """
    cumulative: running totals of the weights, last entry is the grand total
    returns the index drawn with probability weight[i] / total
    """
    r = rng.random() * cumulative[-1]
    return bisect.bisect_right(cumulative, r)


class _Snapshot(NamedTuple):
    targets: Tuple["Node", ...]
    weights: Tuple[int, ...]
    cumulative: Tuple[int, ...]


class EdgeSet:
    """
    Weighted outgoing transitions of one node (target node -> count).

    While the chain is being built, `record` may be called from any number of
    threads. `freeze` takes a one-time ordered snapshot (first-insertion order)
    that every later `sample` reads without locking.
    """

    __slots__ = ("_counts", "_lock", "_snapshot")

    def __init__(self):
        self._counts: Dict["Node", int] = {}
        self._lock = threading.Lock()
        self._snapshot: Optional[_Snapshot] = None

    def record(self, target: "Node") -> None:
        with self._lock:
            if self._snapshot is not None:
                raise FrozenEdgeSetError(f"cannot record transition to {target!r} on a frozen edge set")
            self._counts[target] = self._counts.get(target, 0) + 1

    def freeze(self) -> _Snapshot:
        snapshot = self._snapshot
        if snapshot is not None:
            return snapshot

        with self._lock:
            # another thread may have won the race while we waited
            if self._snapshot is None:
                targets = tuple(self._counts)
                weights = tuple(self._counts[t] for t in targets)
                cumulative = []
                accum = 0
                for w in weights:
                    accum += w
                    cumulative.append(accum)
                self._snapshot = _Snapshot(targets, weights, tuple(cumulative))
            return self._snapshot

    @property
    def frozen(self) -> bool:
        return self._snapshot is not None

    def sample(self, rng=random) -> "Node":
        snapshot = self._snapshot or self.freeze()
        if not snapshot.targets:
            raise EmptyEdgeSetError("sampled a node with no outgoing transitions")
        return snapshot.targets[weighted_choice(snapshot.cumulative, rng)]

    def weight(self, target: "Node") -> int:
        with self._lock:
            return self._counts.get(target, 0)

    def items(self) -> List[Tuple["Node", int]]:
        snapshot = self._snapshot
        if snapshot is not None:
            return list(zip(snapshot.targets, snapshot.weights))
        with self._lock:
            return list(self._counts.items())

    def total(self) -> int:
        with self._lock:
            return sum(self._counts.values())

    def __len__(self):
        with self._lock:
            return len(self._counts)


class Node:
    """One vertex of the chain. Shared by the registry and every edge set that points at it."""

    __slots__ = ("token", "edges")

    def __init__(self, token: Token):
        self.token = token
        self.edges = EdgeSet()

    @property
    def text(self) -> Optional[str]:
        return self.token.text

    def __eq__(self, other):
        if not isinstance(other, Node):
            return NotImplemented
        return self.token == other.token

    def __hash__(self):
        return hash(self.token)

    def __repr__(self):
        return f"Node({self.token!r})"


class NodeRegistry:
    """
    Interns word nodes by text. Lock striping keeps concurrent builders from
    serializing on one lock; two threads racing on the same new word both get
    the node the first of them stored.
    """

    def __init__(self, shards: int = 16):
        if shards < 1:
            raise ValueError("shards must be >= 1")
        self._tables: List[Dict[str, Node]] = [{} for _ in range(shards)]
        self._locks = [threading.Lock() for _ in range(shards)]

    def _shard(self, text: str) -> int:
        return hash(text) % len(self._tables)

    def resolve(self, text: str) -> Node:
        i = self._shard(text)
        table = self._tables[i]
        node = table.get(text)
        if node is not None:
            return node

        with self._locks[i]:
            node = table.get(text)
            if node is None:
                node = Node(Token.value(text))
                table[text] = node
            return node

    def lookup(self, text: str) -> Optional[Node]:
        return self._tables[self._shard(text)].get(text)

    def __contains__(self, text):
        return self.lookup(text) is not None

    def __iter__(self) -> Iterator[Node]:
        for i, table in enumerate(self._tables):
            with self._locks[i]:
                nodes = list(table.values())
            yield from nodes

    def __len__(self):
        return sum(len(t) for t in self._tables)


class MarkovChain:
    """
    First-order word chain.

    Build phase: `ingest` / `ingest_lines` (thread-safe).
    Generation phase: `freeze_all` once, then `generate` from any number of threads.
    """

    def __init__(self, registry_shards: int = 16):
        self.start = Node(START)
        self.end = Node(END)
        self.registry = NodeRegistry(shards=registry_shards)
        self._frozen = False

    # -----------------------
    # Construction
    # -----------------------
    def ingest(self, line: str) -> int:
        """
        Thread one corpus line Start -> words -> End.
        Returns the number of transitions recorded (0 for a line with no usable words).
        """
        # reject before interning anything
        if self._frozen or self.start.edges.frozen:
            raise FrozenEdgeSetError("cannot ingest into a frozen chain")

        words = iter(tokenize(line))
        node = self.start
        recorded = 0

        while node is not self.end:
            word = next(words, None)
            next_node = self.end if word is None else self.registry.resolve(word)

            # empty line, don't create a Start -> End edge
            if node is self.start and next_node is self.end:
                break

            node.edges.record(next_node)
            recorded += 1
            node = next_node

        return recorded

    def _ingest_batch(self, lines: List[str]) -> int:
        for line in lines:
            self.ingest(line)
        return len(lines)

    def ingest_lines(
        self,
        lines: Iterable[str],
        workers: int = 1,
        batch_size: int = 256,
        max_pending: Optional[int] = None,
    ) -> int:
        """
        lines: any iterable of corpus lines, read lazily
        workers: thread count; <= 1 ingests in the calling thread
        max_pending: batches in flight at once (default 2 * workers)
        Returns the number of lines consumed.
        """
        started = time.perf_counter()
        count = 0

        if workers <= 1:
            for line in lines:
                self.ingest(line)
                count += 1
        else:
            limit = max_pending or 2 * workers
            pending = set()
            with ThreadPoolExecutor(max_workers=workers) as executor:
                for batch in batched(lines, batch_size):
                    if len(pending) >= limit:
                        done, pending = wait(pending, return_when=FIRST_COMPLETED)
                        for future in done:
                            count += future.result()
                    pending.add(executor.submit(self._ingest_batch, batch))
                for future in wait(pending).done:
                    count += future.result()

        elapsed = time.perf_counter() - started
        logger.info(
            "ingested %d lines with %d worker(s) in %.3fs (%d words)",
            count, max(workers, 1), elapsed, len(self.registry),
        )
        return count

    def freeze_all(self) -> None:
        """Snapshot every edge set so generation never touches a lock."""
        self.start.edges.freeze()
        for node in self.registry:
            node.edges.freeze()
        self._frozen = True
        if not len(self.start.edges):
            logger.warning("chain is empty; generation from Start will fail")

    @property
    def frozen(self) -> bool:
        return self._frozen

    # -----------------------
    # Generation
    # -----------------------
    def lookup(self, seed: Optional[str]) -> Optional[Node]:
        if not seed:
            return None
        seed = seed.strip()
        if not seed:
            return None
        return self.registry.lookup(seed)

    def generate(self, seed: Optional[str] = None, rng=None, max_words: Optional[int] = None) -> str:
        """
        Weighted random walk from the seed word (or Start when the seed is
        missing or unknown) until End is drawn. Every visited word is
        emitted followed by a space.
        """
        if rng is None:
            rng = random.Random()

        node = self.lookup(seed) or self.start
        out = []
        words = 0

        while True:
            next_node = node.edges.sample(rng)

            if node.token.is_value():
                out.append(node.text)
                out.append(" ")
                words += 1

            if next_node is self.end:
                break
            if max_words is not None and words >= max_words:
                break

            node = next_node

        logger.debug("generated %d words (seed=%r)", words, seed)
        return "".join(out)

    def stats(self) -> dict:
        nodes = [self.start, *self.registry]
        return {
            "words": len(nodes) - 1,
            "edges": sum(len(n.edges) for n in nodes),
            "transitions": sum(n.edges.total() for n in nodes),
        }


def build_chain(lines: Iterable[str], workers: int = 1, batch_size: int = 256, registry_shards: int = 16) -> MarkovChain:
    """Ingest every line, then freeze the chain for generation."""
    chain = MarkovChain(registry_shards=registry_shards)
    chain.ingest_lines(lines, workers=workers, batch_size=batch_size)
    chain.freeze_all()
    return chain
