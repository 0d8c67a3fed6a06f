import random
from collections import Counter

import pytest

from wordchain.chain_model import (
    EdgeSet,
    EmptyEdgeSetError,
    FrozenEdgeSetError,
    MarkovChain,
    Node,
    build_chain,
    weighted_choice,
)
from wordchain.tokens import Token


def edge_weights(node):
    return {target.token: weight for target, weight in node.edges.items()}


def word(text):
    return Token.value(text)


# -----------------------
# Construction
# -----------------------
def test_sentinel_placement():
    chain = MarkovChain()
    assert chain.ingest("a b") == 3

    a = chain.registry.lookup("a")
    b = chain.registry.lookup("b")
    assert edge_weights(chain.start) == {word("a"): 1}
    assert edge_weights(a) == {word("b"): 1}
    assert edge_weights(b) == {chain.end.token: 1}


def test_repetition_accumulates_weight():
    chain = MarkovChain()
    chain.ingest("a b")
    chain.ingest("a b")

    a = chain.registry.lookup("a")
    b = chain.registry.lookup("b")
    assert chain.start.edges.weight(a) == 2
    assert a.edges.weight(b) == 2
    assert b.edges.weight(chain.end) == 2


def test_token_filtering():
    chain = MarkovChain()
    chain.ingest("a! b c#1")

    assert "a!" not in chain.registry
    assert "c#1" not in chain.registry
    b = chain.registry.lookup("b")
    assert edge_weights(chain.start) == {word("b"): 1}
    assert edge_weights(b) == {chain.end.token: 1}


@pytest.mark.parametrize("line", ["", "   ", "!!! ??", "x# y$"])
def test_empty_line_records_nothing(line):
    chain = MarkovChain()
    assert chain.ingest(line) == 0
    assert len(chain.start.edges) == 0
    assert chain.start.edges.weight(chain.end) == 0


def test_repeated_word_is_one_shared_node():
    chain = MarkovChain()
    chain.ingest("a b")
    chain.ingest("b a")

    a = chain.registry.lookup("a")
    first = chain.start.edges.items()[0][0]
    assert first is a
    b = chain.registry.lookup("b")
    assert a.edges.items()[0][0] is b
    assert b.edges.weight(a) == 1
    assert b.edges.weight(chain.end) == 1


def test_self_transition():
    chain = MarkovChain()
    chain.ingest("go go go")
    go = chain.registry.lookup("go")
    assert go.edges.weight(go) == 2
    assert go.edges.weight(chain.end) == 1


def test_stats():
    chain = MarkovChain()
    chain.ingest("a b")
    chain.ingest("a c")
    assert chain.stats() == {"words": 3, "edges": 5, "transitions": 6}


def test_ingest_after_freeze_is_an_error():
    chain = build_chain(["a b"])
    assert chain.frozen
    with pytest.raises(FrozenEdgeSetError):
        chain.ingest("a b")


# -----------------------
# EdgeSet
# -----------------------
def test_freeze_keeps_first_insertion_order():
    edges = EdgeSet()
    x, y = Node(word("x")), Node(word("y"))
    edges.record(y)
    edges.record(x)
    edges.record(y)

    snapshot = edges.freeze()
    assert snapshot.targets == (y, x)
    assert snapshot.weights == (2, 1)
    assert snapshot.cumulative == (2, 3)
    assert edges.items() == [(y, 2), (x, 1)]


def test_freeze_is_idempotent():
    edges = EdgeSet()
    edges.record(Node(word("x")))
    assert edges.freeze() is edges.freeze()
    assert edges.frozen


def test_record_after_freeze_raises():
    edges = EdgeSet()
    edges.record(Node(word("x")))
    edges.freeze()
    with pytest.raises(FrozenEdgeSetError):
        edges.record(Node(word("y")))


def test_sample_empty_edge_set_is_a_defect():
    edges = EdgeSet()
    with pytest.raises(EmptyEdgeSetError):
        edges.sample(random.Random(0))
    assert issubclass(EmptyEdgeSetError, AssertionError)


def test_sample_freezes_lazily():
    edges = EdgeSet()
    x = Node(word("x"))
    edges.record(x)
    assert not edges.frozen
    assert edges.sample(random.Random(0)) is x
    assert edges.frozen


def test_weighted_sampling_fidelity():
    edges = EdgeSet()
    x, y = Node(word("x")), Node(word("y"))
    edges.record(x)
    for _ in range(3):
        edges.record(y)

    rng = random.Random(1234)
    trials = 40000
    counts = Counter(edges.sample(rng) for _ in range(trials))
    assert counts[x] + counts[y] == trials
    assert counts[y] / trials == pytest.approx(0.75, abs=0.02)


class _FixedRandom:
    def __init__(self, value):
        self.value = value

    def random(self):
        return self.value


def test_weighted_choice_boundaries():
    cumulative = (1, 4)
    assert weighted_choice(cumulative, _FixedRandom(0.0)) == 0
    assert weighted_choice(cumulative, _FixedRandom(0.24)) == 0
    assert weighted_choice(cumulative, _FixedRandom(0.25)) == 1
    assert weighted_choice(cumulative, _FixedRandom(0.999999)) == 1


# -----------------------
# Generation
# -----------------------
def test_generate_from_start():
    chain = build_chain(["a b"])
    assert chain.generate() == "a b "
    assert chain.generate("") == "a b "
    assert chain.generate("   ") == "a b "


def test_generate_from_seed():
    chain = build_chain(["a b c"])
    assert chain.generate("b") == "b c "
    assert chain.generate("  b \n") == "b c "


def test_generate_from_word_whose_only_edge_is_end():
    chain = build_chain(["a b"])
    assert chain.generate("b") == "b "


def test_unknown_seed_falls_back_to_start():
    chain = build_chain(["the cat sat", "the dog ran", "a cat ran"])
    for seed in range(20):
        assert chain.generate("zebra", rng=random.Random(seed)) == chain.generate(None, rng=random.Random(seed))


def test_generation_terminates_on_cycles():
    chain = build_chain(["a b a b a", "b a b"])
    rng = random.Random(99)
    for _ in range(200):
        text = chain.generate(rng=rng)
        assert text.endswith(" ")
        assert set(text.split()) <= {"a", "b"}


def test_max_words_caps_the_walk():
    chain = build_chain(["a b c d e"])
    assert chain.generate(max_words=2) == "a b "
    assert chain.generate("c", max_words=1) == "c "
    assert chain.generate(max_words=10) == "a b c d e "


def test_generate_on_empty_chain_is_a_defect():
    chain = build_chain(["", "?!"])
    with pytest.raises(EmptyEdgeSetError):
        chain.generate()


def test_rejected_ingest_leaves_no_new_word():
    chain = build_chain(["a b"])
    with pytest.raises(FrozenEdgeSetError):
        chain.ingest("zebra")

    assert chain.registry.lookup("zebra") is None
    assert chain.stats()["words"] == 2
    assert chain.generate("zebra") == "a b "
