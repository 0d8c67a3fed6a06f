import argparse
import logging
import random
import sys
import time

import yaml
from pydantic import ValidationError

from .chain_model import build_chain
from .config import load_config, setup_logging
from .corpus import read_lines

logger = logging.getLogger(__name__)


def positive_int(value: str) -> int:
    n = int(value)
    if n < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1, got {n}")
    return n


def interactive_loop(chain, stdin=None, stdout=None, rng=None) -> int:
    """
    One seed word per input line; blank line means start from the beginning.
    Stops at EOF. Returns the number of generations served.
    """
    stdin = sys.stdin if stdin is None else stdin
    stdout = sys.stdout if stdout is None else stdout
    rng = rng or random.Random()
    served = 0
    for line in stdin:
        started = time.perf_counter()
        result = chain.generate(line.strip(), rng=rng)
        elapsed = time.perf_counter() - started

        stdout.write(f"output: {result}\n")
        stdout.flush()
        logger.info("gen took %.6fs", elapsed)
        served += 1
    return served


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Build a word Markov chain and generate text from it.")
    parser.add_argument("corpus", nargs="?", default=None, help="corpus file, one sequence per line (default ./data.txt)")
    parser.add_argument("--config", default=None, help="YAML config file")
    parser.add_argument("--workers", type=positive_int, default=None, help="ingestion threads")
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except (OSError, yaml.YAMLError, ValidationError) as e:
        print(f"invalid configuration: {e}", file=sys.stderr)
        return 1
    setup_logging(config.log_level)

    corpus = args.corpus or config.corpus_path or "./data.txt"
    workers = args.workers if args.workers is not None else config.workers

    started = time.perf_counter()
    try:
        chain = build_chain(
            read_lines(corpus),
            workers=workers,
            batch_size=config.batch_size,
            registry_shards=config.registry_shards,
        )
    except FileNotFoundError:
        logger.error("corpus file not found: %s", corpus)
        return 1
    logger.info("took %.3fs to create chain", time.perf_counter() - started)

    interactive_loop(chain)
    return 0


if __name__ == "__main__":
    sys.exit(main())
