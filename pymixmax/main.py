"""
pymixmax — CLI Entry Point

Usage:
    # Print uniforms from an LCG-seeded generator
    python -m pymixmax --generate 10 --n 256 --seed 12345

    # Print uniforms from a skip-ahead substream
    python -m pymixmax --generate 10 --stream-id 0 0 7 3 \
                       --skip-table-dir /path/to/tables

    # Dump / restore the state in the text format
    python -m pymixmax --dump-state --seed 42 --state-out state.txt
    python -m pymixmax --generate 5 --state-in state.txt

    # Benchmark mode
    python -m pymixmax --benchmark --n 256
"""

import argparse
import logging
import sys
import time

from .errors import MixMaxError
from .generator import MixMaxGenerator
from .persist.state_text import dumps
from .skip.bigskip import BACKENDS
from .skip.tables import SkipTableRegistry


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="pymixmax — MIXMAX matrix random number generator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Generate:   python -m pymixmax --generate 10 --seed 12345
  Substream:  python -m pymixmax --generate 10 --stream-id 0 0 1 2
  Benchmark:  python -m pymixmax --benchmark --n 256
        """,
    )

    # Mode selection
    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument(
        "--generate", type=int, metavar="COUNT",
        help="Print COUNT uniform deviates, one per line",
    )
    mode.add_argument(
        "--dump-state", action="store_true",
        help="Print the generator state in the text format",
    )
    mode.add_argument(
        "--benchmark", action="store_true",
        help="Measure generation and skip-ahead throughput",
    )

    # Generator config
    parser.add_argument(
        "--n", type=int, default=256,
        help="Vector size (default: 256)",
    )
    parser.add_argument(
        "--seed", type=int, default=1,
        help="Nonzero 64-bit LCG seed (default: 1)",
    )
    parser.add_argument(
        "--stream-id", type=int, nargs=4, metavar=("CLUSTER", "MACHINE", "RUN", "STREAM"),
        help="Seed the substream with this hierarchical ID instead of --seed",
    )
    parser.add_argument(
        "--require-skip", action="store_true",
        help="Fail instead of falling back when no skip table is available",
    )
    parser.add_argument(
        "--skip-number", type=int, default=2,
        help="Extra raw iterations per refill (default: 2)",
    )
    parser.add_argument(
        "--backend", choices=BACKENDS, default="numpy",
        help="Skip-ahead kernel (default: numpy)",
    )
    parser.add_argument(
        "--skip-table-dir", type=str, default=None,
        help="Directory holding mixmax_skip_N<n>.{npy,icc,c} tables",
    )
    parser.add_argument(
        "--state-in", type=str, default=None,
        help="Restore the generator state from this file",
    )
    parser.add_argument(
        "--state-out", type=str, default=None,
        help="Save the final generator state to this file",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true",
        help="Verbose debug output",
    )

    return parser.parse_args(argv)


def build_generator(args: argparse.Namespace) -> MixMaxGenerator:
    """Create and seed a generator from parsed arguments."""
    gen = MixMaxGenerator(
        n=args.n,
        seed=args.seed,
        skip_number=args.skip_number,
        backend=args.backend,
        skip_tables=SkipTableRegistry(args.skip_table_dir),
    )
    if args.state_in:
        gen.load_state(args.state_in)
    elif args.stream_id:
        gen.seed_unique_stream(*args.stream_id, require_skip=args.require_skip)
    return gen


def run_benchmark(gen: MixMaxGenerator, count: int = 1_000_000):
    """Time single draws, bulk fills and one skip-ahead."""
    logger = logging.getLogger("benchmark")

    logger.info("=" * 60)
    logger.info("  pymixmax — Benchmark Mode")
    logger.info(f"  N: {gen.n}")
    logger.info(f"  Skip number: {gen.skip_number}")
    logger.info("=" * 60)

    single = max(1, count // 10)
    t0 = time.perf_counter()
    for _ in range(single):
        gen.next_uniform()
    t1 = time.perf_counter()
    logger.info(f"next_uniform : {single / (t1 - t0):,.0f} values/s")

    t0 = time.perf_counter()
    gen.fill_uniform(count)
    t1 = time.perf_counter()
    logger.info(f"fill_uniform : {count / (t1 - t0):,.0f} values/s")

    t0 = time.perf_counter()
    guaranteed = gen.seed_unique_stream(0, 0, 0, 1)
    t1 = time.perf_counter()
    kind = "skip-ahead" if guaranteed else "fallback seeding"
    logger.info(f"stream seed  : {(t1 - t0) * 1000:.1f}ms ({kind})")
    logger.info("Benchmark complete")


def main(argv=None):
    args = parse_args(argv)
    setup_logging(args.verbose)
    logger = logging.getLogger("pymixmax")

    try:
        gen = build_generator(args)

        if args.benchmark:
            run_benchmark(gen)
        elif args.dump_state:
            sys.stdout.write(dumps(gen.state))
        else:
            for _ in range(args.generate):
                print(repr(gen.next_uniform()))

        if args.state_out:
            gen.save_state(args.state_out)
    except (MixMaxError, OSError) as exc:
        logger.error(str(exc))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
