import argparse
import logging
import sys

from pipesim.Config import load_config
from pipesim.Decoder import encode, parse_words
from pipesim.Errors import SimulatorError
from pipesim.Simulator import Simulator

logger = logging.getLogger(__name__)


def _sum_program():
    # a[0..7] = 1..8 at address 200, then R2 = sum(a), stored at 216
    program = [encode("MOVI", 10, 0, 200)]
    for k in range(8):
        program += [encode("MOVI", 1, 0, k + 1), encode("STR", 1, 10, k)]
    program.append(encode("MOVI", 2, 0, 0))
    for k in range(8):
        program += [encode("LOAD", 3, 10, k), encode("ADD", 2, 2, 3)]
    program.append(encode("STR", 2, 10, 16))
    return program


PROGRAMS = {
    "add": [
        encode("MOVI", 1, 0, 5),
        encode("MOVI", 2, 0, 3),
        encode("ADD", 3, 1, 2),
    ],
    "store-load": [
        encode("MOVI", 1, 0, 100),
        encode("STR", 1, 1, 0),
        encode("LOAD", 2, 1, 0),
    ],
    "repeated-load": [
        encode("MOVI", 1, 0, 42),
        encode("MOVI", 2, 0, 200),
        encode("STR", 1, 2, 0),
        encode("LOAD", 3, 2, 0),
        encode("LOAD", 4, 2, 0),
        encode("LOAD", 5, 2, 1),
    ],
    "sum": _sum_program(),
}


def run_program(words, config, pipelined=True, cache=True):
    sim = Simulator(config=config)
    sim.set_pipelined(pipelined)
    sim.set_cache_enabled(cache)
    sim.load_program(words)
    sim.run()
    return sim


def print_results(name, sim):
    stats = sim.get_performance_stats()
    registers = sim.get_registers()

    print(f"\n=== Simulation Results ({name}) ===")
    for row in range(0, len(registers), 8):
        print("  " + "  ".join(f"R{i:<2}={registers[i]:<6}" for i in range(row, row + 8)))

    print("\n=== Performance Metrics ===")
    print(f"Clock cycles      : {stats['cycles']}")
    print(f"Instructions      : {stats['instructions']}")
    print(f"Stalls            : {stats['stalls']}")
    print(f"IPC               : {stats['ipc']:.3f}")
    print(f"Cache hit rate    : {stats['hitRate']:.3f} "
          f"({stats['cacheHits']} hits, {stats['cacheMisses']} misses)")
    print(f"Forced completions: {stats['forcedCompletions']}")


def build_parser():
    parser = argparse.ArgumentParser(prog="pipesim",
                                     description="Pipelined CPU with a direct-mapped cache")
    parser.add_argument("program", nargs="?", default="add", choices=sorted(PROGRAMS),
                        help="built-in demo program (default: add)")
    parser.add_argument("--words", nargs="+", metavar="WORD",
                        help="run these instruction words instead, e.g. 0x01010005")
    parser.add_argument("--config", help="YAML file overriding config.yaml")
    parser.add_argument("--serial", action="store_true", help="run without the pipeline")
    parser.add_argument("--no-cache", action="store_true", help="bypass the cache")
    parser.add_argument("--compare", action="store_true",
                        help="run pipelined and serial and compare them")
    parser.add_argument("--plot", action="store_true", help="show charts with matplotlib")
    parser.add_argument("--log-level", default="WARNING",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(stream=sys.stdout, level=args.log_level,
                        format="%(levelname)s %(name)s: %(message)s")

    try:
        config = load_config(args.config)
        words = parse_words(args.words) if args.words else PROGRAMS[args.program]
    except (SimulatorError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    cache = not args.no_cache
    if args.compare:
        runs = {
            "pipelined": run_program(words, config, pipelined=True, cache=cache),
            "serial":    run_program(words, config, pipelined=False, cache=cache),
        }
        for name, sim in runs.items():
            print_results(name, sim)

        same = runs["pipelined"].get_registers() == runs["serial"].get_registers()
        print(f"\nRegister files match: {same}")
        if args.plot:
            from pipesim.plots import plot_comparison
            plot_comparison({name: sim.get_performance_stats() for name, sim in runs.items()},
                            show=True)
        return 0

    sim = run_program(words, config, pipelined=not args.serial, cache=cache)
    print_results("serial" if args.serial else "pipelined", sim)
    if args.plot:
        from pipesim.plots import plot_registers
        plot_registers(sim.get_registers(), show=True)
    return 0


if __name__ == "__main__":
    sys.exit(main())
