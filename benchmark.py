#!/usr/bin/env python3
"""
Benchmark runner for the backtracking engine vs Python's re.

Inputs are YAML string lists from test-harness/inputs/, optionally
repeated to build larger texts.

Orchestrates:
1. Loading and sizing the benchmark inputs
2. Compiling each pattern with both engines
3. Timing findall() over every input string
4. Printing a summary and optionally saving JSON results
"""

import argparse
import json
import sys
import time
from pathlib import Path

from backtrack_regex import CompileError, MatchError
from harness_common import (
    HARNESS_DIR, compile_engine, compile_reference, load_test_inputs, load_yaml,
)

# Cache for loaded inputs
_input_cache: dict[str, list[str]] = {}


def load_benchmark_input(input_config: dict, input_name: str) -> list[str]:
    """Load an input file and build benchmark texts from it.

    Args:
        input_config: Configuration dict with `file` (input file name without
            extension), `repeat` (default 1) and `join` (default "\\n")
        input_name: Name of this input (for caching and logging)

    Returns:
        List of texts for benchmarking
    """
    # Check cache first
    if input_name in _input_cache:
        print(f"Using cached input: {input_name}")
        return _input_cache[input_name]

    file_name = input_config.get("file")
    if not file_name:
        print(f"Error: Input '{input_name}' missing 'file' field", file=sys.stderr)
        return []

    repeat = input_config.get("repeat", 1)
    joiner = input_config.get("join", "\n")

    strings = load_test_inputs([file_name])
    if not strings:
        return []

    text = joiner.join(strings * repeat)
    texts = [text] if input_config.get("concatenate", True) else strings * repeat
    print(f"Input '{input_name}': {len(texts)} text(s), {sum(len(t) for t in texts):,} characters")

    _input_cache[input_name] = texts
    return texts


def time_findall(compiled, texts: list[str], iterations: int) -> tuple[float, list]:
    """Return total milliseconds for `iterations` passes and the last results."""
    results = []
    start = time.perf_counter()
    for _ in range(iterations):
        results = [compiled.findall(text) for text in texts]
    elapsed_ms = (time.perf_counter() - start) * 1000
    return elapsed_ms, results


def run_benchmark(pattern: str, flags: str, texts: list[str], iterations: int) -> dict | None:
    """Run benchmark comparing the engine vs re."""
    try:
        engine = compile_engine(pattern, flags)
    except CompileError as e:
        print(f"Error compiling pattern: {e}", file=sys.stderr)
        return None
    reference = compile_reference(pattern, flags)

    try:
        engine_ms, engine_results = time_findall(engine, texts, iterations)
    except MatchError as e:
        print(f"Benchmark execution failed: {e}", file=sys.stderr)
        return None
    reference_ms, reference_results = time_findall(reference, texts, iterations)

    return {
        "pattern": pattern,
        "flags": flags,
        "iterations": iterations,
        "characters": sum(len(t) for t in texts),
        "matches": sum(len(r) for r in engine_results),
        "mismatches": sum(1 for a, b in zip(engine_results, reference_results) if a != b),
        "summary": {
            "total_engine_ms": engine_ms,
            "total_re_ms": reference_ms,
            "slowdown_vs_re": engine_ms / reference_ms if reference_ms > 0 else 0,
        },
    }


def print_summary(results: dict, name: str):
    """Print a formatted summary of benchmark results."""
    summary = results.get("summary", {})

    print(f"\n{'='*60}")
    print(f"BENCHMARK SUMMARY: {name}")
    print(f"{'='*60}")
    print(f"Characters per pass:  {results.get('characters', 0):,}")
    print(f"Matches per pass:     {results.get('matches', 0):,}")
    print(f"Total engine time:    {summary.get('total_engine_ms', 0):.3f}ms")
    print(f"Total re time:        {summary.get('total_re_ms', 0):.3f}ms")

    slowdown = summary.get('slowdown_vs_re', 0)
    if slowdown > 0:
        print(f"Slowdown vs re:       {slowdown:.1f}x")

    mismatches = results.get("mismatches", 0)
    if mismatches > 0:
        print(f"Result mismatches vs re: {mismatches}")


def run_benchmark_test(pattern: str, flags: str, texts: list[str], name: str,
                       iterations: int, output_json: str = None) -> bool:
    """Run a complete benchmark cycle."""
    print(f"\n{'='*60}")
    print(f"Benchmark:   {name}")
    print(f"Pattern:     {pattern[:50]}{'...' if len(pattern) > 50 else ''}")
    print(f"Texts:       {len(texts)}")
    print(f"Iterations:  {iterations}")
    print(f"{'='*60}")

    results = run_benchmark(pattern, flags, texts, iterations)
    if results is None:
        return False

    print_summary(results, name)

    # Save JSON output if requested
    if output_json:
        output_path = Path(output_json)
        # If output_json is a directory, create a file named after the test
        if output_path.is_dir() or output_json.endswith('/') or output_json.endswith('\\'):
            output_path = Path(output_json) / f"{name}_benchmark.json"
            output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(results, f, indent=2)
        print(f"\nResults saved to: {output_path}")

    return results.get("mismatches", 0) == 0


def main():
    parser = argparse.ArgumentParser(
        description="Benchmark the backtracking regex engine against Python's re",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Config file format (YAML):

inputs:
  prose-large:
    file: prose          # test-harness/inputs/prose.yaml
    repeat: 50           # Repeat the string list (default: 1)

benchmarks:
  - name: words
    pattern: "\\\\b\\\\w+\\\\b"
    flags: i             # optional
    iterations: 5        # optional (default: 3)
    inputs:
      - prose-large

Example usage:
    python benchmark.py                      # Run all benchmarks
    python benchmark.py -c my_benchmarks.yaml  # Run from specific file
    python benchmark.py -n words             # Run only the 'words' benchmark
    python benchmark.py -o results/          # Save JSON results to directory
"""
    )
    parser.add_argument("--config", "-c", default=str(HARNESS_DIR / "benchmarks.yaml"),
                        help="YAML config file (default: test-harness/benchmarks.yaml)")
    parser.add_argument("--name", "-n", help="Run only the benchmark with this name")
    parser.add_argument("--iterations", "-i", type=int, help="Override iteration count")
    parser.add_argument("--list", "-l", action="store_true", help="List available benchmarks")
    parser.add_argument("--output", "-o", help="Save JSON results to file or directory")

    args = parser.parse_args()

    # Load config file
    config_path = Path(args.config)
    if not config_path.exists():
        print(f"Error: Config file not found: {config_path}")
        print("Create a benchmarks.yaml file or specify one with --config")
        sys.exit(1)

    config = load_yaml(config_path)

    if not isinstance(config, dict):
        print(f"Error: Expected dict in config file with 'inputs' and 'benchmarks' keys", file=sys.stderr)
        sys.exit(1)

    inputs_config = config.get("inputs", {})
    benchmarks = config.get("benchmarks", [])

    if not isinstance(benchmarks, list):
        print(f"Error: 'benchmarks' should be a list", file=sys.stderr)
        sys.exit(1)

    if args.list:
        print(f"Available benchmarks in {config_path}:")
        for b in benchmarks:
            name = b.get("name", "unnamed")
            pattern = b.get("pattern", "")[:40]
            input_names = ", ".join(b.get("inputs", []))
            print(f"  - {name}: {pattern} inputs=[{input_names}]")
        print(f"\nAvailable inputs:")
        for input_name, input_cfg in inputs_config.items():
            print(f"  - {input_name}: {input_cfg.get('file', '?')} x{input_cfg.get('repeat', 1)}")
        sys.exit(0)

    # Filter by name if specified
    if args.name:
        benchmarks = [b for b in benchmarks if b.get("name") == args.name]
        if not benchmarks:
            print(f"Error: No benchmark named '{args.name}' found")
            sys.exit(1)

    # Run benchmarks
    all_success = True
    total_runs = 0

    for benchmark in benchmarks:
        name = benchmark.get("name", "unnamed")
        pattern = benchmark.get("pattern")
        flags = benchmark.get("flags", "")
        iterations = args.iterations or benchmark.get("iterations", 3)
        input_names = benchmark.get("inputs", [])

        if not pattern:
            print(f"Error: Benchmark '{name}' missing 'pattern'", file=sys.stderr)
            all_success = False
            continue

        if not input_names:
            print(f"Warning: Benchmark '{name}' has no inputs specified", file=sys.stderr)
            continue

        # Run benchmark against each input separately
        for input_name in input_names:
            if input_name not in inputs_config:
                print(f"Error: Input '{input_name}' not found in inputs config", file=sys.stderr)
                all_success = False
                continue

            texts = load_benchmark_input(inputs_config[input_name], input_name)
            if not texts:
                print(f"Warning: No texts loaded for input '{input_name}'", file=sys.stderr)
                continue

            if not run_benchmark_test(pattern, flags, texts, f"{name}_{input_name}",
                                      iterations, args.output):
                all_success = False
            total_runs += 1

    print(f"\n{'='*60}")
    if all_success:
        print(f"ALL {total_runs} BENCHMARK RUN(S) COMPLETED SUCCESSFULLY")
    else:
        print(f"SOME BENCHMARKS FAILED")
    print(f"{'='*60}")

    sys.exit(0 if all_success else 1)


if __name__ == "__main__":
    main()
