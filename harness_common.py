#!/usr/bin/env python3
"""
Common utilities for the conformance and benchmark runners.

Shared code for loading YAML fixtures and for running a pattern through both
the backtracking engine and Python's `re` module, which serves as the
reference implementation.
"""

import io
import re
import sys
from pathlib import Path

import yaml

import backtrack_regex

# Ensure UTF-8 output on Windows
if sys.platform == 'win32':
    sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding='utf-8', errors='replace')
    sys.stderr = io.TextIOWrapper(sys.stderr.buffer, encoding='utf-8', errors='replace')

# Paths
ROOT_DIR = Path(__file__).parent
HARNESS_DIR = ROOT_DIR / "test-harness"
INPUTS_DIR = HARNESS_DIR / "inputs"

# Inline flag letters -> `re` flags. re.ASCII keeps \w, \d, \s and \b in
# line with the engine's ASCII classes.
REFERENCE_FLAGS = {
    'i': re.IGNORECASE,
    'm': re.MULTILINE,
    's': re.DOTALL,
    'x': re.VERBOSE,
}


def load_yaml(path: Path):
    with open(path, encoding='utf-8') as f:
        return yaml.safe_load(f)


def load_test_inputs(input_names: list[str]) -> list[str]:
    """Load and combine test strings from input files."""
    all_tests = []
    for name in input_names:
        input_file = INPUTS_DIR / f"{name}.yaml"
        if not input_file.exists():
            print(f"Warning: Input file not found: {input_file}", file=sys.stderr)
            continue
        data = load_yaml(input_file)
        # Expect top-level list
        if isinstance(data, list):
            all_tests.extend(str(item) for item in data)
        else:
            print(f"Warning: Expected list in {input_file}, got {type(data)}", file=sys.stderr)
    return all_tests


def reference_flags(letters: str) -> int:
    flags = re.ASCII
    for letter in letters:
        flags |= REFERENCE_FLAGS[letter]
    return flags


def compile_engine(pattern: str, letters: str = "", backtrack_limit=None):
    """Compile with the backtracking engine."""
    if backtrack_limit is None:
        backtrack_limit = backtrack_regex.DEFAULT_BACKTRACK_LIMIT
    return backtrack_regex.compile(pattern, letters, backtrack_limit=backtrack_limit)


def compile_reference(pattern: str, letters: str = ""):
    """Compile with Python's re module."""
    return re.compile(pattern, reference_flags(letters))


def collect_matches(compiled, text: str) -> list:
    """Spans and groups of every match, in a form both engines share."""
    return [(m.span(), m.groups()) for m in compiled.finditer(text)]
