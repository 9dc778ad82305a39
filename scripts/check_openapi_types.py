#!/usr/bin/env python3
"""Check that the generated OpenAPI types carry the patched WithRequired helper."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Sequence

SCRIPTS_DIR = Path(__file__).resolve().parent

if str(SCRIPTS_DIR) not in sys.path:
    sys.path.insert(0, str(SCRIPTS_DIR))

from pure_tooling.repo_io import HardFailError, display_path, read_text_hard_fail, resolve_repo_path

TOOL_NAME = "check-openapi-types"
DEFAULT_GENERATED = "src/generated/pure.ts"

PATCHED_HELPER = (
    "type WithRequired<T, K extends keyof NonNullable<T>> = NonNullable<T> & {\n"
    "    [P in K]-?: NonNullable<T>[P];\n"
    "};\n"
)
LEGACY_HELPER = (
    "type WithRequired<T, K extends keyof T> = T & {\n"
    "    [P in K]-?: T[P];\n"
    "};\n"
)


def check_generated_types(text: str) -> list[str]:
    problems: list[str] = []
    if PATCHED_HELPER not in text:
        problems.append(
            "patched WithRequired helper not found; run the client generation pipeline to rebuild"
        )
    if LEGACY_HELPER in text:
        problems.append(
            "outdated WithRequired helper detected; run the client generation pipeline to patch it"
        )
    return problems


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Verify generated OpenAPI types were post-processed."
    )
    parser.add_argument("--root", type=Path, default=Path.cwd())
    parser.add_argument(
        "--generated",
        default=DEFAULT_GENERATED,
        help=f"Generated types file relative to --root (default: {DEFAULT_GENERATED}).",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    root = args.root.resolve()
    generated_path = resolve_repo_path(args.generated, root)

    try:
        text = read_text_hard_fail(generated_path, artifact="generated types", root=root)
    except HardFailError as exc:
        print(f"{TOOL_NAME}: error: {exc}", file=sys.stderr)
        return 2

    problems = check_generated_types(text)
    if problems:
        print(f"{TOOL_NAME}: FAIL ({display_path(generated_path, root)})", file=sys.stderr)
        for problem in problems:
            print(f"- {problem}", file=sys.stderr)
        return 1

    print(f"{TOOL_NAME}: OK ({display_path(generated_path, root)})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
