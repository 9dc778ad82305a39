#!/usr/bin/env python3
"""Run the client generation pipeline: OpenAPI types, post-processing, and service config."""

from __future__ import annotations

import argparse
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Sequence

TOOL_NAME = "generate-client"
SCRIPTS_DIR = Path(__file__).resolve().parent

CommandRunner = Callable[[Sequence[str], Path], int]


@dataclass(frozen=True)
class PipelineStep:
    label: str
    command: tuple[str, ...]


def default_steps(*, with_audit: bool = False) -> list[PipelineStep]:
    steps = [
        PipelineStep(
            label="Generate OpenAPI types",
            command=(
                "npx",
                "openapi-typescript",
                "openapi/pure.yaml",
                "--output",
                "src/generated/pure.ts",
            ),
        ),
        PipelineStep(
            label="Post-process OpenAPI types",
            command=("node", "scripts/postprocess-openapi-types.js"),
        ),
        PipelineStep(
            label="Build operation metadata",
            command=("node", "scripts/build-operation-map.mjs"),
        ),
        PipelineStep(
            label="Regenerate service config",
            command=("npx", "tsx", "scripts/build-service-config.ts"),
        ),
    ]
    if with_audit:
        steps.append(
            PipelineStep(
                label="Audit service coverage",
                command=(sys.executable, str(SCRIPTS_DIR / "audit_service_coverage.py")),
            )
        )
    return steps


def shell_quote(token: str) -> str:
    if any(character.isspace() for character in token):
        return f'"{token}"'
    return token


def render_command(tokens: Sequence[str]) -> str:
    return " ".join(shell_quote(token) for token in tokens)


def _default_runner(args: Sequence[str], cwd: Path) -> int:
    return subprocess.run(list(args), cwd=cwd, check=False).returncode


def run_pipeline(
    steps: Sequence[PipelineStep],
    *,
    root: Path,
    runner: CommandRunner | None = None,
    dry_run: bool = False,
) -> int:
    run = runner or _default_runner
    total = len(steps)
    for index, step in enumerate(steps, start=1):
        print(f"{TOOL_NAME}: [{index}/{total}] {step.label}")
        if dry_run:
            print(f"  {render_command(step.command)}")
            continue

        try:
            status = run(step.command, root)
        except OSError as exc:
            print(f"{TOOL_NAME}: FAIL {step.label}: unable to start {step.command[0]}: {exc}", file=sys.stderr)
            return 1

        if status != 0:
            print(f"{TOOL_NAME}: FAIL {step.label} (exit code {status})", file=sys.stderr)
            return status

    if dry_run:
        print(f"{TOOL_NAME}: dry run, {total} step(s) not executed")
    else:
        print(f"{TOOL_NAME}: OK ({total} step(s) completed)")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=(
            "Regenerate OpenAPI types and the service-config registry. Each step is "
            "an external command; the pipeline stops at the first non-zero exit."
        )
    )
    parser.add_argument("--root", type=Path, default=Path.cwd())
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the commands without running them.",
    )
    parser.add_argument(
        "--with-audit",
        action="store_true",
        help="Run the service coverage audit after regeneration.",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    return run_pipeline(
        default_steps(with_audit=args.with_audit),
        root=args.root.resolve(),
        dry_run=args.dry_run,
    )


if __name__ == "__main__":
    raise SystemExit(main())
