from __future__ import annotations

import importlib.util
import io
import sys
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from typing import Sequence

SCRIPT_PATH = Path(__file__).resolve().parents[2] / "scripts" / "generate_client.py"
SPEC = importlib.util.spec_from_file_location("generate_client", SCRIPT_PATH)
if SPEC is None or SPEC.loader is None:
    raise RuntimeError("Unable to load scripts/generate_client.py for tests.")
generate_client = importlib.util.module_from_spec(SPEC)
sys.modules[SPEC.name] = generate_client
SPEC.loader.exec_module(generate_client)


class RecordingRunner:
    def __init__(self, statuses: list[int]) -> None:
        self._statuses = list(statuses)
        self.calls: list[tuple[list[str], Path]] = []

    def __call__(self, args: Sequence[str], cwd: Path) -> int:
        self.calls.append((list(args), cwd))
        if not self._statuses:
            raise AssertionError("runner called more times than expected")
        return self._statuses.pop(0)


def run_pipeline(steps, **kwargs) -> tuple[int, str, str]:
    stdout = io.StringIO()
    stderr = io.StringIO()
    with redirect_stdout(stdout), redirect_stderr(stderr):
        code = generate_client.run_pipeline(steps, **kwargs)
    return code, stdout.getvalue(), stderr.getvalue()


def test_default_steps_run_in_order_from_root(tmp_path: Path) -> None:
    runner = RecordingRunner([0, 0, 0, 0])

    code, stdout, stderr = run_pipeline(generate_client.default_steps(), root=tmp_path, runner=runner)

    assert code == 0
    assert stderr == ""
    assert [call[0][:2] for call in runner.calls] == [
        ["npx", "openapi-typescript"],
        ["node", "scripts/postprocess-openapi-types.js"],
        ["node", "scripts/build-operation-map.mjs"],
        ["npx", "tsx"],
    ]
    assert all(cwd == tmp_path for _, cwd in runner.calls)
    assert stdout.splitlines() == [
        "generate-client: [1/4] Generate OpenAPI types",
        "generate-client: [2/4] Post-process OpenAPI types",
        "generate-client: [3/4] Build operation metadata",
        "generate-client: [4/4] Regenerate service config",
        "generate-client: OK (4 step(s) completed)",
    ]


def test_pipeline_stops_at_first_failure_and_returns_its_status(tmp_path: Path) -> None:
    runner = RecordingRunner([0, 3])

    code, stdout, stderr = run_pipeline(generate_client.default_steps(), root=tmp_path, runner=runner)

    assert code == 3
    assert len(runner.calls) == 2
    assert stderr == "generate-client: FAIL Post-process OpenAPI types (exit code 3)\n"
    assert "generate-client: OK" not in stdout


def test_unstartable_command_fails_with_status_1(tmp_path: Path) -> None:
    def missing_runner(args: Sequence[str], cwd: Path) -> int:
        raise FileNotFoundError(2, "No such file or directory", args[0])

    steps = [generate_client.PipelineStep(label="Generate OpenAPI types", command=("npx", "x"))]

    code, _, stderr = run_pipeline(steps, root=tmp_path, runner=missing_runner)

    assert code == 1
    assert stderr.startswith("generate-client: FAIL Generate OpenAPI types: unable to start npx:")


def test_dry_run_prints_commands_without_running(tmp_path: Path) -> None:
    runner = RecordingRunner([])
    steps = [
        generate_client.PipelineStep(label="Regenerate service config", command=("npx", "tsx", "a b.ts")),
    ]

    code, stdout, stderr = run_pipeline(steps, root=tmp_path, runner=runner, dry_run=True)

    assert code == 0
    assert runner.calls == []
    assert stderr == ""
    assert stdout == (
        "generate-client: [1/1] Regenerate service config\n"
        '  npx tsx "a b.ts"\n'
        "generate-client: dry run, 1 step(s) not executed\n"
    )


def test_with_audit_appends_coverage_audit_step() -> None:
    steps = generate_client.default_steps(with_audit=True)

    assert len(steps) == 5
    assert steps[-1].label == "Audit service coverage"
    assert steps[-1].command[0] == sys.executable
    assert steps[-1].command[1].endswith("audit_service_coverage.py")
