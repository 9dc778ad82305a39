from __future__ import annotations

import importlib.util
import io
import sys
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path

SCRIPT_PATH = Path(__file__).resolve().parents[2] / "scripts" / "check_openapi_types.py"
SPEC = importlib.util.spec_from_file_location("check_openapi_types", SCRIPT_PATH)
if SPEC is None or SPEC.loader is None:
    raise RuntimeError("Unable to load scripts/check_openapi_types.py for tests.")
check_openapi_types = importlib.util.module_from_spec(SPEC)
sys.modules[SPEC.name] = check_openapi_types
SPEC.loader.exec_module(check_openapi_types)


def run_main(args: list[str]) -> tuple[int, str, str]:
    stdout = io.StringIO()
    stderr = io.StringIO()
    with redirect_stdout(stdout), redirect_stderr(stderr):
        code = check_openapi_types.main(args)
    return code, stdout.getvalue(), stderr.getvalue()


def write_generated(root: Path, text: str) -> None:
    generated = root / "src" / "generated"
    generated.mkdir(parents=True)
    (generated / "pure.ts").write_text(text, encoding="utf-8")


def test_patched_types_pass(tmp_path: Path) -> None:
    write_generated(tmp_path, "export interface paths {}\n" + check_openapi_types.PATCHED_HELPER)

    code, stdout, stderr = run_main(["--root", str(tmp_path)])

    assert code == 0
    assert stdout == "check-openapi-types: OK (src/generated/pure.ts)\n"
    assert stderr == ""


def test_legacy_helper_fails_with_both_problems(tmp_path: Path) -> None:
    write_generated(tmp_path, check_openapi_types.LEGACY_HELPER)

    code, stdout, stderr = run_main(["--root", str(tmp_path)])

    assert code == 1
    assert stdout == ""
    assert stderr.splitlines() == [
        "check-openapi-types: FAIL (src/generated/pure.ts)",
        "- patched WithRequired helper not found; run the client generation pipeline to rebuild",
        "- outdated WithRequired helper detected; run the client generation pipeline to patch it",
    ]


def test_missing_generated_file_exits_2(tmp_path: Path) -> None:
    code, stdout, stderr = run_main(["--root", str(tmp_path)])

    assert code == 2
    assert stdout == ""
    assert stderr == (
        "check-openapi-types: error: generated types file does not exist: src/generated/pure.ts\n"
    )
