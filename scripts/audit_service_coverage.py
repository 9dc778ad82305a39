#!/usr/bin/env python3
"""Reconcile OpenAPI operation IDs, the service-config registry, and service implementations.

Three independently maintained sources are cross-referenced:

* the OpenAPI contract (`operationId: <token>` declarations),
* the generated service-config registry (`export const <name>ServiceConfig`
  bindings with a `basePath` and an `operations` object),
* the per-service implementation files under the services directory, which are
  expected to reference every registered GET operation as `this.operations.<key>`.

Every discrepancy is printed as an advisory report. Drift never changes the exit
status; only an unreadable contract, registry, or config file exits 2.
"""

from __future__ import annotations

import argparse
import re
import sys
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Iterator, Sequence

SCRIPTS_DIR = Path(__file__).resolve().parent

if str(SCRIPTS_DIR) not in sys.path:
    sys.path.insert(0, str(SCRIPTS_DIR))

from pure_tooling.coverage_config import (
    DEFAULT_ACCESS_PREFIX,
    DEFAULT_IMPLEMENTATION_SUFFIX,
    DEFAULT_SAMPLE_LIMIT,
    CoverageConfig,
    apply_overrides,
    load_config,
)
from pure_tooling.repo_io import HardFailError, ServicesDirectory, read_text_hard_fail

TOOL_NAME = "audit-service-coverage"

CONTRACT_OPERATION_ID_PATTERN = re.compile(r"operationId:\s+(\S+)")
REGISTRY_OPERATION_ID_PATTERN = re.compile(r"operationId:\s*'([^']+)'")
SERVICE_DECLARATION_PATTERN = re.compile(
    r"export\s+const\s+(\w+)ServiceConfig\s*:\s*ServiceConfig\s*=\s*\{\s*basePath\s*:\s*'([^']*)'"
)
OPERATIONS_KEYWORD_PATTERN = re.compile(r"\boperations\s*:")
ENTRY_HEAD_PATTERN = re.compile(
    r"""(?:'(?P<single>[^'\n]+)'|"(?P<double>[^"\n]+)"|(?P<bare>[A-Za-z_$][\w$]*))\s*(?P<colon>:)\s*\{"""
)
METHOD_PATTERN = re.compile(r"""\bmethod\s*:\s*['"]([A-Za-z]+)['"]""")
CAMEL_HUMP_PATTERN = re.compile(r"([a-z0-9])([A-Z])")

HTTP_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH")
READ_METHOD = "GET"
MISSING_FILE_REASON = "service file missing"

QUOTE_CHARS = ("'", '"', "`")
MODE_CODE = "code"
MODE_STRING = "string"
MODE_LINE_COMMENT = "line-comment"
MODE_BLOCK_COMMENT = "block-comment"

FileExistsFn = Callable[[str], bool]
FileReadFn = Callable[[str], str]
FileNameConvention = Callable[[str], str]


@dataclass(frozen=True)
class OperationEntry:
    key: str
    http_method: str


@dataclass(frozen=True)
class ServiceDescriptor:
    name: str
    base_path: str
    operations: tuple[OperationEntry, ...] = ()


@dataclass(frozen=True)
class ReconciliationResult:
    missing_in_registry: tuple[str, ...]
    extra_in_registry: tuple[str, ...]


@dataclass(frozen=True)
class ServiceAuditFinding:
    service: str
    missing_file: str | None = None
    missing_operations: tuple[str, ...] = ()


@dataclass(frozen=True)
class CoverageCorpus:
    contract_path: Path
    registry_path: Path
    contract_text: str
    registry_text: str


@dataclass(frozen=True)
class CoverageAudit:
    services: tuple[ServiceDescriptor, ...]
    contract_ids: frozenset[str]
    registry_ids: frozenset[str]
    result: ReconciliationResult
    findings: tuple[ServiceAuditFinding, ...]


def load_corpus(config: CoverageConfig, *, root: Path) -> CoverageCorpus:
    contract_path = config.contract_path(root)
    registry_path = config.registry_path(root)
    return CoverageCorpus(
        contract_path=contract_path,
        registry_path=registry_path,
        contract_text=read_text_hard_fail(contract_path, artifact="contract", root=root),
        registry_text=read_text_hard_fail(registry_path, artifact="registry", root=root),
    )


def extract_contract_identifiers(text: str) -> set[str]:
    return {match.group(1) for match in CONTRACT_OPERATION_ID_PATTERN.finditer(text)}


def extract_registry_identifiers(text: str) -> set[str]:
    return {match.group(1) for match in REGISTRY_OPERATION_ID_PATTERN.finditer(text)}


def scan_code(text: str, start: int = 0) -> Iterator[tuple[int, str, bool]]:
    """Yield `(index, char, is_code)` for every character from `start`.

    `is_code` is false inside quoted strings (single, double, back-tick) and
    comments, so delimiters appearing in path templates such as `'/{uuid}'`
    never affect nesting depth.
    """

    mode = MODE_CODE
    quote = ""
    index = start
    length = len(text)
    while index < length:
        char = text[index]
        if mode == MODE_STRING:
            yield index, char, False
            if char == "\\" and index + 1 < length:
                yield index + 1, text[index + 1], False
                index += 2
                continue
            if char == quote:
                mode = MODE_CODE
        elif mode == MODE_LINE_COMMENT:
            yield index, char, False
            if char == "\n":
                mode = MODE_CODE
        elif mode == MODE_BLOCK_COMMENT:
            yield index, char, False
            if text.startswith("*/", index):
                yield index + 1, "/", False
                mode = MODE_CODE
                index += 2
                continue
        elif char in QUOTE_CHARS:
            mode = MODE_STRING
            quote = char
            yield index, char, False
        elif text.startswith("//", index):
            mode = MODE_LINE_COMMENT
            yield index, char, False
        elif text.startswith("/*", index):
            mode = MODE_BLOCK_COMMENT
            yield index, char, False
            yield index + 1, "*", False
            index += 2
            continue
        else:
            yield index, char, True
        index += 1


def find_balanced_block(text: str, open_index: int) -> tuple[int, int] | None:
    """Return the `[open, close + 1)` span of the brace block opened at `open_index`.

    Depth goes up on `{` and down on `}`; the block ends when depth returns to
    zero. Returns None if `open_index` is not a `{` or the block never closes.
    """

    if not text.startswith("{", open_index):
        return None
    depth = 0
    for index, char, is_code in scan_code(text, open_index):
        if not is_code:
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return open_index, index + 1
    return None


def top_level_code_indices(text: str) -> set[int]:
    """Indices of code characters (not string or comment) outside any nested `{ }`.

    The `{` opening a nested block and the `}` closing it count as top level.
    """

    indices: set[int] = set()
    depth = 0
    for index, char, is_code in scan_code(text):
        if not is_code:
            continue
        if char == "}":
            depth = max(depth - 1, 0)
        if depth == 0:
            indices.add(index)
        if char == "{":
            depth += 1
    return indices


def search_top_level(
    pattern: re.Pattern[str],
    text: str,
    allowed: set[int],
    position: int = 0,
    group: int | str = 0,
) -> re.Match[str] | None:
    match = pattern.search(text, position)
    while match is not None and match.start(group) not in allowed:
        match = pattern.search(text, match.start() + 1)
    return match


def find_top_level_char(text: str, char: str, allowed: set[int], position: int = 0) -> int:
    index = text.find(char, position)
    while index != -1 and index not in allowed:
        index = text.find(char, index + 1)
    return index


def iter_object_entries(body: str) -> Iterator[tuple[str, str]]:
    """Yield `(key, entry_body)` for each top-level `<key>: { ... }` member of `body`.

    Members inside comments or string literals are not entries.
    """

    allowed = top_level_code_indices(body)
    position = 0
    while True:
        match = search_top_level(ENTRY_HEAD_PATTERN, body, allowed, position, group="colon")
        if match is None:
            return
        open_index = match.end() - 1
        if open_index not in allowed:
            position = match.start() + 1
            continue
        span = find_balanced_block(body, open_index)
        if span is None:
            return
        key = match.group("single") or match.group("double") or match.group("bare")
        yield key, body[span[0] + 1 : span[1] - 1]
        position = span[1]


def parse_operations(block: str) -> tuple[OperationEntry, ...]:
    allowed = top_level_code_indices(block)
    keyword = search_top_level(OPERATIONS_KEYWORD_PATTERN, block, allowed)
    if keyword is None:
        return ()
    open_index = find_top_level_char(block, "{", allowed, keyword.end())
    if open_index == -1:
        return ()
    span = find_balanced_block(block, open_index)
    if span is None:
        return ()

    # Repeated keys collapse onto the first position; the last method wins.
    methods: dict[str, str] = {}
    for key, entry_body in iter_object_entries(block[span[0] + 1 : span[1] - 1]):
        method_match = search_top_level(METHOD_PATTERN, entry_body, top_level_code_indices(entry_body))
        if method_match is None:
            continue
        http_method = method_match.group(1).upper()
        if http_method not in HTTP_METHODS:
            continue
        methods[key] = http_method

    return tuple(OperationEntry(key=key, http_method=method) for key, method in methods.items())


def parse_services(registry_text: str) -> list[ServiceDescriptor]:
    declarations = list(SERVICE_DECLARATION_PATTERN.finditer(registry_text))
    services: list[ServiceDescriptor] = []
    for index, declaration in enumerate(declarations):
        if index + 1 < len(declarations):
            block_end = declarations[index + 1].start()
        else:
            block_end = len(registry_text)
        services.append(
            ServiceDescriptor(
                name=declaration.group(1),
                base_path=declaration.group(2),
                operations=parse_operations(registry_text[declaration.end() : block_end]),
            )
        )
    return services


def reconcile(contract_ids: Iterable[str], registry_ids: Iterable[str]) -> ReconciliationResult:
    contract = set(contract_ids)
    registry = set(registry_ids)
    return ReconciliationResult(
        missing_in_registry=tuple(sorted(contract - registry)),
        extra_in_registry=tuple(sorted(registry - contract)),
    )


def identifier_prefix(identifier: str) -> str:
    return identifier.split("_", 1)[0]


def group_by_prefix(identifiers: Iterable[str]) -> list[tuple[str, int]]:
    counts = Counter(identifier_prefix(identifier) for identifier in identifiers)
    return sorted(counts.items(), key=lambda item: -item[1])


def service_name_to_file_name(service_name: str) -> str:
    return CAMEL_HUMP_PATTERN.sub(r"\1-\2", service_name).lower()


def implementation_file_convention(suffix: str = DEFAULT_IMPLEMENTATION_SUFFIX) -> FileNameConvention:
    def file_name(service_name: str) -> str:
        return f"{service_name_to_file_name(service_name)}{suffix}"

    return file_name


def audit_implementations(
    services: Sequence[ServiceDescriptor],
    *,
    file_exists: FileExistsFn,
    read_file: FileReadFn,
    file_name_convention: FileNameConvention = service_name_to_file_name,
    access_prefix: str = DEFAULT_ACCESS_PREFIX,
) -> list[ServiceAuditFinding]:
    """Check that every registered GET operation is referenced by its service file.

    A reference is a plain substring match on `access_prefix + key`, so aliases or
    computed access are not seen, and a mention inside a comment counts.
    """

    findings: list[ServiceAuditFinding] = []
    for service in services:
        file_name = file_name_convention(service.name)
        if not file_exists(file_name):
            findings.append(ServiceAuditFinding(service=service.name, missing_file=MISSING_FILE_REASON))
            continue
        try:
            text = read_file(file_name)
        except (OSError, UnicodeDecodeError) as exc:
            findings.append(
                ServiceAuditFinding(service=service.name, missing_file=f"service file unreadable: {exc}")
            )
            continue

        missing = tuple(
            operation.key
            for operation in service.operations
            if operation.http_method.upper() == READ_METHOD
            and f"{access_prefix}{operation.key}" not in text
        )
        if missing:
            findings.append(ServiceAuditFinding(service=service.name, missing_operations=missing))

    return findings


def audit_corpus(
    corpus: CoverageCorpus,
    *,
    file_exists: FileExistsFn,
    read_file: FileReadFn,
    file_name_convention: FileNameConvention,
    access_prefix: str = DEFAULT_ACCESS_PREFIX,
) -> CoverageAudit:
    contract_ids = extract_contract_identifiers(corpus.contract_text)
    registry_ids = extract_registry_identifiers(corpus.registry_text)
    services = parse_services(corpus.registry_text)
    findings = audit_implementations(
        services,
        file_exists=file_exists,
        read_file=read_file,
        file_name_convention=file_name_convention,
        access_prefix=access_prefix,
    )
    return CoverageAudit(
        services=tuple(services),
        contract_ids=frozenset(contract_ids),
        registry_ids=frozenset(registry_ids),
        result=reconcile(contract_ids, registry_ids),
        findings=tuple(findings),
    )


def format_finding(finding: ServiceAuditFinding) -> str:
    if finding.missing_file is not None:
        return f"{finding.service}: {finding.missing_file}"
    return f"{finding.service}: {', '.join(finding.missing_operations)}"


def render_report(audit: CoverageAudit, *, sample_limit: int = DEFAULT_SAMPLE_LIMIT) -> list[str]:
    missing = audit.result.missing_in_registry
    extra = audit.result.extra_in_registry

    lines = [f"Services configured: {len(audit.services)}"]
    lines.extend(f"{service.name} ({service.base_path})" for service in audit.services)

    lines.append("")
    lines.append(f"OpenAPI operation IDs: {len(audit.contract_ids)}")
    lines.append(f"Service-config operation IDs: {len(audit.registry_ids)}")

    lines.append("")
    lines.append(f"Missing operation IDs in service-config ({len(missing)}):")
    if missing:
        lines.extend(f"{prefix}: {count}" for prefix, count in group_by_prefix(missing))
        lines.append("")
        lines.append("Sample missing operation IDs:")
        lines.extend(missing[:sample_limit])
        if len(missing) > sample_limit:
            lines.append(f"... and {len(missing) - sample_limit} more")
    else:
        lines.append("None")

    lines.append("")
    lines.append(f"Extra operation IDs in service-config not in OpenAPI ({len(extra)}):")
    lines.extend(extra or ["None"])

    lines.append("")
    lines.append(f"Service implementation findings ({len(audit.findings)}):")
    if audit.findings:
        lines.extend(format_finding(finding) for finding in audit.findings)
    else:
        lines.append("None")

    return lines


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=(
            "Report drift between OpenAPI operation IDs, the service-config "
            "registry, and the service implementation files. Drift is advisory "
            "and never changes the exit status."
        ),
        epilog=(
            "The implementation check is a textual containment test for "
            "'<access-prefix><key>'. Keys reached through aliases, spreads or "
            "computed access are reported as missing, and a key mentioned only "
            "in a comment or string counts as referenced."
        ),
    )
    parser.add_argument(
        "--root",
        type=Path,
        default=Path.cwd(),
        help="Repository root that relative input paths are resolved against (default: cwd).",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Optional JSON file overriding input locations and audit conventions.",
    )
    parser.add_argument("--contract", help="OpenAPI contract path (default: openapi/pure.yaml).")
    parser.add_argument(
        "--registry",
        help="Service-config registry path (default: src/services/service-config.ts).",
    )
    parser.add_argument(
        "--services-dir",
        help="Directory holding per-service implementation files (default: src/services).",
    )
    parser.add_argument(
        "--sample-limit",
        type=int,
        help=f"Maximum number of missing operation IDs listed (default: {DEFAULT_SAMPLE_LIMIT}).",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    root = args.root.resolve()

    try:
        config = apply_overrides(
            load_config(args.config, root=root),
            contract=args.contract,
            registry=args.registry,
            services_dir=args.services_dir,
            sample_limit=args.sample_limit,
        )
        corpus = load_corpus(config, root=root)
    except HardFailError as exc:
        print(f"{TOOL_NAME}: error: {exc}", file=sys.stderr)
        return 2

    services_directory = ServicesDirectory(config.services_path(root))
    audit = audit_corpus(
        corpus,
        file_exists=services_directory.exists,
        read_file=services_directory.read_text,
        file_name_convention=implementation_file_convention(config.implementation_suffix),
        access_prefix=config.access_prefix,
    )
    for line in render_report(audit, sample_limit=config.sample_limit):
        print(line)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
