from __future__ import annotations

import argparse
from pathlib import Path

from wasm_polish import diagnostics
from wasm_polish.config import load_config
from wasm_polish.errors import PolishError
from wasm_polish.pipeline import PolishReport, polish


def _print_report(report: PolishReport) -> None:
    if report.generator is not None:
        print(f"generator: wasm-bindgen {report.generator.text} ({report.generator.source})")
    print(f"dead branches removed: {report.module.dead_branches}")
    print(f"stubs removed: {', '.join(report.module.stubs) or '-'}")
    print(f"exports removed: {', '.join(report.module.exports) or '-'}")
    print(f"accessors: {', '.join(report.accessors)}")
    for method in report.out_methods:
        print(f"out-parameter: {method.qualified} -> {method.type}")
    verb = "wrote" if report.written else "would write"
    for path, size in report.outputs.items():
        print(f"{verb} {path} ({size} bytes)")


def run(
    project: str,
    pkg_dir: str | None,
    out_name: str | None,
    dry_run: bool,
    skip_generator_check: bool,
) -> int:
    try:
        config = load_config(
            Path(project),
            pkg_dir=pkg_dir,
            out_name=out_name,
            skip_generator_check=skip_generator_check or None,
        )
        report = polish(config, dry_run=dry_run)
    except PolishError as exc:
        diagnostics.error(str(exc))
        return 1
    _print_report(report)
    return 0


def offsets(project: str) -> int:
    try:
        config = load_config(Path(project))
    except PolishError as exc:
        diagnostics.error(str(exc))
        return 1
    for name, count in config.offsets.items():
        print(f"{name}\t{count}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="wasm-polish")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser(
        "run", help="Polish the wasm-bindgen output of a project"
    )
    run_parser.add_argument(
        "project", nargs="?", default=".", help="Project root (holds Cargo.toml)"
    )
    run_parser.add_argument("--pkg-dir", help="Bindings directory, relative to project.")
    run_parser.add_argument("--out-name", help="Artifact base name inside the pkg dir.")
    run_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Run every step, including the module round trip, without writing.",
    )
    run_parser.add_argument(
        "--skip-generator-check",
        action="store_true",
        help="Warn instead of failing on an unrecognized wasm-bindgen version.",
    )

    offsets_parser = subparsers.add_parser(
        "offsets", help="Show the effective value type offset table"
    )
    offsets_parser.add_argument("project", nargs="?", default=".")

    args = parser.parse_args(argv)

    if args.command == "run":
        return run(
            args.project,
            args.pkg_dir,
            args.out_name,
            args.dry_run,
            args.skip_generator_check,
        )
    if args.command == "offsets":
        return offsets(args.project)

    return 2


if __name__ == "__main__":
    raise SystemExit(main())
