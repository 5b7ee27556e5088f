import json
import logging
import os
import sys
from enum import StrEnum

import typer
from rich.console import Console

from .commands.report_cmd import render_audit, render_validation
from .core.constants import STATUS_ERROR, STATUS_FAILED
from .core.engine import GateEngine
from .core.message import M, emit, set_enabled

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)

app = typer.Typer(help="Quality gate and security audit for source files.")

_PROJECT_ROOT = "."


class OutputFormat(StrEnum):
    TEXT = "text"
    JSON = "json"


@app.callback()
def _global_options(
    project_root: str = typer.Option(
        ".",
        "--project-root",
        "-C",
        help="Directory holding .qgate/config.yaml, env files, .gitignore and the package manifest",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    global _PROJECT_ROOT
    _PROJECT_ROOT = project_root
    set_enabled(True)
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        emit(M.SINF, f"Debug logging enabled (project root: {os.path.abspath(project_root)})")


def _engine() -> GateEngine:
    return GateEngine.from_project(_PROJECT_ROOT)


def _read_source(path: str) -> str:
    try:
        with open(path, encoding="utf-8") as f:
            return f.read()
    except (OSError, UnicodeDecodeError) as e:
        emit(M.SERR, f"Cannot read {path}: {e}")
        raise typer.Exit(1)


# ── CLI Commands ─────────────────────────────────────────────────────────


@app.command()
def validate(
    file: str = typer.Option(..., "--file", "-f", help="Source file to validate"),
    output_format: OutputFormat = typer.Option(OutputFormat.TEXT, "--format", help="Output format"),
    force: bool = typer.Option(False, "--force", help="Run disabled rules too"),
) -> None:
    """Validate one source file and exit 1 when the gate fails."""
    if output_format is OutputFormat.JSON:
        set_enabled(False)
    code = _read_source(file)
    report = _engine().validate_code(code, file, force=force)
    if output_format is OutputFormat.JSON:
        typer.echo(report.model_dump_json())
    else:
        render_validation(report, Console())
    if report.status in (STATUS_FAILED, STATUS_ERROR):
        raise typer.Exit(1)


def security_audit(
    output_format: OutputFormat = typer.Option(OutputFormat.TEXT, "--format", help="Output format"),
    file: str | None = typer.Option(None, "--file", "-f", help="Also scan this file for source-level issues"),
) -> None:
    """Run the security rules against the project and exit 1 on critical issues."""
    if output_format is OutputFormat.JSON:
        set_enabled(False)
    code = _read_source(file) if file else ""
    report = _engine().run_security_audit(code, file)
    if output_format is OutputFormat.JSON:
        typer.echo(report.model_dump_json())
    else:
        render_audit(report, Console())
    if report.status == STATUS_FAILED:
        raise typer.Exit(1)


app.command(name="audit")(security_audit)
app.command(name="security-audit")(security_audit)


@app.command()
def config(
    output: str | None = typer.Option(None, "--output", "-o", help="Write the configuration to this file"),
) -> None:
    """Print the rule catalog and thresholds as JSON."""
    snapshot = json.dumps(_engine().export_configuration(), indent=2)
    if output is None:
        typer.echo(snapshot)
        return
    try:
        with open(output, "w", encoding="utf-8") as f:
            f.write(snapshot + "\n")
    except OSError as e:
        emit(M.SERR, f"Cannot write {output}: {e}")
        raise typer.Exit(1)
    emit(M.SCFG, f"Wrote configuration to {os.path.abspath(output)}")


def main() -> None:
    try:
        app()
    except Exception as e:  # last-resort guard: any uncaught error is exit 1
        logger.exception("qgate crashed")
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
