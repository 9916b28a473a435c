from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, List, Optional

import typer

from matrixbuild.engine.assembly import MatrixContext
from matrixbuild.errors import ConfigurationError, ReportingError
from matrixbuild.generators.github_matrix import GithubMatrixGenerator, matrix_json, write_github_output
from matrixbuild.run import DEFAULT_DEFINITION, PROJECT_ROOT, configure_logging, load_context, run_matrix


app = typer.Typer(help="matrixctl - resolve and build the firmware configuration matrix")


def _parse_selections(values: Optional[List[str]]) -> Dict[str, str]:
	selections: Dict[str, str] = {}
	for item in values or []:
		axis, sep, member = item.partition("=")
		if not sep or not axis or not member:
			raise typer.BadParameter(f"Expected axis=member, got '{item}'")
		selections[axis.strip()] = member.strip()
	return selections


def _filters(context: MatrixContext, values: Optional[List[str]]) -> Dict[str, str]:
	filters = _parse_selections(values)
	try:
		context.check_selection(filters)
	except ConfigurationError as e:
		typer.secho(str(e), fg=typer.colors.RED, err=True)
		raise typer.Exit(code=2)
	return filters


def _context(ctx: typer.Context) -> MatrixContext:
	definition: Path = ctx.obj["definition"]
	try:
		return load_context(definition)
	except ConfigurationError as e:
		typer.secho(str(e), fg=typer.colors.RED, err=True)
		raise typer.Exit(code=2)


@app.callback()
def common(
	ctx: typer.Context,
	definition: Path = typer.Option(
		DEFAULT_DEFINITION,
		"--definition",
		help="Path to the matrix definition YAML (defaults to config_sources/firmware_matrix.yaml)",
	),
	verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
	"""Options shared by every command."""
	configure_logging(verbose)
	ctx.obj = {"definition": definition}


@app.command("list")
def list_configurations(
	ctx: typer.Context,
	only: Optional[List[str]] = typer.Option(None, "--only", help="Filter by axis=member (repeatable)"),
):
	context = _context(ctx)
	filters = _filters(context, only)
	count = 0
	for configuration in context.configurations(filters):
		tolerated = context.classifier.is_tolerated(configuration)
		flag = " (tolerated)" if tolerated else ""
		print(
			f"{configuration.label()} | target={context.target_of(configuration)} "
			f"| toolchain={context.toolchain_of(configuration)} | features={context.feature_set(configuration)}{flag}"
		)
		count += 1
	typer.secho(
		f"{count} valid of {context.resolver.raw_count(context.registry)} candidates",
		fg=typer.colors.GREEN,
	)


@app.command("features")
def features(
	ctx: typer.Context,
	select: List[str] = typer.Option(..., "--select", help="axis=member for every axis (repeatable)"),
):
	"""Print the feature string for one explicit selection."""
	context = _context(ctx)
	try:
		configuration = context.configuration_for(_parse_selections(select))
	except KeyError as e:
		typer.secho(str(e), fg=typer.colors.RED, err=True)
		raise typer.Exit(code=2)
	violations = context.engine.violations(configuration)
	if violations:
		for rule in violations:
			pair = " x ".join(f"{axis}={member}" for axis, member in sorted(rule))
			typer.secho(f"Excluded: {pair}", fg=typer.colors.RED, err=True)
		raise typer.Exit(code=1)
	print(context.feature_set(configuration))


@app.command("matrix")
def matrix(
	ctx: typer.Context,
	only: Optional[List[str]] = typer.Option(None, "--only", help="Filter by axis=member (repeatable)"),
	github_output: bool = typer.Option(False, "--github-output", help="Append matrix=<json> to $GITHUB_OUTPUT"),
	pretty: bool = typer.Option(False, "--pretty", help="Indent the printed JSON"),
):
	"""Emit the GitHub Actions matrix for the valid configurations."""
	context = _context(ctx)
	data = GithubMatrixGenerator(context, _filters(context, only)).generate()
	if github_output:
		try:
			write_github_output("matrix", matrix_json(data))
		except ReportingError as e:
			typer.secho(str(e), fg=typer.colors.RED, err=True)
			raise typer.Exit(code=1)
	print(json.dumps(data, indent=2) if pretty else matrix_json(data))


@app.command("run")
def run(
	ctx: typer.Context,
	project_root: Path = typer.Option(PROJECT_ROOT, "--project-root", help="Repository root containing the firmware crate"),
	workers: Optional[int] = typer.Option(None, "--workers", min=1, help="Concurrent configurations (defaults to build.workers)"),
	output_dir: Optional[Path] = typer.Option(None, "--output-dir", help="Report directory (defaults to reporting.output_dir)"),
	only: Optional[List[str]] = typer.Option(None, "--only", help="Filter by axis=member (repeatable)"),
	skip_format: bool = typer.Option(False, "--skip-format", help="Do not run the formatting check"),
):
	"""Lint and build every valid configuration, then publish per-configuration reports."""
	context = _context(ctx)
	try:
		report = run_matrix(
			context,
			project_root,
			workers=workers,
			output_dir=output_dir,
			only=_filters(context, only),
			format_check=False if skip_format else None,
		)
	except ConfigurationError as e:
		typer.secho(str(e), fg=typer.colors.RED, err=True)
		raise typer.Exit(code=2)

	for outcome in report.tolerated_failures:
		typer.secho(f"TOLERATED: {outcome.category}", fg=typer.colors.YELLOW)
	for outcome in report.fatal:
		typer.secho(f"FAILED: {outcome.category}", fg=typer.colors.RED)
	if not report.passed:
		raise typer.Exit(code=1)
	typer.secho("Matrix passed", fg=typer.colors.GREEN)


def main() -> None:
	app()


if __name__ == "__main__":
	main()
