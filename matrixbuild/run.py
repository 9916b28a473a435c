import logging
from pathlib import Path
from typing import Dict, Mapping, Optional

from matrixbuild.cache import BuildCache
from matrixbuild.engine.assembly import MatrixContext, assemble
from matrixbuild.errors import ConfigurationError, ReportingError
from matrixbuild.reporting.publisher import ReportPublisher
from matrixbuild.reporting.reporter import ExecutionReporter, RunReport
from matrixbuild.toolchains.base import Toolchain
from matrixbuild.toolchains.cargo import TOOLCHAIN_STRATEGIES, CargoToolchain, create_toolchains
from matrixbuild.validation.definition import MatrixDefinitionValidator
from matrixbuild.workspace import prepare_env_file

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).parent.parent
DEFAULT_DEFINITION = PROJECT_ROOT / "config_sources" / "firmware_matrix.yaml"


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )


def load_context(definition_path: Path = DEFAULT_DEFINITION) -> MatrixContext:
    definition = MatrixDefinitionValidator(definition_path).validate()
    return assemble(definition, known_toolchains=TOOLCHAIN_STRATEGIES)


def run_matrix(
    context: MatrixContext,
    project_root: Path = PROJECT_ROOT,
    *,
    workers: Optional[int] = None,
    output_dir: Optional[Path] = None,
    only: Optional[Dict[str, str]] = None,
    format_check: Optional[bool] = None,
    toolchains: Optional[Mapping[str, Toolchain]] = None,
) -> RunReport:
    build = context.definition.build
    reporting = context.definition.reporting
    working_dir = Path(project_root) / build.working_dir

    configurations = list(context.configurations(only))
    prepare_env_file(working_dir, build.env_template, build.env_file)

    if toolchains is None:
        toolchains = create_toolchains([context.toolchain_of(c) for c in configurations], working_dir)

    fmt_result = None
    run_format = build.format_check if format_check is None else format_check
    if run_format:
        logger.info("--- Checking formatting ---")
        fmt_toolchain = toolchains.get(CargoToolchain.variant) or CargoToolchain(working_dir)
        fmt_result = fmt_toolchain.check_format()
        if fmt_result.ok:
            logger.info("✅ Formatting check passed")
        else:
            logger.error(f"❌ Formatting check failed:\n{fmt_result.output}{fmt_result.stderr}")

    publisher = ReportPublisher(Path(project_root) / (output_dir or reporting.output_dir), reporting.tool_name)
    cache = BuildCache(Path(project_root) / build.cache_dir) if build.cache_dir else None
    reporter = ExecutionReporter(
        context,
        toolchains,
        publisher=publisher,
        cache=cache,
        workers=workers or build.workers,
        working_dir=working_dir,
    )
    report = reporter.run(configurations)
    report.format_check = fmt_result

    try:
        publisher.publish_index(report)
    except ReportingError as e:
        logger.error(f"❌ Could not publish run index: {e}")
    return report


def main():
    configure_logging()
    try:
        context = load_context(DEFAULT_DEFINITION)
    except ConfigurationError as e:
        logger.error(f"❌ {e}")
        raise SystemExit(2)

    report = run_matrix(context, PROJECT_ROOT)
    if not report.passed:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
