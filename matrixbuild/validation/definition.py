import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from matrixbuild.errors import ConfigurationError
from shared_libs.config_models.matrix_models import MatrixDefinition

logger = logging.getLogger(__name__)


class MatrixDefinitionValidator:
    """Validates the matrix definition YAML file and returns a MatrixDefinition model."""

    def __init__(self, file_path: Path):
        self.file_path = Path(file_path)

    def validate(self) -> MatrixDefinition:
        logger.info(f"--- Validating Matrix Definition: {self.file_path} ---")
        if not self.file_path.is_file():
            logger.error(f"❌ Matrix definition not found at '{self.file_path}'")
            raise ConfigurationError(f"Matrix definition not found at '{self.file_path}'")

        try:
            with open(self.file_path, "r") as f:
                loaded_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.error(f"❌ Error loading matrix YAML: {e}")
            raise ConfigurationError(f"Could not parse '{self.file_path}': {e}") from e

        return validate_definition_data(loaded_data, source=str(self.file_path))


def validate_definition_data(loaded_data, source: str = "<data>") -> MatrixDefinition:
    if not loaded_data:
        logger.error("❌ Matrix definition is empty or invalid.")
        raise ConfigurationError(f"Matrix definition '{source}' is empty or invalid.")
    if not isinstance(loaded_data, dict):
        raise ConfigurationError(f"Matrix definition '{source}' must be a mapping at the top level.")

    try:
        definition = MatrixDefinition.model_validate(loaded_data)
    except ValidationError as e:
        logger.error("❌ Pydantic Validation Failed for matrix definition!")
        errors = [
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
            for err in e.errors()
        ]
        raise ConfigurationError(f"Matrix definition '{source}' failed validation.", errors) from e

    logger.info("✅ Matrix Structure Validation Successful!")
    logger.info(f"   Axes Found: {len(definition.axes)}")
    logger.info(f"   Exclusions Found: {len(definition.exclude)}")
    return definition
