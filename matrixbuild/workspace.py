import logging
import shutil
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


def prepare_env_file(working_dir: Path, template: Optional[str], env_file: str) -> Optional[Path]:
    """Copy the env template into place so the firmware build finds its .env.

    Returns the written path, or None when there is no template to copy.
    """
    if not template:
        return None
    template_path = Path(working_dir) / template
    if not template_path.is_file():
        logger.info(f"No env template at '{template_path}', skipping.")
        return None
    env_path = Path(working_dir) / env_file
    shutil.copy2(template_path, env_path)
    logger.info(f"Copied {template_path.name} to {env_path}")
    return env_path
