import os
from pathlib import Path

from contract_verifier.libraries.common.logging import get_logger, setup_logging

# For internal use only
_PROJECT_ROOT_DIR = Path(__file__).parent.parent.parent.resolve()
_PACKAGE_DIR = Path(__file__).parent.resolve()
_CONFIG_DIR = _PACKAGE_DIR / "cfg"


ENV_VAR_CONFIG_DIR = "CONTRACT_VERIFIER_CONFIG_DIR"


def get_config_dir() -> Path:
    """Return the current config directory

    The directory can be relocated with the CONTRACT_VERIFIER_CONFIG_DIR env var so that a provider project can keep
    its own verifier.yaml/logging.yaml
    """
    if config_dir := os.environ.get(ENV_VAR_CONFIG_DIR, ""):
        return Path(config_dir).resolve()
    return _CONFIG_DIR


setup_logging(get_config_dir() / "logging.yaml")
logger = get_logger(__name__)
