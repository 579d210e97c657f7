"""Path management utilities for contract-deployments library."""

from pathlib import Path
from typing import Optional, Union


def get_default_state_dir() -> Path:
    """
    Get default state directory.

    Returns:
        Path to ./deployments
    """
    return Path.cwd() / "deployments"


def get_default_artifacts_dir() -> Path:
    """
    Get default compiled artifacts directory.

    Returns:
        Path to ./build/artifacts
    """
    return Path.cwd() / "build" / "artifacts"


def get_state_path(network: str, state_dir: Optional[Union[Path, str]] = None) -> Path:
    """
    Get the state file path for a network.

    Args:
        network: Network name
        state_dir: Custom state directory (defaults to ./deployments)

    Returns:
        Path to <state_dir>/<network>.json
    """
    if state_dir is None:
        state_dir = get_default_state_dir()
    else:
        state_dir = Path(state_dir).absolute()

    return state_dir / f"{network}.json"


def get_lock_path(state_path: Path) -> Path:
    """Lock file guarding a network's state file."""
    return state_path.with_name(state_path.name + ".lock")
