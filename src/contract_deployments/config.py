"""Network and environment configuration for contract-deployments library."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Union

from dotenv import load_dotenv

from .constants import ALCHEMY_KEY_ENV, DEPLOYER_KEY_ENV, NETWORK_CONFIG
from .exceptions import ConfigurationError


@dataclass(frozen=True)
class NetworkSettings:
    """Connection settings for one network."""

    name: str
    chain_id: int
    chain_name: str
    rpc_url: str
    block_explorer_url: Optional[str] = None
    # Explorer verification credential; passed through, never used for deployment
    verification_key: Optional[str] = None


def load_env_file(path: Optional[Union[Path, str]] = None) -> None:
    """Load a .env file into os.environ without overriding existing variables."""
    load_dotenv(dotenv_path=path, override=False)


def load_network_settings(
    network: str, environ: Optional[Mapping[str, str]] = None
) -> NetworkSettings:
    """
    Build connection settings for a network.

    The RPC URL comes from the network's own variable (e.g. $GOERLI_RPC_URL),
    else from the Alchemy template with $ALCHEMY_KEY, else the network default.

    Args:
        network: Network name (see constants.NETWORK_CONFIG)
        environ: Environment mapping (defaults to os.environ)

    Returns:
        NetworkSettings

    Raises:
        ConfigurationError: If the network is unknown or has no RPC URL
    """
    if environ is None:
        environ = os.environ

    if network not in NETWORK_CONFIG:
        raise ConfigurationError(
            f"Unknown network '{network}'. Known networks: {', '.join(sorted(NETWORK_CONFIG))}"
        )
    network_config = NETWORK_CONFIG[network]

    rpc_url = environ.get(network_config["default_rpc_env"])
    if not rpc_url and network_config["alchemy_url"] and environ.get(ALCHEMY_KEY_ENV):
        rpc_url = network_config["alchemy_url"].format(key=environ[ALCHEMY_KEY_ENV])
    if not rpc_url:
        rpc_url = network_config["default_rpc_url"]
    if not rpc_url:
        raise ConfigurationError(
            f"RPC URL required for '{network}': set ${network_config['default_rpc_env']} "
            f"or ${ALCHEMY_KEY_ENV}"
        )

    verification_env = network_config["verification_env"]
    return NetworkSettings(
        name=network,
        chain_id=network_config["chain_id"],
        chain_name=network_config["chain_name"],
        rpc_url=rpc_url,
        block_explorer_url=network_config["block_explorer_url"],
        verification_key=environ.get(verification_env) if verification_env else None,
    )


def load_deployer_key(environ: Optional[Mapping[str, str]] = None) -> str:
    """
    Read the deploying identity's private key.

    Raises:
        ConfigurationError: If $DEPLOYER_KEY is not set
    """
    if environ is None:
        environ = os.environ

    key = environ.get(DEPLOYER_KEY_ENV)
    if not key:
        raise ConfigurationError(f"Private key required: set ${DEPLOYER_KEY_ENV}")
    return key
