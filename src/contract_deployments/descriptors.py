"""Deployment descriptor parsers for contract-deployments library."""

from pathlib import Path
from typing import Any, Dict, List, Union

import yaml

from .constants import DEFAULT_PROXY_KIND, DEPLOYER_ACCOUNT
from .exceptions import ConfigurationError
from .types import (
    ArgValue,
    DeployerAddress,
    DeploymentUnit,
    DescriptorSet,
    EnvAddress,
    Initializer,
    LiteralValue,
    ProxyConfig,
    UnitAddress,
    WiringAction,
)

UNIT_KEYS = {
    "name",
    "contract",
    "proxy",
    "args",
    "dependencies",
    "skip_if_already_deployed",
    "initializer",
    "wiring",
}
PROXY_KEYS = {"owner", "kind", "initializer"}


def load_descriptors(file_path: Union[Path, str]) -> DescriptorSet:
    """
    Load a descriptor file.

    YAML is expected; JSON files parse as well since JSON is a YAML subset.

    Args:
        file_path: Path to the descriptor file (e.g. deploy.yaml)

    Returns:
        DescriptorSet with units and wiring actions in declaration order

    Raises:
        ConfigurationError: If the file is missing or malformed
    """
    path = Path(file_path)
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(f"Descriptor file not found: {path}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid descriptor file {path}: {e}") from e

    return parse_descriptors(data)


def parse_descriptors(data: Any) -> DescriptorSet:
    """
    Build a DescriptorSet from already-loaded descriptor data.

    Args:
        data: Mapping with a "units" list

    Returns:
        DescriptorSet

    Raises:
        ConfigurationError: If any unit declaration is malformed
    """
    if not isinstance(data, dict) or not isinstance(data.get("units"), list):
        raise ConfigurationError("Descriptor must be a mapping with a 'units' list")

    units: List[DeploymentUnit] = []
    wiring: List[WiringAction] = []
    for index, raw_unit in enumerate(data["units"]):
        unit = parse_unit(raw_unit, index)
        units.append(unit)
        for raw_action in raw_unit.get("wiring") or []:
            wiring.append(parse_wiring_action(raw_action, unit.name))

    return DescriptorSet(units=units, wiring=wiring)


def parse_unit(raw: Any, index: int = 0) -> DeploymentUnit:
    """
    Parse a single unit declaration.

    Args:
        raw: Unit mapping from the descriptor file
        index: Position in the file, used in error messages

    Returns:
        DeploymentUnit

    Raises:
        ConfigurationError: If the declaration is malformed
    """
    if not isinstance(raw, dict) or not isinstance(raw.get("name"), str) or not raw["name"]:
        raise ConfigurationError(f"Unit #{index} must be a mapping with a non-empty 'name'")

    name = raw["name"]
    unknown = set(raw) - UNIT_KEYS
    if unknown:
        raise ConfigurationError(f"Unit '{name}' has unknown keys: {sorted(unknown)}")

    dependencies = raw.get("dependencies") or []
    if not isinstance(dependencies, list) or not all(isinstance(d, str) for d in dependencies):
        raise ConfigurationError(f"Unit '{name}': 'dependencies' must be a list of names")
    if len(set(dependencies)) != len(dependencies):
        raise ConfigurationError(f"Unit '{name}': duplicate entries in 'dependencies'")

    skip = raw.get("skip_if_already_deployed", False)
    if not isinstance(skip, bool):
        raise ConfigurationError(f"Unit '{name}': 'skip_if_already_deployed' must be a boolean")

    proxy = None
    if raw.get("proxy") is not None:
        proxy = _parse_proxy(raw["proxy"], name)

    initializer = None
    if raw.get("initializer") is not None:
        if proxy is not None:
            raise ConfigurationError(
                f"Unit '{name}': declare the initializer under 'proxy' for proxied units"
            )
        initializer = _parse_initializer(raw["initializer"], name)

    contract = raw.get("contract", name)
    if not isinstance(contract, str) or not contract:
        raise ConfigurationError(f"Unit '{name}': 'contract' must be a non-empty string")

    return DeploymentUnit(
        name=name,
        implementation_ref=contract,
        proxy=proxy,
        constructor_args=_parse_args(raw.get("args"), name),
        dependencies=list(dependencies),
        skip_if_already_deployed=skip,
        initializer=initializer,
    )


def parse_wiring_action(raw: Any, owner_unit: str) -> WiringAction:
    """Parse a wiring action declared under a unit."""
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Unit '{owner_unit}': wiring entries must be mappings")

    target = raw.get("target")
    method = raw.get("method")
    if not isinstance(target, str) or not isinstance(method, str):
        raise ConfigurationError(
            f"Unit '{owner_unit}': wiring entries need string 'target' and 'method'"
        )

    return WiringAction(
        owner_unit=owner_unit,
        target_unit=target,
        method=method,
        args=_parse_args(raw.get("args"), owner_unit),
    )


def parse_value(raw: Any, context: str) -> ArgValue:
    """
    Convert a descriptor value into its tagged argument form.

    Accepted forms:
    - {env: NAME}: address from environment, deployer fallback
    - {unit: NAME}: another unit's address
    - {account: deployer}: the deploying identity
    - {literal: value}: value passed as-is (escape for mappings)
    - any other scalar or list: passed as-is

    Args:
        raw: Descriptor value
        context: Unit name, used in error messages

    Returns:
        Argument value variant
    """
    if not isinstance(raw, dict):
        return LiteralValue(_check_literal(raw, context))

    if len(raw) != 1:
        raise ConfigurationError(f"Unit '{context}': argument mapping must have one key: {raw}")

    kind, value = next(iter(raw.items()))
    if kind == "literal":
        return LiteralValue(_check_literal(value, context))
    if not isinstance(value, str):
        raise ConfigurationError(f"Unit '{context}': '{kind}' must name a string: {raw}")
    if kind == "env":
        return EnvAddress(value)
    if kind == "unit":
        return UnitAddress(value)
    if kind == "account":
        if value != DEPLOYER_ACCOUNT:
            raise ConfigurationError(f"Unit '{context}': unknown account '{value}'")
        return DeployerAddress()

    raise ConfigurationError(f"Unit '{context}': unknown argument form '{kind}'")


def _check_literal(value: Any, context: str) -> Any:
    # Only JSON values can be fingerprinted and recorded
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, list):
        for item in value:
            _check_literal(item, context)
        return value
    if isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                raise ConfigurationError(
                    f"Unit '{context}': literal mapping keys must be strings: {key!r}"
                )
            _check_literal(item, context)
        return value
    raise ConfigurationError(
        f"Unit '{context}': unsupported literal {value!r} of type {type(value).__name__}; "
        "quote it in the descriptor file"
    )


def _parse_args(raw: Any, context: str) -> List[ArgValue]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ConfigurationError(f"Unit '{context}': arguments must be a list")
    return [parse_value(item, context) for item in raw]


def _parse_initializer(raw: Any, context: str) -> Initializer:
    if not isinstance(raw, dict) or not isinstance(raw.get("method"), str):
        raise ConfigurationError(f"Unit '{context}': initializer needs a string 'method'")
    return Initializer(method=raw["method"], args=_parse_args(raw.get("args"), context))


def _parse_proxy(raw: Any, context: str) -> ProxyConfig:
    if raw is True:
        return ProxyConfig()
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Unit '{context}': 'proxy' must be a mapping")

    unknown = set(raw) - PROXY_KEYS
    if unknown:
        raise ConfigurationError(f"Unit '{context}': proxy has unknown keys: {sorted(unknown)}")

    proxy_data: Dict[str, Any] = {"kind": raw.get("kind", DEFAULT_PROXY_KIND)}
    if "owner" in raw:
        proxy_data["owner"] = parse_value(raw["owner"], context)
    if raw.get("initializer") is not None:
        proxy_data["initializer"] = _parse_initializer(raw["initializer"], context)

    return ProxyConfig(**proxy_data)
