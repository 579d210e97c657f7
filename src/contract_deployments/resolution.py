"""Argument resolution, fingerprints and idempotency keys."""

import hashlib
import json
from typing import Any, Callable, List, Mapping, Optional, Sequence

import structlog
from eth_utils import is_address

from .exceptions import InternalOrderingError
from .types import (
    ArgValue,
    DeployerAddress,
    DeploymentRecord,
    DeploymentUnit,
    EnvAddress,
    LiteralValue,
    UnitAddress,
)

logger = structlog.get_logger()


def resolve_env_address(variable: str, environ: Mapping[str, str], deployer: str) -> str:
    """
    Resolve a named address override.

    Uses the environment value verbatim when present and well-formed,
    otherwise the deployer's own address.

    Args:
        variable: Environment variable name (e.g. "TRUST_SIGNER_ADDRESS")
        environ: Environment mapping
        deployer: Deploying identity's address

    Returns:
        Resolved address
    """
    value = environ.get(variable)
    if value and is_address(value):
        return value

    if value:
        logger.warning("malformed_address_override", variable=variable, value=value)
    return deployer


class ArgumentResolver:
    """Turns descriptor argument values into concrete values for one run."""

    def __init__(
        self,
        deployer: str,
        environ: Mapping[str, str],
        record_lookup: Callable[[str], Optional[DeploymentRecord]],
        unit_placeholder: Optional[str] = None,
    ):
        """
        Args:
            deployer: Deploying identity's address
            environ: Environment used for EnvAddress values
            record_lookup: Returns the stored record for a unit name, or None
            unit_placeholder: Address returned for every unit instead of its
                              record, for checking encodings before a run
        """
        self.deployer = deployer
        self.environ = environ
        self.record_lookup = record_lookup
        self.unit_placeholder = unit_placeholder

    def resolve(self, value: ArgValue) -> Any:
        if isinstance(value, LiteralValue):
            return value.value
        if isinstance(value, DeployerAddress):
            return self.deployer
        if isinstance(value, EnvAddress):
            return resolve_env_address(value.variable, self.environ, self.deployer)
        if isinstance(value, UnitAddress):
            return self.unit_address(value.unit)
        raise TypeError(f"Unsupported argument value: {value!r}")

    def resolve_all(self, values: Sequence[ArgValue]) -> List[Any]:
        return [self.resolve(value) for value in values]

    def unit_address(self, name: str) -> str:
        """
        Public address of a deployed unit.

        Raises:
            InternalOrderingError: If the unit has no initialized record
        """
        if self.unit_placeholder is not None:
            return self.unit_placeholder
        record = self.record_lookup(name)
        if record is None or not record.initialized:
            raise InternalOrderingError(
                f"Unit '{name}' is referenced before it has a completed deployment record"
            )
        return record.address


def _digest(payload: Any) -> str:
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=_json_default)
    return hashlib.sha256(encoded.encode()).hexdigest()


def _json_default(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    raise TypeError(f"Cannot fingerprint value of type {type(value).__name__}")


def _normalize(value: Any) -> Any:
    # Addresses compare case-insensitively
    if isinstance(value, str) and is_address(value):
        return value.lower()
    if isinstance(value, list):
        return [_normalize(item) for item in value]
    return value


def compute_fingerprint(
    unit: DeploymentUnit,
    bytecode: str,
    constructor_args: Sequence[Any],
    proxy_owner: Optional[str] = None,
    initializer_args: Optional[Sequence[Any]] = None,
) -> str:
    """
    Hash everything that determines what a unit's deployment looks like.

    Args:
        unit: Unit being deployed
        bytecode: Implementation creation bytecode
        constructor_args: Resolved constructor arguments
        proxy_owner: Resolved proxy owner, for proxied units
        initializer_args: Resolved initializer arguments, if any

    Returns:
        Hex sha256 digest
    """
    initializer = unit.effective_initializer
    payload = {
        "implementation": unit.implementation_ref,
        "bytecode": hashlib.sha256(bytecode.lower().encode()).hexdigest(),
        "args": _normalize(list(constructor_args)),
        "proxy": None,
        "initializer": None,
    }
    if unit.proxy is not None:
        payload["proxy"] = {"kind": unit.proxy.kind, "owner": _normalize(proxy_owner)}
    if initializer is not None:
        payload["initializer"] = {
            "method": initializer.method,
            "args": _normalize(list(initializer_args or [])),
        }
    return _digest(payload)


def compute_idempotency_key(
    target: str, target_address: str, method: str, args: Sequence[Any]
) -> str:
    """
    Stable identifier for a wiring call.

    Changes whenever the target is redeployed or an argument resolves differently.

    Returns:
        Key of the form "<target>.<method>#<sha256 hex>"
    """
    digest = _digest(
        {"target": _normalize(target_address), "method": method, "args": _normalize(list(args))}
    )
    return f"{target}.{method}#{digest}"
