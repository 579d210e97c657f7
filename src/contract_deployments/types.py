"""Data types and dataclasses for contract-deployments library."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .constants import DEFAULT_PROXY_KIND


# Argument values (tagged variant)


@dataclass(frozen=True)
class LiteralValue:
    """A value passed to the contract as-is."""

    value: Any


@dataclass(frozen=True)
class EnvAddress:
    """An address read from the environment, falling back to the deployer."""

    variable: str


@dataclass(frozen=True)
class UnitAddress:
    """The public address of another deployment unit."""

    unit: str


@dataclass(frozen=True)
class DeployerAddress:
    """The deploying identity's own address."""

    pass


ArgValue = Union[LiteralValue, EnvAddress, UnitAddress, DeployerAddress]


# Static configuration


@dataclass(frozen=True)
class Initializer:
    """One-time initializer call made after deployment."""

    method: str
    args: List[ArgValue] = field(default_factory=list)


@dataclass(frozen=True)
class ProxyConfig:
    """Upgradeable proxy settings for a unit."""

    owner: ArgValue = DeployerAddress()
    kind: str = DEFAULT_PROXY_KIND
    initializer: Optional[Initializer] = None


@dataclass(frozen=True)
class DeploymentUnit:
    """A single deployable contract, possibly behind a proxy."""

    name: str
    implementation_ref: str
    proxy: Optional[ProxyConfig] = None
    constructor_args: List[ArgValue] = field(default_factory=list)
    dependencies: List[str] = field(default_factory=list)
    skip_if_already_deployed: bool = False
    # Initializer for directly deployed units (no proxy)
    initializer: Optional[Initializer] = None

    @property
    def effective_initializer(self) -> Optional[Initializer]:
        if self.proxy is not None:
            return self.proxy.initializer
        return self.initializer


@dataclass(frozen=True)
class WiringAction:
    """A post-deployment call that records one unit's address inside another."""

    owner_unit: str  # Unit the action is declared on
    target_unit: str
    method: str
    args: List[ArgValue] = field(default_factory=list)

    @property
    def required_units(self) -> List[str]:
        """Units that must be deployed before this action may run, in first-seen order."""
        names = [self.owner_unit, self.target_unit]
        names.extend(arg.unit for arg in self.args if isinstance(arg, UnitAddress))
        return list(dict.fromkeys(names))

    def describe(self) -> str:
        return f"{self.target_unit}.{self.method} (from {self.owner_unit})"


@dataclass
class DescriptorSet:
    """All units and wiring actions of a deployment, in declaration order."""

    units: List[DeploymentUnit]
    wiring: List[WiringAction] = field(default_factory=list)

    def unit(self, name: str) -> DeploymentUnit:
        for unit in self.units:
            if unit.name == name:
                return unit
        raise KeyError(name)


# Persisted state


@dataclass
class DeploymentRecord:
    """What has been deployed for a unit on a network."""

    name: str
    network: str
    address: Optional[str]  # Proxy address if proxied, otherwise implementation
    implementation: Optional[str]
    argument_fingerprint: str
    initialized: bool
    timestamp: str
    proxy_address: Optional[str] = None
    transactions: Dict[str, str] = field(default_factory=dict)  # Step -> confirmed hash
    pending: Dict[str, List[str]] = field(default_factory=dict)  # Step -> hashes sent, unconfirmed


@dataclass
class WiringRecord:
    """A wiring action confirmed executed on a network."""

    idempotency_key: str
    method: str
    executed_at: str
    tx_reference: str


# Run results


class UnitState(Enum):
    """Per-unit executor states."""

    PENDING = "pending"
    RESOLVING = "resolving"
    DEPLOYED = "deployed"
    FAILED = "failed"


@dataclass
class UnitOutcome:
    """Result of one unit in a run: skipped, deployed, failed or blocked."""

    name: str
    status: str
    address: Optional[str] = None
    reason: Optional[str] = None
    transactions: int = 0


@dataclass
class WiringOutcome:
    """Result of one wiring action in a run: skipped, executed or failed."""

    target: str
    method: str
    status: str
    idempotency_key: Optional[str] = None
    tx_reference: Optional[str] = None
    reason: Optional[str] = None


@dataclass
class RunReport:
    """Outcome of an orchestration run."""

    network: str
    units: List[UnitOutcome] = field(default_factory=list)
    wiring: List[WiringOutcome] = field(default_factory=list)
    transactions_submitted: int = 0

    @property
    def ok(self) -> bool:
        return all(u.status in ("skipped", "deployed") for u in self.units) and all(
            w.status != "failed" for w in self.wiring
        )

    @property
    def addresses(self) -> Dict[str, str]:
        return {u.name: u.address for u in self.units if u.address is not None}

    def outcome(self, name: str) -> UnitOutcome:
        for unit in self.units:
            if unit.name == name:
                return unit
        raise KeyError(name)
