"""Explicit per-run orchestration context."""

from dataclasses import dataclass, field
from typing import Mapping, Optional

from .resolution import ArgumentResolver
from .state import StateStore
from .types import DescriptorSet


@dataclass
class OrchestrationContext:
    """Everything one run needs, passed explicitly instead of held globally."""

    network: str
    chain_id: int
    descriptors: DescriptorSet
    store: StateStore
    deployer: str  # Deploying identity's address
    environ: Mapping[str, str] = field(default_factory=dict)

    def argument_resolver(self, unit_placeholder: Optional[str] = None) -> ArgumentResolver:
        return ArgumentResolver(
            self.deployer, self.environ, self.store.get_deployment, unit_placeholder
        )
