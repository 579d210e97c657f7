"""Post-deployment cross-reference calls for contract-deployments library."""

from typing import Collection, List, Optional, Set

import structlog

from .artifacts import ArtifactStore
from .context import OrchestrationContext
from .exceptions import InternalOrderingError
from .resolution import compute_idempotency_key
from .sequencer import TransactionSequencer
from .state import utc_timestamp
from .types import WiringAction, WiringOutcome, WiringRecord

logger = structlog.get_logger()


class WiringExecutor:
    """Executes each wiring action at most once per network."""

    def __init__(
        self,
        context: OrchestrationContext,
        sequencer: TransactionSequencer,
        artifacts: ArtifactStore,
        actions: Optional[List[WiringAction]] = None,
    ):
        self.context = context
        self.sequencer = sequencer
        self.artifacts = artifacts
        self.actions = list(context.descriptors.wiring if actions is None else actions)
        self._visited: Set[int] = set()

    def pending(self) -> List[WiringAction]:
        """Actions not yet visited in this run."""
        return [a for i, a in enumerate(self.actions) if i not in self._visited]

    def ready(self, deployed: Collection[str]) -> List[WiringAction]:
        """
        Claim every unvisited action whose required units are all deployed.

        Args:
            deployed: Names of units that reached the deployed state this run

        Returns:
            Newly ready actions, in declaration order
        """
        actions: List[WiringAction] = []
        for index, action in enumerate(self.actions):
            if index in self._visited:
                continue
            if all(name in deployed for name in action.required_units):
                self._visited.add(index)
                actions.append(action)
        return actions

    def run_ready(self, deployed: Collection[str]) -> List[WiringOutcome]:
        """
        Execute every ready action.

        Raises:
            InternalOrderingError: If a referenced unit lacks a completed record
            OrchestrationError: On permanent submission failures (e.g. AuthorizationError)
        """
        return [self.execute(action) for action in self.ready(deployed)]

    def execute(self, action: WiringAction) -> WiringOutcome:
        """Run a single wiring action unless its idempotency key is already recorded."""
        store = self.context.store
        resolver = self.context.argument_resolver()

        target = store.get_deployment(action.target_unit)
        if target is None or not target.initialized:
            raise InternalOrderingError(
                f"Wiring {action.describe()} scheduled before '{action.target_unit}' was deployed"
            )

        args = resolver.resolve_all(action.args)
        key = compute_idempotency_key(action.target_unit, target.address, action.method, args)

        existing = store.get_wiring(action.target_unit, key)
        if existing is not None:
            logger.info("wiring_skipped", action=action.describe(), key=key)
            return WiringOutcome(
                target=action.target_unit,
                method=action.method,
                status="skipped",
                idempotency_key=key,
                tx_reference=existing.tx_reference,
            )

        target_unit = self.context.descriptors.unit(action.target_unit)
        artifact = self.artifacts.get(target_unit.implementation_ref)
        receipt = self.sequencer.transact(
            artifact.call_data(action.method, args),
            to=target.address,
            label=f"wire {action.describe()}",
        )
        tx_hash = receipt["transactionHash"]
        store.record_wiring(
            action.target_unit,
            WiringRecord(
                idempotency_key=key,
                method=action.method,
                executed_at=utc_timestamp(),
                tx_reference=tx_hash,
            ),
        )
        logger.info("wiring_executed", action=action.describe(), key=key, tx_hash=tx_hash)
        return WiringOutcome(
            target=action.target_unit,
            method=action.method,
            status="executed",
            idempotency_key=key,
            tx_reference=tx_hash,
        )
