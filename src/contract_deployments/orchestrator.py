"""Main API for contract-deployments library."""

import os
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Union

import structlog
from eth_account import Account

from .artifacts import ArtifactStore
from .config import NetworkSettings
from .constants import PLACEHOLDER_ADDRESS
from .context import OrchestrationContext
from .exceptions import ConfigurationError, InternalOrderingError, OrchestrationError
from .executor import DeploymentExecutor
from .paths import get_default_artifacts_dir, get_state_path
from .resolver import dependency_closure, resolve_order, validate_units
from .rpc import JsonRpcClient
from .sequencer import SequencerPolicy, TransactionSequencer
from .state import StateStore
from .types import (
    DeploymentUnit,
    DescriptorSet,
    RunReport,
    UnitOutcome,
    UnitState,
    WiringAction,
    WiringOutcome,
)
from .wiring import WiringExecutor

logger = structlog.get_logger()


class Orchestrator:
    """Deploys and wires a descriptor set on one network."""

    def __init__(
        self,
        context: OrchestrationContext,
        sequencer: TransactionSequencer,
        artifacts: ArtifactStore,
        force: bool = False,
        keep_going: bool = False,
    ):
        """
        Args:
            context: Descriptors, state store and network identity for the run
            sequencer: Submission path for every transaction
            artifacts: Compiled contract lookup
            force: Redeploy protected units whose fingerprint changed
            keep_going: On failure, continue with units that do not depend on
                        the failed one instead of halting the whole run
        """
        self.context = context
        self.sequencer = sequencer
        self.artifacts = artifacts
        self.force = force
        self.keep_going = keep_going

    @classmethod
    def from_settings(
        cls,
        settings: NetworkSettings,
        descriptors: DescriptorSet,
        private_key: str,
        state_dir: Optional[Union[Path, str]] = None,
        artifacts_dir: Optional[Union[Path, str]] = None,
        environ: Optional[Mapping[str, str]] = None,
        policy: Optional[SequencerPolicy] = None,
        force: bool = False,
        keep_going: bool = False,
    ) -> "Orchestrator":
        """
        Build an orchestrator talking JSON-RPC to a live network.

        Args:
            settings: Network connection settings
            descriptors: Units and wiring actions
            private_key: Deploying identity's key
            state_dir: State directory (defaults to ./deployments)
            artifacts_dir: Hardhat artifacts (defaults to ./build/artifacts)
            environ: Environment for address overrides (defaults to os.environ)
            policy: Sequencer retry/fee policy
        """
        account = Account.from_key(private_key)
        client = JsonRpcClient(settings.rpc_url)
        store = StateStore(get_state_path(settings.name, state_dir), settings.name, settings.chain_id)
        context = OrchestrationContext(
            network=settings.name,
            chain_id=settings.chain_id,
            descriptors=descriptors,
            store=store,
            deployer=account.address,
            environ=dict(os.environ if environ is None else environ),
        )
        sequencer = TransactionSequencer(client, account, settings.chain_id, policy)
        artifacts = ArtifactStore(Path(artifacts_dir) if artifacts_dir else get_default_artifacts_dir())
        return cls(context, sequencer, artifacts, force=force, keep_going=keep_going)

    def plan(self, only: Optional[Sequence[str]] = None) -> List[DeploymentUnit]:
        """
        Validate descriptors and return the units a run would visit, in order.

        Raises:
            ConfigurationError: On any descriptor problem (including cycles and
                                unresolved references)
        """
        descriptors = self.context.descriptors
        validate_units(descriptors.units, descriptors.wiring)
        ordered = resolve_order(descriptors.units)
        if only:
            ordered = dependency_closure(ordered, only)
        return ordered

    def preflight(self, units: Sequence[DeploymentUnit], actions: Sequence[WiringAction]) -> None:
        """
        Check artifacts, argument encodings and chain identity before any transaction.

        Every constructor, proxy, initializer and wiring call is encoded
        against its ABI, with unit addresses stood in by a placeholder.

        Raises:
            ConfigurationError: If anything a run needs is missing or mismatched
        """
        resolver = self.context.argument_resolver(unit_placeholder=PLACEHOLDER_ADDRESS)

        for unit in units:
            artifact = self.artifacts.get(unit.implementation_ref)
            if len(artifact.constructor_inputs()) != len(unit.constructor_args):
                raise ConfigurationError(
                    f"Unit '{unit.name}': {artifact.name} constructor takes "
                    f"{len(artifact.constructor_inputs())} argument(s), "
                    f"{len(unit.constructor_args)} declared"
                )
            artifact.deploy_data(resolver.resolve_all(unit.constructor_args))

            initializer = unit.effective_initializer
            if initializer is not None:
                artifact.call_data(initializer.method, resolver.resolve_all(initializer.args))

            if unit.proxy is not None:
                proxy_artifact = self.artifacts.get(unit.proxy.kind)
                if len(proxy_artifact.constructor_inputs()) != 3:
                    raise ConfigurationError(
                        f"Proxy '{unit.proxy.kind}' must take (implementation, admin, data)"
                    )
                proxy_artifact.deploy_data(
                    [PLACEHOLDER_ADDRESS, resolver.resolve(unit.proxy.owner), b""]
                )

        for action in actions:
            target = self.context.descriptors.unit(action.target_unit)
            self.artifacts.get(target.implementation_ref).call_data(
                action.method, resolver.resolve_all(action.args)
            )

        chain_id = self.sequencer.client.chain_id()
        if chain_id != self.context.chain_id:
            raise ConfigurationError(
                f"RPC endpoint for '{self.context.network}' reports chain {chain_id}, "
                f"expected {self.context.chain_id}"
            )

    def run(self, only: Optional[Sequence[str]] = None) -> RunReport:
        """
        Deploy and wire every unit (or the requested units and their dependencies).

        Args:
            only: Unit names to scope the run to

        Returns:
            RunReport with one outcome per unit in scope and per wiring action visited

        Raises:
            ConfigurationError: Before any transaction, on descriptor/artifact problems
            RunLockedError: If another run holds the network lock
        """
        ordered = self.plan(only)
        scope = {unit.name for unit in ordered}
        actions = [
            action
            for action in self.context.descriptors.wiring
            if all(name in scope for name in action.required_units)
        ]
        self.preflight(ordered, actions)

        with self.context.store.lock():
            return self._execute(ordered, actions)

    def _execute(self, ordered: List[DeploymentUnit], actions: List[WiringAction]) -> RunReport:
        executor = DeploymentExecutor(self.context, self.sequencer, self.artifacts, force=self.force)
        wiring = WiringExecutor(self.context, self.sequencer, self.artifacts, actions=actions)
        report = RunReport(network=self.context.network)
        states: Dict[str, UnitState] = {unit.name: UnitState.PENDING for unit in ordered}
        deployed: List[str] = []
        halted_by: Optional[str] = None
        submitted_before = self.sequencer.submitted

        logger.info(
            "run_started",
            network=self.context.network,
            deployer=self.context.deployer,
            units=[unit.name for unit in ordered],
        )

        for unit in ordered:
            if halted_by is not None:
                report.units.append(
                    UnitOutcome(name=unit.name, status="blocked", reason=f"run halted: {halted_by}")
                )
                continue

            failed = [d for d in unit.dependencies if states[d] != UnitState.DEPLOYED]
            if failed:
                report.units.append(
                    UnitOutcome(
                        name=unit.name,
                        status="blocked",
                        reason=f"dependencies not deployed: {', '.join(failed)}",
                    )
                )
                continue

            states[unit.name] = UnitState.RESOLVING
            try:
                outcome = executor.deploy(unit)
            except OrchestrationError as e:
                states[unit.name] = UnitState.FAILED
                reason = f"{type(e).__name__}: {e}"
                logger.error("unit_failed", unit=unit.name, error=reason)
                report.units.append(UnitOutcome(name=unit.name, status="failed", reason=reason))
                if not self.keep_going or isinstance(e, InternalOrderingError):
                    halted_by = f"unit '{unit.name}' failed"
                continue

            states[unit.name] = UnitState.DEPLOYED
            deployed.append(unit.name)
            report.units.append(outcome)

            for action in wiring.ready(deployed):
                if halted_by is not None:
                    report.wiring.append(
                        WiringOutcome(
                            target=action.target_unit,
                            method=action.method,
                            status="blocked",
                            reason=halted_by,
                        )
                    )
                    continue
                try:
                    report.wiring.append(wiring.execute(action))
                except OrchestrationError as e:
                    reason = f"{type(e).__name__}: {e}"
                    logger.error("wiring_failed", action=action.describe(), error=reason)
                    report.wiring.append(
                        WiringOutcome(
                            target=action.target_unit,
                            method=action.method,
                            status="failed",
                            reason=reason,
                        )
                    )
                    if not self.keep_going or isinstance(e, InternalOrderingError):
                        halted_by = f"wiring {action.describe()} failed"

        for action in wiring.pending():
            report.wiring.append(
                WiringOutcome(
                    target=action.target_unit,
                    method=action.method,
                    status="blocked",
                    reason=halted_by or "required units not deployed",
                )
            )

        report.transactions_submitted = self.sequencer.submitted - submitted_before
        logger.info(
            "run_finished",
            network=self.context.network,
            ok=report.ok,
            transactions=report.transactions_submitted,
        )
        return report

    def status(self) -> Dict[str, str]:
        """
        Get live addresses from the state store without touching the network.

        Returns:
            Mapping of unit name -> address for fully deployed units
        """
        return self.context.store.addresses()
