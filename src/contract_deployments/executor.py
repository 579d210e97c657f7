"""Per-unit deployment for contract-deployments library."""

from typing import Any, Dict, Optional, Tuple

import structlog
from eth_utils import to_checksum_address

from .artifacts import ArtifactStore
from .context import OrchestrationContext
from .exceptions import AlreadyInitializedError, FingerprintMismatchError
from .resolution import compute_fingerprint
from .sequencer import TransactionSequencer
from .state import utc_timestamp
from .types import DeploymentRecord, DeploymentUnit, UnitOutcome

logger = structlog.get_logger()


class DeploymentExecutor:
    """
    Deploys a unit's implementation, proxy and initializer, or skips it.

    Each confirmed step is recorded before the next one starts, and each
    contract creation is recorded as pending before it is broadcast. A
    resumed run reuses whatever code is present on chain, at a recorded
    address or created by a pending transaction, and re-attempts only the
    missing steps.
    """

    def __init__(
        self,
        context: OrchestrationContext,
        sequencer: TransactionSequencer,
        artifacts: ArtifactStore,
        force: bool = False,
    ):
        self.context = context
        self.sequencer = sequencer
        self.artifacts = artifacts
        self.force = force

    @property
    def store(self):
        return self.context.store

    def deploy(self, unit: DeploymentUnit) -> UnitOutcome:
        """
        Bring a unit to the deployed state.

        Args:
            unit: Unit whose dependencies are all deployed

        Returns:
            UnitOutcome with status "skipped" or "deployed"

        Raises:
            FingerprintMismatchError: If a protected unit changed and force is off
            OrchestrationError: On any permanent submission failure
        """
        resolver = self.context.argument_resolver()
        artifact = self.artifacts.get(unit.implementation_ref)
        initializer = unit.effective_initializer

        constructor_args = resolver.resolve_all(unit.constructor_args)
        owner = resolver.resolve(unit.proxy.owner) if unit.proxy is not None else None
        init_args = resolver.resolve_all(initializer.args) if initializer is not None else None
        fingerprint = compute_fingerprint(
            unit, artifact.bytecode, constructor_args, owner, init_args
        )

        # Encode up front so malformed arguments fail before any transaction
        deploy_data = artifact.deploy_data(constructor_args)
        init_data = (
            artifact.call_data(initializer.method, init_args) if initializer is not None else None
        )
        proxy_artifact = self.artifacts.get(unit.proxy.kind) if unit.proxy is not None else None

        record = self.store.get_deployment(unit.name)
        if record is not None and record.initialized:
            if not self._is_live(record):
                logger.warning("unit_missing_on_chain", unit=unit.name, address=record.address)
            elif record.argument_fingerprint == fingerprint:
                logger.info("unit_skipped", unit=unit.name, address=record.address)
                return UnitOutcome(name=unit.name, status="skipped", address=record.address)
            elif unit.skip_if_already_deployed and not self.force:
                raise FingerprintMismatchError(
                    f"Unit '{unit.name}' is deployed at {record.address} with different "
                    "arguments or bytecode; re-run with force to redeploy it"
                )
            else:
                logger.info("unit_changed", unit=unit.name, previous=record.address)
            record = None
        elif record is not None and record.argument_fingerprint != fingerprint:
            # Partial progress from a different configuration is abandoned
            record = None

        submitted_before = self.sequencer.submitted
        draft = DeploymentRecord(
            name=unit.name,
            network=self.context.network,
            address=None,
            implementation=None,
            argument_fingerprint=fingerprint,
            initialized=False,
            timestamp=utc_timestamp(),
        )

        implementation: Optional[str] = None
        proxy_address: Optional[str] = None
        if record is not None:
            implementation, tx_hash = self._recover(record, "implementation", record.implementation)
            if implementation is not None:
                draft.implementation = draft.address = implementation
                self._confirm(draft, "implementation", tx_hash)
                if proxy_artifact is not None:
                    proxy_address, tx_hash = self._recover(record, "proxy", record.proxy_address)
                    if proxy_address is not None:
                        draft.proxy_address = draft.address = proxy_address
                        self._confirm(draft, "proxy", tx_hash)
                logger.info(
                    "unit_resuming",
                    unit=unit.name,
                    implementation=implementation,
                    proxy=proxy_address,
                )

        if implementation is None:
            receipt = self._create(
                draft, "implementation", deploy_data, f"{unit.name}: deploy {artifact.name}"
            )
            implementation = to_checksum_address(receipt["contractAddress"])
            draft.implementation = draft.address = implementation
            self._confirm(draft, "implementation", receipt["transactionHash"])
            self._save(draft)

        if proxy_artifact is not None and proxy_address is None:
            receipt = self._create(
                draft,
                "proxy",
                proxy_artifact.deploy_data([implementation, owner, b""]),
                f"{unit.name}: deploy {proxy_artifact.name}",
            )
            proxy_address = to_checksum_address(receipt["contractAddress"])
            draft.proxy_address = draft.address = proxy_address
            self._confirm(draft, "proxy", receipt["transactionHash"])
            self._save(draft)

        address = draft.address
        if initializer is not None:
            try:
                receipt = self.sequencer.transact(
                    init_data, to=address, label=f"{unit.name}: {initializer.method}"
                )
                draft.transactions["initializer"] = receipt["transactionHash"]
            except AlreadyInitializedError:
                # The contract's own guard confirms an earlier attempt landed
                logger.info("initializer_already_applied", unit=unit.name, address=address)

        draft.initialized = True
        self._save(draft)
        sent = self.sequencer.submitted - submitted_before
        logger.info("unit_deployed", unit=unit.name, address=address, transactions=sent)
        return UnitOutcome(name=unit.name, status="deployed", address=address, transactions=sent)

    def _create(
        self, draft: DeploymentRecord, step: str, data: bytes, label: str
    ) -> Dict[str, Any]:
        """Send a contract creation, recording every signed hash before it is broadcast."""

        def track(tx_hash: str) -> None:
            hashes = draft.pending.setdefault(step, [])
            if tx_hash not in hashes:
                hashes.append(tx_hash)
                self._save(draft)

        return self.sequencer.transact(data, label=label, before_send=track)

    def _recover(
        self, record: DeploymentRecord, step: str, address: Optional[str]
    ) -> Tuple[Optional[str], Optional[str]]:
        """
        Find code a creation step of an earlier run left on chain.

        Checks the recorded address first, then the receipts of creations
        that were sent but never confirmed by that run.

        Returns:
            (address, confirming transaction hash), or (None, None) if the
            step has to be sent again
        """
        if address and self._has_code(address):
            return address, record.transactions.get(step)

        for tx_hash in record.pending.get(step, []):
            receipt = self.sequencer.receipt(tx_hash)
            if not receipt or not receipt.get("contractAddress"):
                continue
            if receipt.get("status") is not None and int(receipt["status"], 16) != 1:
                continue
            created = to_checksum_address(receipt["contractAddress"])
            if self._has_code(created):
                logger.info(
                    "creation_recovered",
                    unit=record.name,
                    step=step,
                    address=created,
                    tx_hash=tx_hash,
                )
                return created, tx_hash
        return None, None

    @staticmethod
    def _confirm(draft: DeploymentRecord, step: str, tx_hash: Optional[str]) -> None:
        draft.pending.pop(step, None)
        if tx_hash:
            draft.transactions[step] = tx_hash

    def _save(self, draft: DeploymentRecord) -> None:
        draft.timestamp = utc_timestamp()
        self.store.save_deployment(draft)

    def _has_code(self, address: str) -> bool:
        code = self.sequencer.code_at(address)
        return bool(code) and code.lower() not in ("0x", "0x0")

    def _is_live(self, record: DeploymentRecord) -> bool:
        if not self._has_code(record.address):
            return False
        return record.proxy_address is None or self._has_code(record.implementation)
