"""Nonce management and transaction submission for contract-deployments library."""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, TypeVar

import structlog
from eth_account.signers.local import LocalAccount
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from .exceptions import ConfirmationTimeoutError, SubmissionError, TransactionRevertedError
from .rpc import JsonRpcClient, RpcError, classify_rpc_error

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass
class SequencerPolicy:
    """Retry, confirmation and fee escalation settings."""

    confirmation_timeout: float = 120.0  # Seconds to wait per (re)submission
    poll_interval: float = 2.0
    max_resubmissions: int = 3  # Same nonce, escalated gas price
    fee_bump: float = 1.25  # Nodes require at least +10% to replace
    max_send_attempts: int = 3  # Per RPC call, for transient failures
    retry_backoff: float = 2.0
    gas_margin: float = 1.2


@dataclass
class PendingTransaction:
    """A transaction broadcast for a nonce, with every hash sent for it."""

    label: str
    nonce: int
    transaction: Dict[str, Any]
    hashes: List[str] = field(default_factory=list)
    before_send: Optional[Callable[[str], None]] = None  # Called with each hash before broadcast


class TransactionSequencer:
    """
    The single path by which transactions leave the deploying identity.

    Assigns strictly increasing nonces, waits for each confirmation, retries
    transient RPC failures and re-submits stuck transactions with a higher
    gas price.
    """

    def __init__(
        self,
        client: JsonRpcClient,
        account: LocalAccount,
        chain_id: int,
        policy: Optional[SequencerPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.account = account
        self.chain_id = chain_id
        self.policy = policy or SequencerPolicy()
        self._sleep = sleep
        self._clock = clock
        self._nonce: Optional[int] = None
        self.submitted = 0

    @property
    def address(self) -> str:
        return self.account.address

    def code_at(self, address: str) -> str:
        """Deployed bytecode at an address ("0x" when none)."""
        return self._retrying(lambda: self.client.get_code(address), f"getCode {address}")

    def receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """Receipt of a mined transaction, or None if it is unknown or still pending."""
        return self._retrying(
            lambda: self.client.get_transaction_receipt(tx_hash), f"receipt {tx_hash}"
        )

    def transact(
        self,
        data: bytes,
        to: Optional[str] = None,
        label: str = "",
        before_send: Optional[Callable[[str], None]] = None,
    ) -> Dict[str, Any]:
        """
        Submit a transaction and wait for its confirmation.

        Args:
            data: Call data, or creation code when `to` is None
            to: Recipient; None deploys a contract
            label: Description for logs and errors
            before_send: Called with every signed hash (original and fee-bumped
                         replacements) before it is broadcast

        Returns:
            Transaction receipt

        Raises:
            AlreadyInitializedError, AuthorizationError, TransactionRevertedError:
                If the preflight estimate or the mined transaction reverts
            SubmissionError: If transient failures exhaust the retry budget
            ConfirmationTimeoutError: If no attempt is confirmed in time
        """
        pending = self.submit(data, to, label, before_send)
        return self.wait(pending)

    def submit(
        self,
        data: bytes,
        to: Optional[str] = None,
        label: str = "",
        before_send: Optional[Callable[[str], None]] = None,
    ) -> PendingTransaction:
        """Estimate, sign and broadcast a transaction under the next nonce."""
        call: Dict[str, Any] = {"from": self.address, "data": "0x" + data.hex()}
        if to is not None:
            call["to"] = to

        gas = self._retrying(lambda: self._rpc(self.client.estimate_gas, call, label=label), label)

        if self._nonce is None:
            self._nonce = self._retrying(
                lambda: self.client.get_transaction_count(self.address, "pending"), label
            )
        gas_price = self._retrying(self.client.gas_price, label)

        transaction: Dict[str, Any] = {
            "nonce": self._nonce,
            "gasPrice": gas_price,
            "gas": int(gas * self.policy.gas_margin),
            "value": 0,
            "data": call["data"],
            "chainId": self.chain_id,
        }
        if to is not None:
            transaction["to"] = to

        pending = PendingTransaction(
            label=label, nonce=self._nonce, transaction=transaction, before_send=before_send
        )
        self._broadcast(pending)
        self._nonce = pending.nonce + 1
        return pending

    def wait(self, pending: PendingTransaction) -> Dict[str, Any]:
        """Block until one of the pending transaction's hashes is mined."""
        resubmissions = 0
        deadline = self._clock() + self.policy.confirmation_timeout

        while True:
            for tx_hash in reversed(pending.hashes):
                receipt = self.receipt(tx_hash)
                if receipt:
                    return self._check_receipt(pending, receipt)

            if self._clock() >= deadline:
                if resubmissions >= self.policy.max_resubmissions:
                    # Whatever lands later is picked up by re-reading the nonce
                    self._nonce = None
                    raise ConfirmationTimeoutError(
                        f"{pending.label}: not confirmed after {resubmissions} resubmission(s) "
                        f"(nonce {pending.nonce}, hashes {pending.hashes})"
                    )
                resubmissions += 1
                self._bump_fee(pending)
                logger.warning(
                    "transaction_resubmitting",
                    label=pending.label,
                    nonce=pending.nonce,
                    gas_price=pending.transaction["gasPrice"],
                    attempt=resubmissions,
                )
                self._broadcast(pending)
                deadline = self._clock() + self.policy.confirmation_timeout
                continue

            self._sleep(self.policy.poll_interval)

    def _check_receipt(self, pending: PendingTransaction, receipt: Dict[str, Any]) -> Dict[str, Any]:
        status = receipt.get("status")
        tx_hash = receipt.get("transactionHash")
        if status is not None and int(status, 16) != 1:
            raise TransactionRevertedError(f"{pending.label}: transaction {tx_hash} reverted")

        logger.info(
            "transaction_confirmed",
            label=pending.label,
            tx_hash=tx_hash,
            block=receipt.get("blockNumber"),
        )
        return receipt

    def _bump_fee(self, pending: PendingTransaction) -> None:
        price = pending.transaction["gasPrice"]
        pending.transaction["gasPrice"] = int(price * self.policy.fee_bump) + 1

    def _broadcast(self, pending: PendingTransaction) -> None:
        """
        Sign and send the pending transaction, appending its hash.

        Node rejections that call for a new signature (stale nonce, underpriced
        replacement) re-sign up to max_send_attempts times.
        """
        for _ in range(self.policy.max_send_attempts):
            signed = self.account.sign_transaction(pending.transaction)
            tx_hash = "0x" + bytes(signed.hash).hex()
            raw = bytes(signed.raw_transaction)
            if pending.before_send is not None:
                pending.before_send(tx_hash)

            try:
                self._retrying(lambda: self.client.send_raw_transaction(raw), pending.label)
            except RpcError as e:
                message = e.message.lower()
                if "already known" in message or "known transaction" in message:
                    pass
                elif "replacement transaction underpriced" in message:
                    self._bump_fee(pending)
                    continue
                elif "nonce too low" in message:
                    if not pending.hashes:
                        # Local nonce is stale: another transaction took it
                        pending.transaction["nonce"] = pending.nonce = self._retrying(
                            lambda: self.client.get_transaction_count(self.address, "pending"),
                            pending.label,
                        )
                        continue
                    # An earlier attempt for this nonce was mined
                    return
                else:
                    raise classify_rpc_error(e, pending.label) from e

            if tx_hash not in pending.hashes:
                pending.hashes.append(tx_hash)
                self.submitted += 1
            logger.info(
                "transaction_sent",
                label=pending.label,
                nonce=pending.nonce,
                tx_hash=tx_hash,
                gas_price=pending.transaction["gasPrice"],
            )
            return

        raise SubmissionError(
            f"{pending.label}: could not broadcast after {self.policy.max_send_attempts} attempts"
        )

    def _rpc(self, method: Callable[..., T], *args: Any, label: str) -> T:
        try:
            return method(*args)
        except RpcError as e:
            raise classify_rpc_error(e, label) from e

    def _retrying(self, fn: Callable[[], T], label: str) -> T:
        """Call fn, retrying SubmissionError with linearly increasing waits."""
        retryer = Retrying(
            retry=retry_if_exception_type(SubmissionError),
            stop=stop_after_attempt(self.policy.max_send_attempts),
            wait=wait_incrementing(
                start=self.policy.retry_backoff, increment=self.policy.retry_backoff
            ),
            sleep=self._sleep,
            before_sleep=lambda state: _log_retry(label, state),
            reraise=True,
        )
        return retryer(fn)


def _log_retry(label: str, state: RetryCallState) -> None:
    logger.warning(
        "rpc_retry",
        label=label,
        attempt=state.attempt_number,
        error=str(state.outcome.exception()),
    )
