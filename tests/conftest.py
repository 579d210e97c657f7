"""Shared pytest fixtures for contract-deployments tests."""

import itertools
import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest
import rlp
from eth_abi import encode
from eth_account import Account
from eth_utils import function_signature_to_4byte_selector, keccak, to_checksum_address

from contract_deployments.artifacts import ArtifactStore
from contract_deployments.context import OrchestrationContext
from contract_deployments.descriptors import parse_descriptors
from contract_deployments.exceptions import SubmissionError
from contract_deployments.orchestrator import Orchestrator
from contract_deployments.rpc import RpcError
from contract_deployments.sequencer import SequencerPolicy, TransactionSequencer
from contract_deployments.state import StateStore

# Hardhat's default account #0
DEPLOYER_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
DEPLOYER_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"

CHAIN_ID = 31337
BYTECODE = "0x6080604052348015600f57600080fd5b50"

INITIALIZER_SIGNATURES = (
    "initialize(string,string)",
    "initialize(address)",
    "initialize(address,address,address)",
)


def _function(name: str, *types: str) -> Dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "inputs": [{"name": f"arg{i}", "type": t} for i, t in enumerate(types)],
        "outputs": [],
        "stateMutability": "nonpayable",
    }


def _constructor(*types: str) -> Dict[str, Any]:
    return {
        "type": "constructor",
        "inputs": [{"name": f"arg{i}", "type": t} for i, t in enumerate(types)],
        "stateMutability": "nonpayable",
    }


REGISTRY_ABI = [
    _function("initialize", "string", "string"),
    _function("setController", "address"),
    _function("register", "address"),
]

ARTIFACT_ABIS = {
    "CellIDRegistry": REGISTRY_ABI,
    "CellNameSpace": REGISTRY_ABI,
    "Registry": REGISTRY_ABI,
    "ResolveController": [_function("initialize", "address", "address", "address")],
    "PromptTag": [_constructor("string", "string")],
    "SBTsFactory": [_function("initialize", "address")],
    "OptimizedTransparentProxy": [_constructor("address", "address", "bytes")],
}


class SimulatedCrash(Exception):
    """Stands in for the deploying process being killed."""


class FakeChain:
    """
    In-memory EVM stand-in implementing the JsonRpcClient methods.

    Mines every accepted transaction immediately unless auto_mine is off.
    Contracts enforce single initialization for INITIALIZER_SIGNATURES, and
    calls to denied signatures revert with an Ownable error.
    """

    def __init__(self, chain_id: int = CHAIN_ID, auto_mine: bool = True):
        self._chain_id = chain_id
        self.auto_mine = auto_mine
        self.base_gas_price = 10**9
        self.nonces: Dict[str, int] = {}
        self.code: Dict[str, str] = {}
        self.initialized: set = set()
        self.denied: set = set()
        self.calls: List[Dict[str, Any]] = []
        self.deployments: List[Dict[str, Any]] = []
        self.receipts: Dict[str, Dict[str, Any]] = {}
        self.mempool: Dict[int, Dict[str, Any]] = {}
        self.sent_hashes: List[str] = []
        self.fail_next_sends = 0
        self.interrupt_before: Optional[int] = None
        self.interrupt_after: Optional[int] = None
        self.mined = 0
        self._addresses = itertools.count(0x1000)
        self._blocks = itertools.count(1)
        self._initializer_selectors = {
            "0x" + function_signature_to_4byte_selector(s).hex() for s in INITIALIZER_SIGNATURES
        }

    # Test helpers

    def deny(self, signature: str) -> None:
        self.denied.add("0x" + function_signature_to_4byte_selector(signature).hex())

    def calls_to(self, address: str, signature: str) -> List[Dict[str, Any]]:
        selector = "0x" + function_signature_to_4byte_selector(signature).hex()
        return [
            c for c in self.calls if c["to"].lower() == address.lower() and c["selector"] == selector
        ]

    def wipe(self) -> None:
        """Forget all contract code, like a restarted local node."""
        self.code.clear()
        self.initialized.clear()

    def mine(self) -> None:
        for nonce in sorted(self.mempool):
            self._apply(self.mempool.pop(nonce))

    # JsonRpcClient interface

    def chain_id(self) -> int:
        return self._chain_id

    def get_transaction_count(self, address: str, block: str = "pending") -> int:
        return self.nonces.get(address.lower(), 0)

    def gas_price(self) -> int:
        return self.base_gas_price

    def estimate_gas(self, transaction: Dict[str, Any]) -> int:
        to = transaction.get("to")
        if to is None:
            return 1_000_000
        selector = transaction["data"][:10]
        self._check_call(to, selector, "eth_estimateGas")
        return 100_000

    def send_raw_transaction(self, raw: bytes) -> str:
        if self.fail_next_sends:
            self.fail_next_sends -= 1
            raise SubmissionError("Network error during eth_sendRawTransaction: connection reset")

        fields = rlp.decode(raw)
        sender = Account.recover_transaction(raw)
        tx = {
            "hash": "0x" + keccak(raw).hex(),
            "from": sender,
            "nonce": int.from_bytes(fields[0], "big"),
            "gas_price": int.from_bytes(fields[1], "big"),
            "to": to_checksum_address(fields[3]) if fields[3] else None,
            "data": "0x" + fields[5].hex(),
        }

        expected = self.nonces.get(sender.lower(), 0)
        if tx["nonce"] < expected:
            raise RpcError("eth_sendRawTransaction", -32000, "nonce too low")

        queued = self.mempool.get(tx["nonce"])
        if queued is not None:
            if queued["hash"] == tx["hash"]:
                raise RpcError("eth_sendRawTransaction", -32000, "already known")
            if tx["gas_price"] <= queued["gas_price"]:
                raise RpcError(
                    "eth_sendRawTransaction", -32000, "replacement transaction underpriced"
                )

        if self.interrupt_before is not None and self.mined + 1 == self.interrupt_before:
            self.interrupt_before = None
            raise SimulatedCrash(f"crash before transaction {self.mined + 1}")

        self.sent_hashes.append(tx["hash"])
        self.mempool[tx["nonce"]] = tx
        if self.auto_mine:
            self.mine()

        if self.interrupt_after is not None and self.mined == self.interrupt_after:
            self.interrupt_after = None
            raise SimulatedCrash(f"crash after transaction {self.mined}")

        return tx["hash"]

    def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        return self.receipts.get(tx_hash)

    def get_code(self, address: str, block: str = "latest") -> str:
        return self.code.get(address.lower(), "0x")

    # Execution

    def _check_call(self, to: str, selector: str, method: str) -> None:
        if selector in self._initializer_selectors and to.lower() in self.initialized:
            reason = "Initializable: contract is already initialized"
            raise RpcError(
                method,
                3,
                f"execution reverted: {reason}",
                "0x08c379a0" + encode(["string"], [reason]).hex(),
            )
        if selector in self.denied:
            raise RpcError(method, 3, "execution reverted: Ownable: caller is not the owner")

    def _apply(self, tx: Dict[str, Any]) -> None:
        self.nonces[tx["from"].lower()] = tx["nonce"] + 1
        self.mined += 1
        receipt = {
            "transactionHash": tx["hash"],
            "blockNumber": hex(next(self._blocks)),
            "status": "0x1",
            "contractAddress": None,
        }

        if tx["to"] is None:
            address = to_checksum_address(f"0x{next(self._addresses):040x}")
            self.code[address.lower()] = tx["data"][:64]
            self.deployments.append({"address": address, "data": tx["data"]})
            receipt["contractAddress"] = address
        else:
            selector = tx["data"][:10]
            self.calls.append(
                {"to": tx["to"], "selector": selector, "args": bytes.fromhex(tx["data"][10:])}
            )
            if selector in self._initializer_selectors:
                self.initialized.add(tx["to"].lower())

        self.receipts[tx["hash"]] = receipt


class FakeClock:
    """Monotonic clock advanced only by the sequencer's sleep calls."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def write_artifact(root: Path, name: str, abi: List[Dict[str, Any]], bytecode: str = BYTECODE) -> Path:
    path = root / "contracts" / f"{name}.sol" / f"{name}.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(
            {"_format": "hh-sol-artifact-1", "contractName": name, "abi": abi, "bytecode": bytecode}
        )
    )
    return path


@pytest.fixture
def repo_root() -> Path:
    """Return the repository root (where deploy.yaml lives)."""
    return Path(__file__).parent.parent


@pytest.fixture
def artifacts_dir(tmp_path: Path) -> Path:
    """Create hardhat-style artifacts for every test contract."""
    root = tmp_path / "artifacts"
    for name, abi in ARTIFACT_ABIS.items():
        # Distinct bytecode per contract so fingerprints differ
        write_artifact(root, name, abi, BYTECODE + keccak(text=name).hex()[:8])
    return root


@pytest.fixture
def state_dir(tmp_path: Path) -> Path:
    return tmp_path / "deployments"


@pytest.fixture
def fake_chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def test_policy() -> SequencerPolicy:
    return SequencerPolicy(poll_interval=1.0, retry_backoff=0.0, confirmation_timeout=10.0)


@pytest.fixture
def make_sequencer(
    fake_chain: FakeChain, fake_clock: FakeClock, test_policy: SequencerPolicy
) -> Callable[..., TransactionSequencer]:
    """Build a sequencer for the fake chain, signing as the hardhat deployer."""

    def factory(**overrides: Any) -> TransactionSequencer:
        return TransactionSequencer(
            overrides.get("client", fake_chain),
            Account.from_key(DEPLOYER_KEY),
            CHAIN_ID,
            overrides.get("policy", test_policy),
            sleep=overrides.get("sleep", fake_clock.sleep),
            clock=fake_clock,
        )

    return factory


@pytest.fixture
def make_orchestrator(
    fake_chain: FakeChain,
    artifacts_dir: Path,
    state_dir: Path,
    make_sequencer: Callable[..., TransactionSequencer],
) -> Callable[..., Orchestrator]:
    """
    Build an orchestrator as a fresh process would: new state store, new sequencer.

    Accepts descriptor data (dict) or a loaded DescriptorSet. A `client` or
    `policy` keyword goes to the sequencer, anything else to the Orchestrator.
    """

    def factory(descriptors: Any, environ: Optional[Dict[str, str]] = None, **kwargs: Any) -> Orchestrator:
        if isinstance(descriptors, dict):
            descriptors = parse_descriptors(descriptors)
        sequencer_overrides = {k: kwargs.pop(k) for k in ("client", "policy") if k in kwargs}
        store = StateStore(state_dir / "localhost.json", "localhost", CHAIN_ID)
        context = OrchestrationContext(
            network="localhost",
            chain_id=CHAIN_ID,
            descriptors=descriptors,
            store=store,
            deployer=DEPLOYER_ADDRESS,
            environ=environ or {},
        )
        return Orchestrator(
            context, make_sequencer(**sequencer_overrides), ArtifactStore(artifacts_dir), **kwargs
        )

    return factory
