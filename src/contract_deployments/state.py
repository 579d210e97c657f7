"""Per-network deployment state persistence for contract-deployments library."""

import json
import os
from contextlib import contextmanager
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

import structlog

from .exceptions import ConfigurationError, RunLockedError, StateCorruptedError
from .paths import get_lock_path
from .types import DeploymentRecord, WiringRecord

logger = structlog.get_logger()


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


class StateStore:
    """
    Deployment and wiring records for one network, backed by a JSON file.

    Every write replaces the file atomically, so an interrupted run leaves
    either the previous or the new state on disk.
    """

    def __init__(self, path: Path, network: str, chain_id: Optional[int] = None):
        """
        Load the state file for a network.

        Args:
            path: Path to <network>.json
            network: Network name
            chain_id: Expected chain id; checked against the file when both are known

        Raises:
            StateCorruptedError: If the file exists but cannot be parsed
            ConfigurationError: If the file belongs to another network or chain
        """
        self.path = Path(path)
        self.network = network
        self.chain_id = chain_id
        self._data = self._load()

    def _load(self) -> Dict[str, Any]:
        data = self._read()

        stored_network = data.get("network")
        if stored_network not in (None, self.network):
            raise ConfigurationError(
                f"State file {self.path} belongs to network '{stored_network}', "
                f"not '{self.network}'"
            )

        stored_chain_id = data.get("chain_id")
        if self.chain_id is not None and stored_chain_id not in (None, self.chain_id):
            raise ConfigurationError(
                f"State file {self.path} was written for chain {stored_chain_id}, "
                f"but network '{self.network}' is chain {self.chain_id}"
            )

        data["network"] = self.network
        if self.chain_id is not None:
            data["chain_id"] = self.chain_id
        data.setdefault("units", {})
        return data

    def _read(self) -> Dict[str, Any]:
        try:
            with open(self.path) as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as e:
            raise StateCorruptedError(f"Cannot parse state file {self.path}: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("units", {}), dict):
            raise StateCorruptedError(f"Unexpected layout in state file {self.path}")
        return data

    def _flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        with open(tmp_path, "w") as f:
            json.dump(self._data, f, indent=2, sort_keys=True)
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, self.path)

    def _entry(self, name: str) -> Dict[str, Any]:
        return self._data["units"].setdefault(name, {})

    # Deployment records

    def get_deployment(self, name: str) -> Optional[DeploymentRecord]:
        """
        Get the stored deployment record for a unit.

        Returns:
            DeploymentRecord, or None if the unit was never deployed on this network
        """
        entry = self._data["units"].get(name, {})
        record = entry.get("deployment")
        if record is None:
            return None

        return DeploymentRecord(
            name=name,
            network=self.network,
            address=record["address"],
            implementation=record["implementation"],
            argument_fingerprint=record["argument_fingerprint"],
            initialized=record["initialized"],
            timestamp=record["timestamp"],
            proxy_address=record.get("proxy_address"),
            transactions=dict(record.get("transactions", {})),
            pending={step: list(hashes) for step, hashes in record.get("pending", {}).items()},
        )

    def save_deployment(self, record: DeploymentRecord) -> None:
        """Write a deployment record and flush it to disk."""
        data = asdict(record)
        del data["name"], data["network"]
        self._entry(record.name)["deployment"] = data
        self._flush()
        logger.debug(
            "deployment_record_saved",
            unit=record.name,
            address=record.address,
            initialized=record.initialized,
        )

    # Wiring records

    def get_wiring(self, target: str, key: str) -> Optional[WiringRecord]:
        record = self._data["units"].get(target, {}).get("wiring", {}).get(key)
        if record is None:
            return None
        return WiringRecord(idempotency_key=key, **record)

    def has_wiring(self, target: str, key: str) -> bool:
        return self.get_wiring(target, key) is not None

    def record_wiring(self, target: str, record: WiringRecord) -> None:
        """Write a wiring record under its target unit and flush it to disk."""
        data = asdict(record)
        key = data.pop("idempotency_key")
        self._entry(target).setdefault("wiring", {})[key] = data
        self._flush()

    # Queries

    def addresses(self) -> Dict[str, str]:
        """
        Get live addresses of all fully deployed units.

        Returns:
            Mapping of unit name -> address, in name order
        """
        result: Dict[str, str] = {}
        for name in sorted(self._data["units"]):
            record = self.get_deployment(name)
            if record is not None and record.initialized:
                result[name] = record.address
        return result

    @contextmanager
    def lock(self) -> Iterator[None]:
        """
        Hold the run-level lock for this network.

        Raises:
            RunLockedError: If another run holds the lock
        """
        lock_path = get_lock_path(self.path)
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError as e:
            raise RunLockedError(
                f"Another run holds {lock_path}; remove it if no run is active"
            ) from e

        try:
            os.write(fd, f"{os.getpid()}\n".encode())
            os.close(fd)
            # Another run may have finished since this store was loaded
            self._data = self._load()
            yield
        finally:
            lock_path.unlink(missing_ok=True)
