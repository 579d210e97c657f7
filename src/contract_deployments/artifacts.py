"""Compiled contract artifacts and ABI encoding for contract-deployments library."""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from eth_abi import encode
from eth_abi.exceptions import EncodingError
from eth_utils import function_signature_to_4byte_selector
from eth_utils.abi import collapse_if_tuple

from .exceptions import ArtifactNotFoundError, ConfigurationError


@dataclass(frozen=True)
class Artifact:
    """A compiled contract: ABI plus creation bytecode."""

    name: str
    abi: List[Dict[str, Any]]
    bytecode: str  # 0x-prefixed hex

    def constructor_inputs(self) -> List[Dict[str, Any]]:
        for item in self.abi:
            if item.get("type") == "constructor":
                return item.get("inputs", [])
        return []

    def function_abi(self, method: str, arg_count: int) -> Dict[str, Any]:
        """
        Find a function by name and arity.

        Raises:
            ConfigurationError: If no function or more than one overload matches
        """
        matches = [
            item
            for item in self.abi
            if item.get("type") == "function"
            and item.get("name") == method
            and len(item.get("inputs", [])) == arg_count
        ]
        if not matches:
            raise ConfigurationError(
                f"Contract '{self.name}' has no function '{method}' taking {arg_count} argument(s)"
            )
        if len(matches) > 1:
            raise ConfigurationError(
                f"Contract '{self.name}' has ambiguous overloads of '{method}' "
                f"taking {arg_count} argument(s)"
            )
        return matches[0]

    def deploy_data(self, args: Sequence[Any]) -> bytes:
        """Creation bytecode followed by ABI-encoded constructor arguments."""
        inputs = self.constructor_inputs()
        if len(inputs) != len(args):
            raise ConfigurationError(
                f"Contract '{self.name}' constructor takes {len(inputs)} argument(s), "
                f"got {len(args)}"
            )
        return bytes.fromhex(self.bytecode[2:]) + _encode_args(self.name, inputs, args)

    def call_data(self, method: str, args: Sequence[Any]) -> bytes:
        """Function selector followed by ABI-encoded arguments."""
        function = self.function_abi(method, len(args))
        types = [collapse_if_tuple(item) for item in function.get("inputs", [])]
        selector = function_signature_to_4byte_selector(f"{method}({','.join(types)})")
        return selector + _encode_args(self.name, function.get("inputs", []), args)


def _coerce(abi_type: str, value: Any) -> Any:
    # Descriptor files carry bytes as 0x-prefixed hex strings
    if abi_type.startswith("bytes") and isinstance(value, str) and value.startswith("0x"):
        return bytes.fromhex(value[2:])
    return value


def _encode_args(name: str, inputs: List[Dict[str, Any]], args: Sequence[Any]) -> bytes:
    types = [collapse_if_tuple(item) for item in inputs]
    values = [_coerce(t, v) for t, v in zip(types, args)]
    try:
        return encode(types, values)
    except (EncodingError, TypeError, ValueError) as e:
        raise ConfigurationError(f"Cannot encode arguments for '{name}' as {types}: {e}") from e


def parse_artifact(file_path: Path) -> Artifact:
    """
    Parse a hardhat artifact JSON file.

    Args:
        file_path: Path to <Contract>.json

    Returns:
        Artifact

    Raises:
        ConfigurationError: If abi/bytecode are missing or bytecode needs library linking
    """
    with open(file_path) as f:
        data = json.load(f)

    if "abi" not in data or "bytecode" not in data:
        raise ConfigurationError(f"Artifact {file_path} lacks 'abi' or 'bytecode'")

    bytecode = data["bytecode"]
    if not bytecode.startswith("0x"):
        bytecode = "0x" + bytecode
    if "__" in bytecode:
        raise ConfigurationError(f"Artifact {file_path} has unlinked library references")
    if bytecode == "0x":
        raise ConfigurationError(f"Artifact {file_path} is abstract (empty bytecode)")

    name = data.get("contractName", file_path.stem)
    return Artifact(name=name, abi=data["abi"], bytecode=bytecode)


class ArtifactStore:
    """Looks up compiled artifacts by contract name under an artifacts directory."""

    def __init__(self, root: Path):
        self.root = Path(root)
        self._cache: Dict[str, Artifact] = {}

    def _find(self, name: str) -> Optional[Path]:
        candidates = sorted(
            p for p in self.root.rglob(f"{name}.json") if "build-info" not in p.parts
        )
        if len(candidates) > 1:
            raise ConfigurationError(
                f"Contract name '{name}' is ambiguous under {self.root}: "
                f"{[str(p) for p in candidates]}"
            )
        return candidates[0] if candidates else None

    def get(self, name: str) -> Artifact:
        """
        Get an artifact by contract name.

        Raises:
            ArtifactNotFoundError: If no artifact with that name exists
        """
        if name not in self._cache:
            path = self._find(name)
            if path is None:
                raise ArtifactNotFoundError(f"No compiled artifact '{name}' under {self.root}")
            self._cache[name] = parse_artifact(path)
        return self._cache[name]
