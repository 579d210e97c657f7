"""Unit tests for network and environment configuration."""

import os

import pytest

from contract_deployments.config import (
    load_deployer_key,
    load_env_file,
    load_network_settings,
)
from contract_deployments.constants import NETWORK_CONFIG
from contract_deployments.exceptions import ConfigurationError


class TestLoadNetworkSettings:
    """Test the load_network_settings function."""

    def test_localhost_default(self):
        """Test that local networks fall back to the default node URL."""
        settings = load_network_settings("localhost", {})

        assert settings.chain_id == 31337
        assert settings.rpc_url == "http://127.0.0.1:8545"
        assert settings.verification_key is None

    def test_network_variable_wins(self):
        """Test that the network's own RPC variable takes precedence."""
        environ = {"GOERLI_RPC_URL": "https://rpc.example.com", "ALCHEMY_KEY": "abc"}

        settings = load_network_settings("goerli", environ)

        assert settings.rpc_url == "https://rpc.example.com"
        assert settings.chain_id == 5

    def test_alchemy_template(self):
        """Test that ALCHEMY_KEY fills the provider URL template."""
        settings = load_network_settings("polygon", {"ALCHEMY_KEY": "abc"})

        assert settings.rpc_url == "https://polygon.g.alchemy.com/v2/abc"
        assert settings.block_explorer_url == "https://polygonscan.com"

    def test_verification_key_passed_through(self):
        """Test that explorer credentials are carried on the settings."""
        environ = {"MAINNET_RPC_URL": "https://rpc.example.com", "ETHERSCAN_KEY": "xyz"}

        assert load_network_settings("mainnet", environ).verification_key == "xyz"

    def test_remote_network_requires_url(self):
        """Test that public networks have no default RPC URL."""
        with pytest.raises(ConfigurationError, match="SEPOLIA_RPC_URL"):
            load_network_settings("sepolia", {})

    def test_unknown_network(self):
        """Test that unknown networks list the known ones."""
        with pytest.raises(ConfigurationError, match="localhost"):
            load_network_settings("ropsten", {})

    def test_unknown_network_is_value_error(self):
        """Test that ConfigurationError can be caught as ValueError."""
        with pytest.raises(ValueError):
            load_network_settings("ropsten", {})

    def test_every_network_has_complete_config(self):
        """Test that all configured networks carry every field."""
        for name, network_config in NETWORK_CONFIG.items():
            assert set(network_config) == {
                "chain_id",
                "chain_name",
                "block_explorer_url",
                "default_rpc_env",
                "default_rpc_url",
                "alchemy_url",
                "verification_env",
            }, name


class TestDeployerKey:
    """Test reading the deployer key."""

    def test_reads_key(self):
        """Test that DEPLOYER_KEY is returned as-is."""
        assert load_deployer_key({"DEPLOYER_KEY": "0xabc"}) == "0xabc"

    def test_missing_key(self):
        """Test that a missing key is a configuration error."""
        with pytest.raises(ConfigurationError, match="DEPLOYER_KEY"):
            load_deployer_key({})


class TestLoadEnvFile:
    """Test .env loading."""

    def test_loads_without_overriding(self, tmp_path, monkeypatch):
        """Test that .env values fill gaps but never replace the environment."""
        monkeypatch.setattr(os, "environ", {"GOERLI_RPC_URL": "https://from-shell.example.com"})
        env_file = tmp_path / ".env"
        env_file.write_text(
            "GOERLI_RPC_URL=https://from-file.example.com\n"
            "TRUST_SIGNER_ADDRESS=0x70997970C51812dc3A010C7d01b50e0d17dc79C8\n"
        )

        load_env_file(env_file)

        assert os.environ["GOERLI_RPC_URL"] == "https://from-shell.example.com"
        assert os.environ["TRUST_SIGNER_ADDRESS"] == "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
