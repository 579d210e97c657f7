"""Configuration constants for contract-deployments library."""

# Default proxy artifact, as shipped by hardhat-deploy
DEFAULT_PROXY_KIND = "OptimizedTransparentProxy"

# Account name usable in descriptors as {account: deployer}
DEPLOYER_ACCOUNT = "deployer"

# Stands in for unit addresses when checking argument encoding before a run
PLACEHOLDER_ADDRESS = "0x0000000000000000000000000000000000000001"

DEPLOYER_KEY_ENV = "DEPLOYER_KEY"
ALCHEMY_KEY_ENV = "ALCHEMY_KEY"

# Network configuration, chain ids from ethereum-lists/chains
NETWORK_CONFIG = {
    "localhost": {
        "chain_id": 31337,
        "chain_name": "Hardhat Localhost",
        "block_explorer_url": None,
        "default_rpc_env": "LOCALHOST_RPC_URL",
        "default_rpc_url": "http://127.0.0.1:8545",
        "alchemy_url": None,
        "verification_env": None,
    },
    "hardhat": {
        "chain_id": 31337,
        "chain_name": "Hardhat Network",
        "block_explorer_url": None,
        "default_rpc_env": "HARDHAT_RPC_URL",
        "default_rpc_url": "http://127.0.0.1:8545",
        "alchemy_url": None,
        "verification_env": None,
    },
    "goerli": {
        "chain_id": 5,
        "chain_name": "Goerli",
        "block_explorer_url": "https://goerli.etherscan.io",
        "default_rpc_env": "GOERLI_RPC_URL",
        "default_rpc_url": None,
        "alchemy_url": "https://eth-goerli.alchemyapi.io/v2/{key}",
        "verification_env": "ETHERSCAN_KEY",
    },
    "sepolia": {
        "chain_id": 11155111,
        "chain_name": "Sepolia",
        "block_explorer_url": "https://sepolia.etherscan.io",
        "default_rpc_env": "SEPOLIA_RPC_URL",
        "default_rpc_url": None,
        "alchemy_url": "https://eth-sepolia.g.alchemy.com/v2/{key}",
        "verification_env": "ETHERSCAN_KEY",
    },
    "mainnet": {
        "chain_id": 1,
        "chain_name": "Ethereum Mainnet",
        "block_explorer_url": "https://etherscan.io",
        "default_rpc_env": "MAINNET_RPC_URL",
        "default_rpc_url": None,
        "alchemy_url": "https://eth-mainnet.alchemyapi.io/v2/{key}",
        "verification_env": "ETHERSCAN_KEY",
    },
    "mumbai": {
        "chain_id": 80001,
        "chain_name": "Polygon Mumbai",
        "block_explorer_url": "https://mumbai.polygonscan.com",
        "default_rpc_env": "MUMBAI_RPC_URL",
        "default_rpc_url": None,
        "alchemy_url": "https://polygon-mumbai.g.alchemy.com/v2/{key}",
        "verification_env": "POLYGONSCAN_KEY",
    },
    "polygon": {
        "chain_id": 137,
        "chain_name": "Polygon",
        "block_explorer_url": "https://polygonscan.com",
        "default_rpc_env": "POLYGON_RPC_URL",
        "default_rpc_url": None,
        "alchemy_url": "https://polygon.g.alchemy.com/v2/{key}",
        "verification_env": "POLYGONSCAN_KEY",
    },
}
