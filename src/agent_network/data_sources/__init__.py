"""External data sources: token API, Base RPC, wallet-activity indexer."""
