"""Fan-out of Solana blocks and transactions to JSON-RPC subscribers."""

__version__ = "0.1.0"