"""
solwatch: real-time Solana wallet activity notifier.

Keeps one live log subscription per watched address, turns every new
transaction signature into an enriched, human-readable summary and hands it
to a delivery channel. Modular layout: listener, analysis engine, store,
alerts, worker wiring and API server.
"""

__version__ = "2.0.0"
