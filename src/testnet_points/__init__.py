"""Testnet points and tier accounting service."""
