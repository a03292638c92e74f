"""Crypto tracker service layer: API client, cache and market data."""
