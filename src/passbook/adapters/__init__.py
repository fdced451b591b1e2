"""Adapters that connect the core pipeline to storage, mail exports and the oracle."""
