"""Collateralized lending risk engine."""
