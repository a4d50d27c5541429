"""
CryptoVIX Configuration Module

YAML-backed aggregator configuration with environment overrides.
"""

from cryptovix.config.aggregator_config import AggregatorConfig, load_aggregator_config

__all__ = ["AggregatorConfig", "load_aggregator_config"]
