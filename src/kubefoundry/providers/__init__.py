"""Inference runtime providers and the provider registry."""
