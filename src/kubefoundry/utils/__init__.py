"""Shared utilities for the KubeFoundry engine."""
