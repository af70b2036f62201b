"""Core domains: deployment requests and cluster capacity."""
