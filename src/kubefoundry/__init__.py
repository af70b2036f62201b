"""KubeFoundry engine: provider translation and admission for inference runtimes."""

__version__ = "0.1.0"
