"""KAITO provider (Workspace and InferenceSet custom resources)."""

from kubefoundry.providers.kaito.provider import KaitoProvider

__all__ = ["KaitoProvider"]
