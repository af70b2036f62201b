"""NVIDIA Dynamo provider (DynamoGraphDeployment custom resource)."""

from kubefoundry.providers.dynamo.provider import DynamoProvider

__all__ = ["DynamoProvider"]
