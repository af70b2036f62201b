"""Exceptions raised by the KubeFoundry engine.

Request validation problems are not exceptions: they are returned as
field-qualified messages in a ValidationResult. The classes here cover
configuration mistakes and cluster failures.
"""


class KubeFoundryError(Exception):
    """Base exception for all KubeFoundry errors."""

    pass


class AuthenticationError(KubeFoundryError):
    """Could not authenticate against the Kubernetes API."""

    pass


class UnknownProviderError(KubeFoundryError):
    """No provider is registered under the requested id."""

    def __init__(self, provider_id: str, available: list[str] | None = None) -> None:
        self.provider_id = provider_id
        self.available = available or []
        message = f"Provider '{provider_id}' not found"
        if self.available:
            message += f". Available providers: {', '.join(self.available)}"
        super().__init__(message)


class UnknownCatalogEntryError(KubeFoundryError):
    """A premade model key is not present in the curated catalog."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Unknown premade model: {key}")


class ClusterUnavailableError(KubeFoundryError):
    """The cluster could not be reached, or kept failing after retries.

    Transient by nature: 5xx, 429 and network errors end up here once the
    retry policy gives up.
    """

    def __init__(self, message: str, status: int | None = None) -> None:
        self.status = status
        super().__init__(message)


class PermissionDeniedError(KubeFoundryError):
    """The API server answered 403. Never retried."""

    def __init__(self, message: str) -> None:
        self.status = 403
        super().__init__(message)


class ResourceNotFoundError(KubeFoundryError):
    """A resource (or its resource type) does not exist."""

    def __init__(self, kind: str, name: str | None = None, namespace: str | None = None) -> None:
        self.kind = kind
        self.name = name
        self.namespace = namespace
        if name and namespace:
            message = f"{kind} '{name}' not found in namespace '{namespace}'"
        elif name:
            message = f"{kind} '{name}' not found"
        else:
            message = f"{kind} not found"
        super().__init__(message)


class ResourceExistsError(KubeFoundryError):
    """A resource with the same name already exists."""

    def __init__(self, kind: str, name: str, namespace: str | None = None) -> None:
        self.kind = kind
        self.name = name
        self.namespace = namespace
        where = f" in namespace '{namespace}'" if namespace else ""
        super().__init__(f"{kind} '{name}' already exists{where}")
