"""Kubernetes client used as the engine's cluster collaborator."""

from __future__ import annotations

import logging
from collections.abc import Callable, Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, TypeVar

from kubernetes import client, config
from kubernetes.client import ApiException
from urllib3.exceptions import HTTPError as Urllib3HTTPError

from kubefoundry.config import AuthMode, KubeFoundryConfig, get_config
from kubefoundry.utils.errors import (
    AuthenticationError,
    ClusterUnavailableError,
    KubeFoundryError,
    PermissionDeniedError,
    ResourceExistsError,
    ResourceNotFoundError,
)
from kubefoundry.utils.retry import RetryPolicy, with_retry

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CRDConfig:
    """Address of a namespaced custom resource type."""

    def __init__(
        self,
        api_group: str,
        api_version: str,
        plural: str,
        kind: str,
    ) -> None:
        self.api_group = api_group
        self.api_version = api_version
        self.plural = plural
        self.kind = kind

    @property
    def api_version_string(self) -> str:
        """Get the full apiVersion string (group/version)."""
        if self.api_group:
            return f"{self.api_group}/{self.api_version}"
        return self.api_version

    @property
    def crd_name(self) -> str:
        """Name of the CustomResourceDefinition object (e.g. workspaces.kaito.sh)."""
        return f"{self.plural}.{self.api_group}"

    def to_dict(self) -> dict[str, str]:
        return {
            "apiGroup": self.api_group,
            "apiVersion": self.api_version,
            "plural": self.plural,
            "kind": self.kind,
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CRDConfig):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __hash__(self) -> int:
        return hash((self.api_group, self.api_version, self.plural, self.kind))

    def __repr__(self) -> str:
        return f"CRDConfig({self.api_version_string}, {self.kind})"


class K8sClient:
    """Kubernetes client for nodes, pods and namespaced custom objects.

    Supports multiple authentication modes:
    - auto: Try in-cluster first, fall back to kubeconfig
    - kubeconfig: Use kubeconfig file with optional context
    - token: Use explicit API server URL and token

    Every call goes through the retry policy; API errors are translated into
    the engine's exception hierarchy.
    """

    def __init__(self, config_obj: KubeFoundryConfig | None = None) -> None:
        self._config = config_obj or get_config()
        self._retry_policy = RetryPolicy.from_config(self._config)
        self._api_client: client.ApiClient | None = None
        self._core_v1: client.CoreV1Api | None = None
        self._custom_objects: client.CustomObjectsApi | None = None

    def connect(self) -> None:
        """Establish connection to Kubernetes API."""
        try:
            self._api_client = self._create_api_client()
            self._core_v1 = client.CoreV1Api(self._api_client)
            self._custom_objects = client.CustomObjectsApi(self._api_client)
            logger.info("Connected to Kubernetes API")
        except AuthenticationError:
            raise
        except Exception as e:
            raise AuthenticationError(f"Failed to connect to Kubernetes API: {e}") from e

    def disconnect(self) -> None:
        """Close connection to Kubernetes API."""
        if self._api_client:
            self._api_client.close()
            self._api_client = None
            self._core_v1 = None
            self._custom_objects = None
            logger.info("Disconnected from Kubernetes API")

    @property
    def is_connected(self) -> bool:
        """Check if client is connected."""
        return self._api_client is not None

    def _create_api_client(self) -> client.ApiClient:
        """Create API client based on authentication mode."""
        auth_mode = self._config.auth_mode

        if auth_mode == AuthMode.TOKEN:
            return self._create_token_client()
        elif auth_mode == AuthMode.KUBECONFIG:
            return self._create_kubeconfig_client()
        else:  # AUTO
            return self._create_auto_client()

    def _create_token_client(self) -> client.ApiClient:
        """Create client using explicit token authentication."""
        if not self._config.api_server or not self._config.api_token:
            raise AuthenticationError(
                "api_server and api_token are required for token authentication"
            )

        configuration = client.Configuration()
        configuration.host = self._config.api_server
        configuration.api_key = {"authorization": f"Bearer {self._config.api_token}"}
        configuration.verify_ssl = True

        return client.ApiClient(configuration)

    def _create_kubeconfig_client(self) -> client.ApiClient:
        """Create client using kubeconfig file."""
        kubeconfig_path = self._config.effective_kubeconfig_path
        if not kubeconfig_path.exists():
            raise AuthenticationError(f"Kubeconfig not found: {kubeconfig_path}")

        return config.new_client_from_config(
            config_file=str(kubeconfig_path),
            context=self._config.kubeconfig_context,
        )

    def _create_auto_client(self) -> client.ApiClient:
        """Auto-detect authentication mode."""
        if Path("/var/run/secrets/kubernetes.io/serviceaccount/token").exists():
            logger.info("Using in-cluster authentication")
            config.load_incluster_config()
            configuration = client.Configuration.get_default_copy()
            return client.ApiClient(configuration)

        kubeconfig_path = self._config.effective_kubeconfig_path
        if kubeconfig_path.exists():
            logger.info(f"Using kubeconfig: {kubeconfig_path}")
            return config.new_client_from_config(
                config_file=str(kubeconfig_path),
                context=self._config.kubeconfig_context,
            )

        raise AuthenticationError(
            "No valid authentication method found. "
            "Not running in-cluster and no kubeconfig available."
        )

    @property
    def core_v1(self) -> client.CoreV1Api:
        """Get the CoreV1 API client."""
        if not self._core_v1:
            raise KubeFoundryError("Client not connected. Call connect() first.")
        return self._core_v1

    @property
    def custom_objects(self) -> client.CustomObjectsApi:
        """Get the CustomObjects API client."""
        if not self._custom_objects:
            raise KubeFoundryError("Client not connected. Call connect() first.")
        return self._custom_objects

    def _call(
        self,
        fn: Callable[[], T],
        operation: str,
        kind: str,
        name: str | None = None,
        namespace: str | None = None,
    ) -> T:
        """Run one API call under the retry policy and translate failures."""
        try:
            return with_retry(fn, self._retry_policy, operation_name=operation)
        except ApiException as e:
            if e.status == 404:
                raise ResourceNotFoundError(kind, name, namespace) from e
            if e.status == 403:
                raise PermissionDeniedError(f"Forbidden: {operation}: {e.reason}") from e
            if e.status == 401:
                raise AuthenticationError(f"Unauthorized: {operation}: {e.reason}") from e
            if e.status == 409:
                raise ResourceExistsError(kind, name or "unknown", namespace) from e
            raise ClusterUnavailableError(
                f"Failed to {operation}: {e.reason}", status=e.status
            ) from e
        except (Urllib3HTTPError, ConnectionError, TimeoutError) as e:
            raise ClusterUnavailableError(f"Failed to {operation}: {e}") from e
        except ValueError as e:
            # Response did not deserialize into the client models
            raise ClusterUnavailableError(f"Failed to {operation}: invalid response: {e}") from e

    # Core resources used for capacity accounting and installation checks
    def list_nodes(self) -> list[Any]:
        """List all nodes."""
        result = self._call(self.core_v1.list_node, "list nodes", "Node")
        return list(result.items)

    def list_pods_for_all_namespaces(self) -> list[Any]:
        """List pods across all namespaces."""
        result = self._call(
            self.core_v1.list_pod_for_all_namespaces, "list pods", "Pod"
        )
        return list(result.items)

    def list_namespaced_pods(
        self,
        namespace: str,
        label_selector: str | None = None,
    ) -> list[Any]:
        """List pods in a namespace."""
        kwargs: dict[str, Any] = {"namespace": namespace}
        if label_selector:
            kwargs["label_selector"] = label_selector
        result = self._call(
            lambda: self.core_v1.list_namespaced_pod(**kwargs),
            f"list pods in {namespace}",
            "Pod",
            namespace=namespace,
        )
        return list(result.items)

    # Custom objects
    def get_custom_object(
        self,
        crd: CRDConfig,
        name: str,
        namespace: str,
    ) -> dict[str, Any]:
        """Get a namespaced custom object by name."""
        result: dict[str, Any] = self._call(
            lambda: self.custom_objects.get_namespaced_custom_object(
                group=crd.api_group,
                version=crd.api_version,
                namespace=namespace,
                plural=crd.plural,
                name=name,
            ),
            f"get {crd.kind} '{name}'",
            crd.kind,
            name,
            namespace,
        )
        return result

    def list_custom_objects(
        self,
        crd: CRDConfig,
        namespace: str,
        label_selector: str | None = None,
    ) -> list[dict[str, Any]]:
        """List namespaced custom objects."""
        kwargs: dict[str, Any] = {
            "group": crd.api_group,
            "version": crd.api_version,
            "namespace": namespace,
            "plural": crd.plural,
        }
        if label_selector:
            kwargs["label_selector"] = label_selector
        result = self._call(
            lambda: self.custom_objects.list_namespaced_custom_object(**kwargs),
            f"list {crd.kind}",
            crd.kind,
            namespace=namespace,
        )
        return list(result.get("items", []))

    def create_custom_object(
        self,
        crd: CRDConfig,
        body: dict[str, Any],
        namespace: str,
    ) -> dict[str, Any]:
        """Create a namespaced custom object."""
        name = body.get("metadata", {}).get("name", "unknown")
        result: dict[str, Any] = self._call(
            lambda: self.custom_objects.create_namespaced_custom_object(
                group=crd.api_group,
                version=crd.api_version,
                namespace=namespace,
                plural=crd.plural,
                body=body,
            ),
            f"create {crd.kind} '{name}'",
            crd.kind,
            name,
            namespace,
        )
        return result

    def delete_custom_object(
        self,
        crd: CRDConfig,
        name: str,
        namespace: str,
    ) -> None:
        """Delete a namespaced custom object."""
        self._call(
            lambda: self.custom_objects.delete_namespaced_custom_object(
                group=crd.api_group,
                version=crd.api_version,
                namespace=namespace,
                plural=crd.plural,
                name=name,
            ),
            f"delete {crd.kind} '{name}'",
            crd.kind,
            name,
            namespace,
        )


@contextmanager
def get_k8s_client(
    config_obj: KubeFoundryConfig | None = None,
) -> Generator[K8sClient, None, None]:
    """Context manager for K8s client with automatic cleanup."""
    k8s_client = K8sClient(config_obj)
    k8s_client.connect()
    try:
        yield k8s_client
    finally:
        k8s_client.disconnect()
