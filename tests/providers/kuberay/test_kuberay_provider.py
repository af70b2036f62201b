"""Tests for the KubeRay provider."""

from typing import Any

import pytest
import yaml

from kubefoundry.domains.deployments import (
    DeploymentMode,
    DeploymentPhase,
    Engine,
    KubeRayDeploymentRequest,
)
from kubefoundry.providers.kuberay import KubeRayProvider
from kubefoundry.providers.kuberay.provider import build_ray_service, build_serve_config


def make_request(**fields: Any) -> KubeRayDeploymentRequest:
    data = {
        "name": "qwen",
        "namespace": "ray",
        "provider": "kuberay",
        "modelId": "Qwen/Qwen2.5-7B-Instruct",
        **fields,
    }
    return KubeRayDeploymentRequest.model_validate(data)


class TestServeConfig:
    """Test the Ray Serve application config."""

    def test_aggregated(self) -> None:
        """Aggregated mode builds a single OpenAI app with one LLM config."""
        config = build_serve_config(make_request(acceleratorType="A100", contextLength=8192))

        app = config["applications"][0]
        assert app["name"] == "llm_app"
        assert app["import_path"] == "ray.serve.llm:build_openai_app"
        assert app["runtime_env"] == {"env_vars": {"VLLM_USE_V1": "1"}}

        llm_config = app["args"]["llm_configs"][0]
        assert llm_config["model_loading_config"] == {
            "model_id": "qwen",
            "model_source": "Qwen/Qwen2.5-7B-Instruct",
            "accelerator_type": "A100",
        }
        assert llm_config["deployment_config"] == {
            "autoscaling_config": {"min_replicas": 1, "max_replicas": 2}
        }
        kwargs = llm_config["engine_kwargs"]
        assert kwargs["max_model_len"] == 8192
        assert kwargs["max_num_seqs"] == 40
        assert kwargs["dtype"] == "auto"
        assert "trust_remote_code" not in kwargs

    def test_default_context_length(self) -> None:
        """Without a context length the engine uses 16384."""
        config = build_serve_config(make_request())

        assert config["applications"][0]["args"]["llm_configs"][0]["engine_kwargs"]["max_model_len"] == 16384

    def test_disaggregated(self) -> None:
        """P/D mode pairs a KV producer with a KV consumer."""
        config = build_serve_config(make_request(mode="disaggregated", servedModelName="qwen-7b"))

        app = config["applications"][0]
        assert app["name"] == "pd-disaggregation"
        assert app["import_path"] == "ray.serve.llm:build_pd_openai_app"

        prefill = app["args"]["prefill_config"]
        decode = app["args"]["decode_config"]
        assert prefill["model_loading_config"]["model_id"] == "qwen-7b"
        assert prefill["kv_transfer_config"] == {"kv_connector": "NixlConnector", "kv_role": "kv_producer"}
        assert decode["kv_transfer_config"]["kv_role"] == "kv_consumer"
        assert prefill["deployment_config"]["ray_actor_options"] == {"resources": {"prefill_node": 1}}
        assert "pipeline_parallel_size" not in prefill["engine_kwargs"]


class TestRayServiceManifest:
    """Test RayService compilation."""

    def test_aggregated_manifest(self) -> None:
        """The RayService carries YAML serve config and one GPU worker group."""
        manifest = build_ray_service(make_request(replicas=2, resources={"gpu": 2}))

        assert manifest["apiVersion"] == "ray.io/v1"
        assert manifest["kind"] == "RayService"
        assert manifest["metadata"]["labels"]["app.kubernetes.io/managed-by"] == "kubefoundry"

        serve_config = yaml.safe_load(manifest["spec"]["serveConfigV2"])
        assert serve_config["applications"][0]["name"] == "llm_app"

        cluster = manifest["spec"]["rayClusterConfig"]
        head = cluster["headGroupSpec"]
        assert head["rayStartParams"] == {"num-gpus": "0"}
        head_container = head["template"]["spec"]["containers"][0]
        assert head_container["resources"]["limits"] == {"cpu": "4", "memory": "32Gi"}
        assert {p["name"] for p in head_container["ports"]} == {"gcs-server", "dashboard", "client", "serve"}

        [group] = cluster["workerGroupSpecs"]
        assert group["groupName"] == "gpu-group"
        assert group["replicas"] == 2
        assert group["rayStartParams"] == {}
        worker = group["template"]["spec"]["containers"][0]
        assert worker["resources"]["limits"]["nvidia.com/gpu"] == "2"
        assert group["template"]["spec"]["tolerations"] == [
            {"key": "nvidia.com/gpu", "operator": "Exists", "effect": "NoSchedule"}
        ]

    def test_disaggregated_worker_groups(self) -> None:
        """P/D mode has separate prefill and decode groups with custom resources."""
        manifest = build_ray_service(make_request(mode="disaggregated", decodeGpus=2))

        groups = manifest["spec"]["rayClusterConfig"]["workerGroupSpecs"]
        assert [g["groupName"] for g in groups] == ["prefill-group", "decode-group"]
        assert groups[0]["rayStartParams"] == {"resources": '"{\\"prefill_node\\": 1}"'}
        assert groups[1]["template"]["spec"]["containers"][0]["resources"]["requests"]["nvidia.com/gpu"] == "2"


class TestRayServiceStatus:
    """Test RayService status normalization."""

    @pytest.fixture
    def provider(self) -> KubeRayProvider:
        return KubeRayProvider()

    def test_running(self, provider: KubeRayProvider) -> None:
        """A running service reports model, replicas and the serve service."""
        obj = build_ray_service(make_request(replicas=2))
        obj["status"] = {
            "serviceStatus": "Running",
            "activeServiceStatus": {
                "rayClusterStatus": {"availableWorkerReplicas": 2, "desiredWorkerReplicas": 2}
            },
        }

        status = provider.parse_status(obj)

        assert status.provider == "kuberay"
        assert status.engine == Engine.VLLM
        assert status.mode == DeploymentMode.AGGREGATED
        assert status.model_id == "Qwen/Qwen2.5-7B-Instruct"
        assert status.served_model_name == "qwen"
        assert status.phase == DeploymentPhase.RUNNING
        assert (status.replicas.desired, status.replicas.ready) == (2, 2)
        assert status.frontend_service_ref == "qwen-serve-svc"

    def test_disaggregated_mode_detected(self, provider: KubeRayProvider) -> None:
        """The P/D application marks the deployment disaggregated."""
        obj = build_ray_service(make_request(mode="disaggregated"))

        status = provider.parse_status(obj)

        assert status.mode == DeploymentMode.DISAGGREGATED
        assert status.replicas.desired == 2
        assert status.phase == DeploymentPhase.PENDING

    @pytest.mark.parametrize(
        ("service_status", "phase"),
        [
            ("Unhealthy", DeploymentPhase.FAILED),
            ("WaitForServeDeploymentReady", DeploymentPhase.DEPLOYING),
            ("Pending", DeploymentPhase.DEPLOYING),
            ("", DeploymentPhase.PENDING),
        ],
    )
    def test_phase_mapping(
        self, provider: KubeRayProvider, service_status: str, phase: DeploymentPhase
    ) -> None:
        """Service statuses map onto canonical phases."""
        obj = {"metadata": {"name": "x"}, "status": {"serviceStatus": service_status}}

        assert provider.parse_status(obj).phase == phase

    def test_unparseable_serve_config(self, provider: KubeRayProvider) -> None:
        """Broken serve config YAML leaves the model empty."""
        obj = {"metadata": {"name": "x"}, "spec": {"serveConfigV2": "applications: [unclosed"}}

        status = provider.parse_status(obj)

        assert status.model_id == ""
        assert status.replicas.desired == 1


class TestKubeRayProviderMetadata:
    """Test installation metadata."""

    def test_helm(self) -> None:
        """The operator chart is pinned and installed in the default namespace."""
        provider = KubeRayProvider()

        chart = provider.helm_charts()[0]
        assert chart.chart == "kuberay/kuberay-operator"
        assert chart.version == "1.5.1"
        assert chart.namespace == "default"
        assert chart.create_namespace is False
        assert provider.helm_repos()[0].url == "https://ray-project.github.io/kuberay-helm/"
