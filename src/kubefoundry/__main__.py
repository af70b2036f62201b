"""Command line entry point for the KubeFoundry engine."""

import argparse
import json
import logging
import sys
from typing import Any

import yaml
from pydantic import BaseModel

from kubefoundry import __version__, engine
from kubefoundry.config import AuthMode, LogLevel, configure
from kubefoundry.utils.errors import AuthenticationError, KubeFoundryError

logger = logging.getLogger(__name__)


def setup_logging(level: LogLevel) -> None:
    """Configure logging for the CLI. Logs go to stderr, results to stdout."""
    logging.basicConfig(
        level=level.value,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kubefoundry",
        description="Validate, compile and inspect LLM inference deployments on Kubernetes",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    # Auth options
    parser.add_argument(
        "--auth-mode",
        choices=["auto", "kubeconfig", "token"],
        default=None,
        help="Authentication mode (default: auto)",
    )
    parser.add_argument(
        "--kubeconfig",
        default=None,
        help="Path to kubeconfig file",
    )
    parser.add_argument(
        "--context",
        default=None,
        help="Kubeconfig context to use",
    )

    # Logging
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("providers", help="List registered providers")

    validate_parser = subparsers.add_parser("validate", help="Validate a deployment request")
    validate_parser.add_argument("file", help="Request file (JSON or YAML), '-' for stdin")

    compile_parser = subparsers.add_parser("compile", help="Compile a request into a manifest")
    compile_parser.add_argument("file", help="Request file (JSON or YAML), '-' for stdin")

    fit_parser = subparsers.add_parser("check-fit", help="Check a request against cluster GPU capacity")
    fit_parser.add_argument("file", help="Request file (JSON or YAML), '-' for stdin")
    fit_parser.add_argument(
        "--model-min-gpus",
        type=int,
        default=None,
        help="Minimum GPUs per worker the model needs (default: 1)",
    )

    subparsers.add_parser("capacity", help="Show cluster GPU capacity")

    status_parser = subparsers.add_parser("status", help="Normalize a live custom resource")
    status_parser.add_argument("provider", help="Provider id")
    status_parser.add_argument("file", help="Custom resource file (JSON or YAML), '-' for stdin")

    install_parser = subparsers.add_parser("install-info", help="Show installation metadata")
    install_parser.add_argument("provider", help="Provider id")
    install_parser.add_argument(
        "--refresh-version",
        action="store_true",
        help="Look up the latest operator release before reporting",
    )
    install_parser.add_argument(
        "--check",
        action="store_true",
        help="Also check whether the provider is installed in the cluster",
    )

    return parser


def read_document(path: str) -> Any:
    """Load a JSON or YAML document from a file, or stdin for '-'."""
    if path == "-":
        return yaml.safe_load(sys.stdin)
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f)


def emit(payload: Any) -> None:
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(mode="json", by_alias=True)
    elif isinstance(payload, list):
        payload = [
            p.model_dump(mode="json", by_alias=True) if isinstance(p, BaseModel) else p
            for p in payload
        ]
    json.dump(payload, sys.stdout, indent=2)
    sys.stdout.write("\n")


def _cmd_providers(args: argparse.Namespace) -> int:
    from kubefoundry.providers.registry import list_provider_info

    emit(list_provider_info())
    return 0


def _cmd_validate(args: argparse.Namespace) -> int:
    result = engine.validate(read_document(args.file))
    emit(result)
    return 0 if result.valid else 1


def _cmd_compile(args: argparse.Namespace) -> int:
    result = engine.validate(read_document(args.file))
    if not result.valid or result.normalized is None:
        emit(result)
        return 1
    request = result.normalized
    emit(engine.compile_manifest(request.provider, request))
    return 0


def _cmd_check_fit(args: argparse.Namespace) -> int:
    from kubefoundry.clients.base import get_k8s_client
    from kubefoundry.domains.capacity import format_warnings

    result = engine.validate(read_document(args.file))
    if not result.valid or result.normalized is None:
        emit(result)
        return 1

    with get_k8s_client() as k8s:
        snapshot = engine.build_snapshot(k8s)
    fit_result = engine.check_fit(result.normalized, snapshot, args.model_min_gpus)
    for line in format_warnings(fit_result):
        logger.warning(line)

    emit(
        {
            "fit": fit_result.model_dump(mode="json", by_alias=True),
            "capacity": snapshot.model_dump(mode="json", by_alias=True),
        }
    )
    # Advisory only
    return 0


def _cmd_capacity(args: argparse.Namespace) -> int:
    from kubefoundry.clients.base import get_k8s_client

    with get_k8s_client() as k8s:
        emit(engine.build_snapshot(k8s))
    return 0


def _cmd_status(args: argparse.Namespace) -> int:
    raw = read_document(args.file)
    if not isinstance(raw, dict):
        logger.error(f"Expected a custom resource object, got {type(raw).__name__}")
        return 1
    emit(engine.reduce_status(args.provider, raw))
    return 0


def _cmd_install_info(args: argparse.Namespace) -> int:
    provider = engine.get_provider(args.provider)
    if args.refresh_version:
        provider.refresh_version()

    metrics_endpoint = provider.metrics_endpoint()
    payload: dict[str, Any] = {
        "provider": provider.info().model_dump(mode="json", by_alias=True),
        "crds": [crd.to_dict() for crd in provider.crd_configs()],
        "installationSteps": [s.model_dump(mode="json", by_alias=True) for s in provider.installation_steps()],
        "helmRepos": [r.model_dump(mode="json", by_alias=True) for r in provider.helm_repos()],
        "helmCharts": [c.model_dump(mode="json", by_alias=True) for c in provider.helm_charts()],
        "uninstallResources": provider.uninstall_resources().model_dump(mode="json", by_alias=True),
        "metricsEndpoint": (
            metrics_endpoint.model_dump(mode="json", by_alias=True) if metrics_endpoint else None
        ),
        "keyMetrics": [m.model_dump(mode="json", by_alias=True) for m in provider.key_metrics()],
    }

    if args.check:
        from kubefoundry.clients.base import get_k8s_client

        with get_k8s_client() as k8s:
            status = provider.check_installation(k8s)
        payload["installation"] = status.model_dump(mode="json", by_alias=True)

    emit(payload)
    return 0


COMMANDS = {
    "providers": _cmd_providers,
    "validate": _cmd_validate,
    "compile": _cmd_compile,
    "check-fit": _cmd_check_fit,
    "capacity": _cmd_capacity,
    "status": _cmd_status,
    "install-info": _cmd_install_info,
}


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    # Build config from args, falling back to environment/defaults
    config_kwargs: dict[str, Any] = {}

    if args.auth_mode:
        config_kwargs["auth_mode"] = AuthMode(args.auth_mode)

    if args.kubeconfig:
        config_kwargs["kubeconfig_path"] = args.kubeconfig

    if args.context:
        config_kwargs["kubeconfig_context"] = args.context

    if args.log_level:
        config_kwargs["log_level"] = LogLevel(args.log_level)

    config = configure(**config_kwargs)
    setup_logging(config.log_level)

    try:
        return COMMANDS[args.command](args)
    except AuthenticationError as e:
        logger.error(
            f"Kubernetes authentication failed: {e}. Your credentials may be expired. "
            "Try re-authenticating with: kubectl config set-credentials"
        )
        return 1
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Could not read input: {e}")
        return 1
    except KubeFoundryError as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
