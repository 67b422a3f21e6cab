"""Click commands for running the agent and using the diff engine offline."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import click
import yaml

from kubedelta import __version__


@click.group()
@click.version_option(__version__, prog_name="kubedelta")
def cli() -> None:
    """kubedelta - watch Kubernetes objects and report spec changes."""


@cli.command()
def run() -> None:
    """Run the agent until SIGTERM/SIGINT (same as ``python -m kubedelta``)."""
    from kubedelta.app import main

    asyncio.run(main())


def _load_manifest(path: Path) -> Any:
    try:
        with path.open(encoding="utf-8") as fh:
            # JSON is a YAML subset, so one loader covers both.
            return yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        raise click.BadParameter(f"{path}: {exc}") from exc


@cli.command()
@click.argument("old", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("new", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--exit-code",
    is_flag=True,
    help="Exit with status 1 when the manifests differ.",
)
def diff(old: Path, new: Path, exit_code: bool) -> None:
    """Print the change set between two JSON or YAML manifests.

    Paths under /metadata and /status are ignored, as they are for watched
    objects.
    """
    from kubedelta.ledger.diff import SerializationError
    from kubedelta.ledger.diff import diff as compute_diff

    prior = _load_manifest(old)
    incoming = _load_manifest(new)
    try:
        changes = compute_diff(prior, incoming)
    except SerializationError as exc:
        raise click.ClickException(str(exc)) from exc

    click.echo(json.dumps(changes, indent=2, sort_keys=True))
    if exit_code and changes:
        sys.exit(1)


@cli.command()
def kinds() -> None:
    """Discover the cluster and list the resource kinds that would be watched."""
    try:
        names = asyncio.run(_discover_kinds())
    except Exception as exc:
        raise click.ClickException(f"discovery failed: {exc}") from exc
    for name in names:
        click.echo(name)


async def _discover_kinds() -> list[str]:
    import kubernetes_asyncio.config as k8s_config  # type: ignore[import-untyped]
    from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]

    from kubedelta.collector.source import KubernetesSource
    from kubedelta.collector.supervisor import filter_allowed
    from kubedelta.config import load_config

    config = load_config()
    try:
        k8s_config.load_incluster_config()
    except k8s_config.ConfigException:
        await k8s_config.load_kube_config()

    async with k8s_client.ApiClient() as api_client:
        groups = await KubernetesSource(api_client).discover()
    return sorted(str(kind) for kind in filter_allowed(groups, config.watch.resources))
