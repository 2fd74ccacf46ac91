"""CLI entry point for gateway-openapi."""

from pathlib import Path

import click

from gateway_openapi.document.codec import FORMATS, detect_format, dump_document
from gateway_openapi.errors import ConfigurationError
from gateway_openapi.logging_config import setup_logging
from gateway_openapi.pipeline.aggregator import Aggregator
from gateway_openapi.routing.config_reader import load_proxy_config
from gateway_openapi.settings import AggregationSettings


def _build_aggregator(config_path: Path) -> Aggregator:
    try:
        proxy_config = load_proxy_config(config_path)
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e
    return Aggregator(proxy_config, AggregationSettings())


@click.group()
@click.option("--log-level", default=None, help="Logging level (defaults to $LOG_LEVEL or INFO).")
def main(log_level: str | None):
    """Gateway OpenAPI: aggregate backend OpenAPI documents behind a reverse proxy."""
    setup_logging(log_level)


@main.command()
@click.argument("config_path", type=click.Path(exists=True, path_type=Path))
def services(config_path: Path):
    """List the services declared in a proxy configuration."""
    aggregator = _build_aggregator(config_path)
    found = aggregator.list_services()
    if not found:
        click.echo("No services found.")
        return
    for service in found:
        click.echo(f"{service.name}\t{service.url}")


@main.command()
@click.argument("config_path", type=click.Path(exists=True, path_type=Path))
@click.argument("service_name")
@click.option("-o", "--output", default=None, type=click.Path(path_type=Path), help="Write the document to this file instead of stdout.")
@click.option("--format", "fmt", default=None, type=click.Choice(FORMATS), help="Output format (defaults from the output file suffix, else json).")
def aggregate(config_path: Path, service_name: str, output: Path | None, fmt: str | None):
    """Fetch, filter and merge the OpenAPI documents of one service."""
    aggregator = _build_aggregator(config_path)
    result = aggregator.aggregate(service_name)
    if result is None:
        raise click.ClickException(f"Service '{service_name}' not found or failed to aggregate")

    for warning in result.warnings:
        click.echo(f"warning: {warning}", err=True)

    fmt = fmt or detect_format(output.name if output else None)
    text = dump_document(result.document, fmt)
    if output is None:
        click.echo(text)
        return

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(text, encoding="utf-8")
    click.echo(f"Aggregated spec for {result.service_name} saved to {output}")


@main.command()
@click.argument("config_path", type=click.Path(exists=True, path_type=Path))
@click.argument("service_name")
def reachability(config_path: Path, service_name: str):
    """Show which backend paths each route of a service exposes at the gateway."""
    aggregator = _build_aggregator(config_path)
    routes = aggregator.analyze_reachability(service_name)
    if routes is None:
        raise click.ClickException(f"Service '{service_name}' not found")

    for entry in routes:
        mapping = entry.mapping
        click.echo(f"Route {mapping.route.id} (cluster {mapping.cluster.id}):")
        if entry.result is None:
            click.echo("  document could not be fetched")
            continue
        if entry.result.service_skipped:
            click.echo("  service skipped")
        for gateway_path, path in entry.result.reachable.items():
            methods = ",".join(m.upper() for m in path.operations)
            click.echo(f"  + {gateway_path} <- {path.backend_path} [{methods}]")
        for backend_path in entry.result.unreachable:
            click.echo(f"  - {backend_path}")
        for warning in entry.result.warnings:
            click.echo(f"  ! {warning}")
