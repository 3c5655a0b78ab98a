"""controlmap - AI-assisted ISM to NIST 800-53 control mapping."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import click

from .. import __version__

DEFAULT_OVERRIDES_FILE = "controlmap-overrides.yaml"


def _split_csv(value: str | None) -> list[str] | None:
    if not value:
        return None
    return [v.strip() for v in value.split(",") if v.strip()]


@click.group()
@click.version_option(version=__version__)
def controlmap_cli() -> None:
    """controlmap - Map ISM controls to NIST 800-53 with a local LLM."""


@controlmap_cli.command()
@click.option("--config", "-c", "config_path", type=click.Path(exists=True), help="Config YAML file")
@click.option("--ism", type=click.Path(exists=True), help="Local ISM OSCAL catalog")
@click.option("--nist", type=click.Path(exists=True), help="Local NIST 800-53 OSCAL catalog")
@click.option("--controls", type=str, help="Comma-separated ISM control ids to process")
@click.option("--limit", type=click.IntRange(min=1), help="Process at most N controls")
@click.option("--concurrency", type=click.IntRange(min=1), help="Controls analyzed per window")
@click.option("--ai-provider", type=click.Choice(["ollama", "openai-compatible"]))
@click.option("--ai-model", type=str, help="Model override")
@click.option("--ai-endpoint", type=str, help="Endpoint override")
@click.option("--overrides", "overrides_path", type=click.Path(), help="Reviewer overrides YAML")
@click.option("--output", "-o", type=click.Path(), help="Write report to this path")
@click.option("--format", "-f", "output_format", type=click.Choice(["json", "csv"]))
@click.option("--min-confidence", type=click.IntRange(0, 100), help="Only export entries at/above this")
@click.option("--families", type=str, help="Comma-separated ISM families to export")
def run(
    config_path: str | None,
    ism: str | None,
    nist: str | None,
    controls: str | None,
    limit: int | None,
    concurrency: int | None,
    ai_provider: str | None,
    ai_model: str | None,
    ai_endpoint: str | None,
    overrides_path: str | None,
    output: str | None,
    output_format: str | None,
    min_confidence: int | None,
    families: str | None,
) -> None:
    """Load both catalogs and map every selected ISM control.

    Example: controlmap run --ism ism.json --nist nist.json --limit 20 -o mappings.json
    """
    from ..core.pipeline import run_mapping

    exit_code = asyncio.run(
        run_mapping(
            config_path=Path(config_path) if config_path else None,
            ism_path=ism,
            nist_path=nist,
            control_ids=_split_csv(controls),
            limit=limit,
            concurrency=concurrency,
            ai_provider=ai_provider,
            ai_model=ai_model,
            ai_endpoint=ai_endpoint,
            overrides_path=Path(overrides_path) if overrides_path else None,
            output_path=Path(output) if output else None,
            output_format=output_format,
            min_confidence=min_confidence,
            families=_split_csv(families),
        )
    )
    sys.exit(exit_code)


@controlmap_cli.command()
@click.option("--config", "-c", "config_path", type=click.Path(exists=True), help="Config YAML file")
@click.option("--ai-provider", type=click.Choice(["ollama", "openai-compatible"]))
@click.option("--ai-model", type=str, help="Model override")
@click.option("--ai-endpoint", type=str, help="Endpoint override")
def check(
    config_path: str | None,
    ai_provider: str | None,
    ai_model: str | None,
    ai_endpoint: str | None,
) -> None:
    """Check the inference server is reachable and list its models."""
    from ..core.pipeline import check_provider

    exit_code = asyncio.run(
        check_provider(
            config_path=Path(config_path) if config_path else None,
            ai_provider=ai_provider,
            ai_model=ai_model,
            ai_endpoint=ai_endpoint,
        )
    )
    sys.exit(exit_code)


@controlmap_cli.command()
@click.argument("source", type=click.Choice(["ism", "nist"]))
@click.option("--config", "-c", "config_path", type=click.Path(exists=True), help="Config YAML file")
@click.option("--path", "catalog_path", type=click.Path(exists=True), help="Local OSCAL catalog")
@click.option("--search", "-q", "query", type=str, help="Match id, title or description")
@click.option("--families", "families_only", is_flag=True, help="List family names only")
def catalog(
    source: str,
    config_path: str | None,
    catalog_path: str | None,
    query: str | None,
    families_only: bool,
) -> None:
    """Browse the ISM or NIST catalog.

    Example: controlmap catalog nist --search "account management"
    """
    from ..core.pipeline import show_catalog

    exit_code = asyncio.run(
        show_catalog(
            source,
            config_path=Path(config_path) if config_path else None,
            catalog_path=catalog_path,
            query=query,
            families_only=families_only,
        )
    )
    sys.exit(exit_code)


@controlmap_cli.command()
@click.argument("ism_control_id")
@click.argument("nist_control_id")
@click.option("--file", "overrides_file", type=click.Path(), default=DEFAULT_OVERRIDES_FILE,
              show_default=True, help="Overrides YAML file")
@click.option("--confidence", type=click.IntRange(0, 100), default=100, show_default=True)
@click.option("--reason", "-r", default="Manual review", help="Why the controls correspond")
@click.option("--remove", is_flag=True, help="Remove the override instead")
def override(
    ism_control_id: str,
    nist_control_id: str,
    overrides_file: str,
    confidence: int,
    reason: str,
    remove: bool,
) -> None:
    """Record a reviewer correspondence to apply on future runs.

    Example: controlmap override ISM-0714 AC-2 --confidence 90 -r "Both cover account provisioning"
    """
    from ..core.overrides import add_override_entry, remove_override_entry

    path = Path(overrides_file)
    if remove:
        if remove_override_entry(path, ism_control_id, nist_control_id):
            click.echo(f"Removed override {ism_control_id} -> {nist_control_id.upper()}")
        else:
            click.echo(f"No override for {ism_control_id} -> {nist_control_id.upper()}", err=True)
            sys.exit(1)
        return

    entry = add_override_entry(path, ism_control_id, nist_control_id, confidence, reason)
    click.echo(
        f"Override {entry['ism_control_id']} -> {entry['nist_control_id']} "
        f"({entry['confidence']}%): {reason}"
    )
    click.echo(f"Saved to {path}")


def main() -> None:
    controlmap_cli()


if __name__ == "__main__":
    main()
