"""End-to-end mapping run: load catalogs, process, apply overrides, report."""

from __future__ import annotations

import time
from pathlib import Path
from typing import Optional

from rich.console import Console

from .. import __version__
from ..models.mapping import JobStatus, MappingEntry
from ..providers.base import get_text_generator
from .config import get_effective_config
from .engine import MappingEngine, build_engine
from .errors import LoadError, PreconditionError
from .overrides import apply_overrides, load_overrides
from ..formatters.export import export_report

console = Console()

EXIT_OK = 0
EXIT_NOTHING_TO_PROCESS = 11
EXIT_LOAD_FAILED = 12
EXIT_PROVIDER_FAILED = 13
EXIT_JOB_FAILED = 14


def _cli_overrides(
    ism_path: Optional[str],
    nist_path: Optional[str],
    concurrency: Optional[int],
) -> dict:
    overrides: dict = {}
    if ism_path:
        overrides.setdefault("catalogs", {})["ism"] = {"path": ism_path}
    if nist_path:
        overrides.setdefault("catalogs", {})["nist"] = {"path": nist_path}
    if concurrency:
        overrides.setdefault("processing", {})["concurrency"] = concurrency
    return overrides


def print_stats(engine: MappingEngine) -> None:
    stats = engine.compute_stats()
    console.print()
    console.print("  [bold]Summary[/bold]")
    console.print(f"  ISM controls:     {stats.total_source_controls}")
    console.print(f"  Mapped controls:  {stats.mapped_controls} ({stats.unmapped_count} unmapped)")
    console.print(f"  Correspondences:  {stats.total_mappings}")
    console.print(f"  Avg confidence:   {stats.average_confidence:.1f}%")
    console.print(f"  High confidence:  {stats.high_confidence_count}")
    console.print(f"  Manual overrides: {stats.manual_override_count}")
    for band, count in stats.confidence_distribution.items():
        console.print(f"    [dim]{band:>7}[/dim] {count}")


async def run_mapping(
    config_path: Optional[Path] = None,
    ism_path: Optional[str] = None,
    nist_path: Optional[str] = None,
    control_ids: Optional[list[str]] = None,
    limit: Optional[int] = None,
    concurrency: Optional[int] = None,
    ai_provider: Optional[str] = None,
    ai_model: Optional[str] = None,
    ai_endpoint: Optional[str] = None,
    overrides_path: Optional[Path] = None,
    output_path: Optional[Path] = None,
    output_format: Optional[str] = None,
    min_confidence: Optional[int] = None,
    families: Optional[list[str]] = None,
) -> int:
    """Run one mapping job end to end. Returns exit code."""
    start_time = time.time()
    config = get_effective_config(
        config_path, cli_overrides=_cli_overrides(ism_path, nist_path, concurrency)
    )

    console.print()
    console.print(f"  [bold cyan]CONTROLMAP[/bold cyan] v{__version__}")

    try:
        generator = get_text_generator(
            config,
            provider_override=ai_provider,
            model_override=ai_model,
            endpoint_override=ai_endpoint,
        )
    except ValueError as e:
        console.print(f"  [red]ERROR[/red] Failed to initialize AI provider: {e}")
        return EXIT_PROVIDER_FAILED
    console.print(f"  Provider: [white]{generator.name}[/white] ({generator.model})")

    # Readiness indicator only; processing proceeds regardless
    await generator.test_connectivity()

    engine = build_engine(config, generator=generator)

    console.print("  [cyan]Loading control catalogs...[/cyan]")
    try:
        await engine.catalog.load_all()
    except LoadError as e:
        console.print(f"  [red]ERROR[/red] {e.message}")
        return EXIT_LOAD_FAILED

    if control_ids is None and limit:
        control_ids = [c.id for c in engine.catalog.get_a()[:limit]]
    elif control_ids is not None and limit:
        control_ids = control_ids[:limit]

    def on_progress(processed: int, total: int, latest: Optional[MappingEntry]) -> None:
        if processed == total or processed % 10 == 0:
            console.print(f"  [dim]Progress: {processed}/{total} ({round(processed / total * 100)}%)[/dim]")

    try:
        job_id = await engine.start(control_ids, on_progress=on_progress)
    except PreconditionError as e:
        console.print(f"  [red]ERROR[/red] {e.message}")
        return EXIT_NOTHING_TO_PROCESS

    job = await engine.wait(job_id)
    if job is None or job.status == JobStatus.FAILED:
        console.print(f"  [red]ERROR[/red] Job failed: {job.error if job else 'unknown job'}")
        return EXIT_JOB_FAILED

    if overrides_path:
        entries = load_overrides(overrides_path)
        applied = apply_overrides(engine.mappings, entries)
        console.print(f"  [green]OK[/green] Applied {applied}/{len(entries)} overrides")

    orphans = engine.mappings.orphaned_ids()
    if orphans:
        console.print(
            f"  [yellow]WARN[/yellow] {len(orphans)} mappings reference ISM controls "
            f"not in the loaded catalog: {', '.join(orphans[:5])}"
        )

    print_stats(engine)

    if output_path:
        output_config = config.get("output", {})
        fmt = output_format or output_config.get("format", "json")
        threshold = (
            min_confidence if min_confidence is not None
            else output_config.get("confidence_threshold")
        )
        result = export_report(
            output_path,
            engine.list_mappings(),
            engine.compute_stats(),
            engine.catalog.get_a(),
            engine.catalog.get_b(),
            output_format=fmt,
            include_reasoning=output_config.get("include_reasoning", True),
            confidence_threshold=threshold,
            families=families or output_config.get("families") or None,
        )
        console.print(
            f"  [green]OK[/green] Report: {result['path']} ({result['entries']} controls, {fmt})"
        )

    console.print(f"  [dim]Finished in {round(time.time() - start_time, 1)}s[/dim]")
    console.print()
    return EXIT_OK


async def check_provider(
    config_path: Optional[Path] = None,
    ai_provider: Optional[str] = None,
    ai_model: Optional[str] = None,
    ai_endpoint: Optional[str] = None,
) -> int:
    """Report inference server connectivity and available models."""
    config = get_effective_config(config_path)
    try:
        generator = get_text_generator(
            config,
            provider_override=ai_provider,
            model_override=ai_model,
            endpoint_override=ai_endpoint,
        )
    except ValueError as e:
        console.print(f"  [red]ERROR[/red] {e}")
        return EXIT_PROVIDER_FAILED

    if not await generator.test_connectivity():
        return EXIT_PROVIDER_FAILED

    models = await generator.list_models()
    console.print(f"  [green]OK[/green] {generator.name} reachable at {generator.endpoint}")
    for name in models:
        marker = "*" if generator.model in name else " "
        console.print(f"   {marker} {name}")
    return EXIT_OK


async def show_catalog(
    source: str,
    config_path: Optional[Path] = None,
    catalog_path: Optional[str] = None,
    query: Optional[str] = None,
    families_only: bool = False,
) -> int:
    """List families, or search controls, in one catalog."""
    overrides = _cli_overrides(
        catalog_path if source == "ism" else None,
        catalog_path if source == "nist" else None,
        None,
    )
    config = get_effective_config(config_path, cli_overrides=overrides)
    engine = build_engine(config)

    try:
        if source == "ism":
            await engine.catalog.load_a()
        else:
            await engine.catalog.load_b()
    except LoadError as e:
        console.print(f"  [red]ERROR[/red] {e.message}")
        return EXIT_LOAD_FAILED

    catalog = engine.catalog
    if families_only:
        names = catalog.families_a() if source == "ism" else catalog.families_b()
        for name in names:
            console.print(f"  {name}")
        return EXIT_OK

    if query:
        controls = catalog.search_a(query) if source == "ism" else catalog.search_b(query)
    else:
        controls = catalog.get_a() if source == "ism" else catalog.get_b()

    for control in controls:
        console.print(f"  [cyan]{control.id}[/cyan] {control.title} [dim]({control.family})[/dim]")
    console.print(f"  [dim]{len(controls)} controls[/dim]")
    return EXIT_OK
