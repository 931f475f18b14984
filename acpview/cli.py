# acpview/cli.py
"""
ACPVIEW CLI -- Click commands with a rich terminal UI.

Provides the ``acpview`` console entry-point declared in pyproject.toml as
``acpview.cli:cli``.  Commands call into the engine modules:

- queries:      the ACP query catalog for a patient
- sync:         QueryExecutor + ReferenceResolver into the file cache
- view:         AcpDataReconciler over the file cache
- find-patient: identifier lookup on a FHIR server
- artifacts:    CRMI artifact search, canonical URLs, status changes
- config:       AcpViewConfig display
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape as _esc

from . import __version__
from . import cli_theme as theme
from .acp import AcpDataReconciler, AcpQuery, QueryExecutor, QueryStatus, build_acp_queries
from .acp.models import IntegratedDataset, TreatmentDirectiveView
from .acp.patient import legally_capable_info, legally_capable_text, patient_name, source_label
from .cache import FileStore, ResourceCache
from .config import AcpViewConfig, get_config
from .crmi import ARTIFACT_TYPES, CrmiArtifactService, PublicationStatus, generate_canonical_url, valid_transitions
from .errors import AcpViewError, ArtifactStatusError
from .fhir.client import FhirClient
from .resources.dates import parse_fhir_datetime
from .resources.models import OperationOutcome, Patient, is_operation_outcome
from .utils.logging import get_log_directory, log_sync_start, setup_logging

console = Console()
logger = logging.getLogger(__name__)


def _print_version(
    ctx: click.Context,
    _param: click.Parameter,
    value: bool,
) -> None:
    if not value or ctx.resilient_parsing:
        return
    theme.print_version(__version__, console)
    ctx.exit()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _effective_config(server: Optional[str] = None, depth: Optional[int] = None) -> AcpViewConfig:
    """Global config with CLI flag overrides applied."""
    cfg = get_config()
    update: dict[str, object] = {}
    if server:
        update["server_url"] = server.strip().rstrip("/")
    if depth is not None:
        update["reference_resolution_depth"] = depth
    return cfg.model_copy(update=update) if update else cfg


def _make_client(cfg: AcpViewConfig) -> FhirClient:
    return FhirClient.from_config(cfg)


def _open_cache(cache_dir: Optional[Path], cfg: AcpViewConfig) -> ResourceCache:
    return ResourceCache(FileStore(cache_dir or cfg.cache_dir))


def _status_badge(query: AcpQuery) -> str:
    variants = {
        QueryStatus.SUCCESS: "success",
        QueryStatus.ERROR: "error",
        QueryStatus.RUNNING: "warn",
    }
    return theme.badge(query.status.value.upper(), variants.get(query.status, "default"))


def _fmt_date(value: object) -> str:
    parsed = parse_fhir_datetime(value) if isinstance(value, str) else value
    if parsed is None:
        return "[dim]-[/dim]"
    return parsed.strftime("%d-%m-%Y")


# ---------------------------------------------------------------------------
# Main CLI group
# ---------------------------------------------------------------------------


@click.group(invoke_without_command=True)
@click.option(
    "--version",
    is_flag=True,
    callback=_print_version,
    expose_value=False,
    is_eager=True,
    help="Show version and exit.",
)
@click.option("--log-level", type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False), default=None, help="Log level for the session log file.")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Also log to stderr.")
@click.pass_context
def cli(ctx: click.Context, log_level: Optional[str], verbose: bool) -> None:
    """ACPVIEW -- Advance Care Planning sync & reconciliation for FHIR."""
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        return
    cfg = get_config()
    log_dir = get_log_directory() if os.getenv("ACPVIEW_LOG_DIR") else cfg.log_dir
    setup_logging(level=log_level, log_dir=log_dir, console_output=verbose)
    theme.print_banner(__version__, console, server_url=cfg.server_url)


# ---------------------------------------------------------------------------
# queries
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("patient_id")
def queries(patient_id: str) -> None:
    """List the ACP searches run for PATIENT_ID.

    \b
    Examples:
      acpview queries 12345
    """
    theme.section("ACP Query Catalog", console, "01")
    t = theme.make_table()
    t.add_column("#", style="dim", justify="right")
    t.add_column("Title", style="bold")
    t.add_column("Search")
    for i, query in enumerate(build_acp_queries(patient_id), 1):
        t.add_row(str(i), _esc(query.title), _esc(query.url))
    console.print(t)
    console.print()


# ---------------------------------------------------------------------------
# sync
# ---------------------------------------------------------------------------


async def _run_sync(
    cfg: AcpViewConfig,
    cache: ResourceCache,
    catalog: list[AcpQuery],
    resolve: bool,
) -> Optional[AcpQuery]:
    async with _make_client(cfg) as client:
        executor = QueryExecutor(client, cache, cfg)
        await executor.execute_all(catalog)
        if not resolve:
            return None
        return await executor.resolve_references(catalog)


@cli.command()
@click.argument("patient_id")
@click.option("--server", type=str, default=None, help="FHIR base URL (overrides ACPVIEW_SERVER_URL).")
@click.option("--depth", type=click.IntRange(1, 5), default=None, help="Reference resolution depth (1-5).")
@click.option("--no-resolve", is_flag=True, default=False, help="Skip fetching referenced resources.")
@click.option("--cache-dir", type=click.Path(file_okay=False, path_type=Path), default=None, help="Cache directory (default: ~/.acpview/cache).")
def sync(
    patient_id: str,
    server: Optional[str],
    depth: Optional[int],
    no_resolve: bool,
    cache_dir: Optional[Path],
) -> None:
    """Fetch ACP resources for PATIENT_ID into the local cache.

    \b
    Examples:
      acpview sync 12345
      acpview sync 12345 --server https://hapi.fhir.org/baseR4 --depth 3
    """
    cfg = _effective_config(server, depth)
    cache = _open_cache(cache_dir, cfg)
    catalog = build_acp_queries(patient_id)
    log_sync_start(logger, patient_id, cfg.server_url, len(catalog))

    try:
        with theme.spinner(f"Syncing Patient/{patient_id} from {cfg.server_url}", console):
            resolved = asyncio.run(_run_sync(cfg, cache, catalog, resolve=not no_resolve))
    except AcpViewError as exc:
        raise click.ClickException(str(exc))

    theme.section("Queries", console, "01")
    t = theme.make_table()
    t.add_column("Query", style="bold")
    t.add_column("Status")
    t.add_column("Entries", justify="right")
    t.add_column("Message", style="dim")
    rows = [*catalog, resolved] if resolved is not None else catalog
    for query in rows:
        t.add_row(
            _esc(query.title),
            _status_badge(query),
            str(len(query.entries)),
            _esc(query.error_message or ""),
        )
    console.print(t)

    failed = [q for q in rows if q.status is QueryStatus.ERROR]
    if failed:
        console.print(theme.warn(f"{len(failed)} of {len(rows)} queries failed"))
        for query in failed:
            console.print(theme.err(_esc(f"{query.title}: {query.error_message}")))
    else:
        console.print(theme.ok(f"All {len(rows)} queries succeeded"))
    console.print(theme.info(f"Cache: {cache_dir or cfg.cache_dir}"))
    console.print()


# ---------------------------------------------------------------------------
# view
# ---------------------------------------------------------------------------


def _directive_rows(label: str, directives: list[TreatmentDirectiveView]) -> list[tuple[str, ...]]:
    rows = []
    for d in directives:
        detail = d.specification_other or ""
        rows.append((label, _esc(d.title), _fmt_date(d.date), _esc(detail)))
    return rows


def _render_dataset(data: IntegratedDataset) -> None:
    patient = data.current_patient

    theme.section("Patient", console, "01")
    t = theme.make_kv_table()
    t.add_row("Name", _esc(patient_name(patient)))
    t.add_row("Id", _esc(patient.id or "") if patient else "")
    t.add_row("Birth date", _esc(patient.birth_date or "") if patient else "")
    _, comment = legally_capable_info(patient)
    capacity = legally_capable_text(patient)
    t.add_row("Legal capacity", _esc(f"{capacity} ({comment})" if comment else capacity))
    console.print(t)

    theme.section("ACP Conversations", console, "02")
    if not data.acp_encounters:
        console.print(theme.info("No ACP conversations in cache"))
    for view in data.acp_encounters:
        t = theme.make_table(title=_fmt_date(view.date) if view.has_date else "No date")
        t.add_column("Participant", style="bold")
        t.add_column("Role")
        t.add_column("Kind", style="dim")
        for p in view.participants:
            kind = "Practitioner" if p.is_practitioner else "Other"
            t.add_row(_esc(p.display), _esc(p.role or ""), kind)
        console.print(t)
        procedure = view.procedure
        code = procedure.code.text if procedure and procedure.code else None
        console.print(theme.info(
            f"Procedure: {code or '-'} · forms: {len(view.questionnaire_responses)} "
            f"· observations: {len(view.observations)} "
            f"· source: {source_label(view.encounter.source)}"
        ))

    theme.section("Treatment Directives", console, "03")
    rows = (
        _directive_rows("permit", data.permits)
        + _directive_rows("deny", data.denials)
        + _directive_rows("other", data.others)
    )
    if rows:
        t = theme.make_table()
        t.add_column("Type")
        t.add_column("Treatment", style="bold")
        t.add_column("Date")
        t.add_column("Specification", style="dim")
        for row in rows:
            t.add_row(theme.badge(row[0].upper(), "success" if row[0] == "permit" else "error" if row[0] == "deny" else "warn"), *row[1:])
        console.print(t)
    else:
        console.print(theme.info("No active treatment directives"))

    theme.section("Goals", console, "04")
    if data.latest_goal is not None and data.latest_goal.description is not None:
        goal = data.latest_goal
        console.print(theme.ok(f"{_esc(goal.description.text or ', '.join(goal.description.codes()))} ({_fmt_date(goal.status_date)})"))
    else:
        console.print(theme.info("No ACP goal recorded"))

    theme.section("Observations", console, "05")
    if data.latest_observations:
        t = theme.make_table()
        t.add_column("Observation", style="bold")
        t.add_column("Status")
        t.add_column("Date")
        for obs in data.latest_observations:
            label = obs.code.text if obs.code and obs.code.text else ", ".join(obs.code.codes()) if obs.code else ""
            t.add_row(_esc(label), _esc(obs.status or ""), _fmt_date(obs.effective_date_time or obs.issued))
        console.print(t)
    else:
        console.print(theme.info("No tracked observations"))

    if data.unlinked_questionnaires:
        theme.section("Unlinked Forms", console, "06")
        t = theme.make_table()
        t.add_column("Id", style="bold")
        t.add_column("Status")
        t.add_column("Authored")
        for qr in data.unlinked_questionnaires:
            t.add_row(_esc(qr.id or ""), _esc(qr.status or ""), _fmt_date(qr.authored))
        console.print(t)
    console.print()


@cli.command()
@click.argument("patient_id")
@click.option("--cache-dir", type=click.Path(file_okay=False, path_type=Path), default=None, help="Cache directory (default: ~/.acpview/cache).")
def view(patient_id: str, cache_dir: Optional[Path]) -> None:
    """Show the integrated ACP overview for PATIENT_ID from the cache.

    \b
    Examples:
      acpview view 12345
    """
    cfg = get_config()
    reconciler = AcpDataReconciler(_open_cache(cache_dir, cfg))
    data = asyncio.run(reconciler.load(Patient(id=patient_id)))
    _render_dataset(data)


# ---------------------------------------------------------------------------
# find-patient
# ---------------------------------------------------------------------------


async def _find_patient(cfg: AcpViewConfig, system: str, value: str) -> Optional[str]:
    async with _make_client(cfg) as client:
        executor = QueryExecutor(client, _open_cache(None, cfg), cfg)
        return await executor.find_patient_id(system, value)


@cli.command("find-patient")
@click.option("--system", required=True, help="Identifier system, e.g. http://fhir.nl/fhir/NamingSystem/bsn.")
@click.option("--value", required=True, help="Identifier value.")
@click.option("--server", type=str, default=None, help="FHIR base URL (overrides ACPVIEW_SERVER_URL).")
def find_patient(system: str, value: str, server: Optional[str]) -> None:
    """Look up a Patient id by identifier.

    \b
    Examples:
      acpview find-patient --system http://fhir.nl/fhir/NamingSystem/bsn --value 999999151
    """
    cfg = _effective_config(server)
    with theme.spinner(f"Searching {cfg.server_url}", console):
        patient_id = asyncio.run(_find_patient(cfg, system, value))
    if patient_id is None:
        raise click.ClickException(f"No patient with identifier {system}|{value} on {cfg.server_url}")
    console.print(theme.ok(f"Patient/{_esc(patient_id)}"))


# ---------------------------------------------------------------------------
# artifacts
# ---------------------------------------------------------------------------

_ARTIFACT_TYPE = click.Choice(list(ARTIFACT_TYPES))
_STATUS = click.Choice([s.value for s in PublicationStatus])


def _raise_for_outcome(result: Optional[dict]) -> None:
    if is_operation_outcome(result):
        raise click.ClickException(OperationOutcome.model_validate(result).summary())


@cli.group()
def artifacts() -> None:
    """Author CRMI artifacts (ActivityDefinition, ChargeItemDefinition)."""


@artifacts.command("list")
@click.option("--type", "resource_type", type=_ARTIFACT_TYPE, default="ActivityDefinition", show_default=True)
@click.option("--title", type=str, default=None, help="Match titles containing this text.")
@click.option("--status", type=_STATUS, default=None, help="Only artifacts in this status.")
@click.option("--server", type=str, default=None, help="FHIR base URL (overrides ACPVIEW_SERVER_URL).")
def artifacts_list(resource_type: str, title: Optional[str], status: Optional[str], server: Optional[str]) -> None:
    """Search artifacts on the server, newest first.

    \b
    Examples:
      acpview artifacts list --type ChargeItemDefinition --status active
    """
    cfg = _effective_config(server)

    async def run() -> dict:
        async with _make_client(cfg) as client:
            return await CrmiArtifactService.from_config(client, cfg).search(resource_type, title, status)

    try:
        with theme.spinner(f"Searching {resource_type}", console):
            bundle = asyncio.run(run())
    except AcpViewError as exc:
        raise click.ClickException(str(exc))
    _raise_for_outcome(bundle)

    theme.section(resource_type, console, "01")
    found = [e.get("resource") or {} for e in bundle.get("entry") or []]
    if not found:
        console.print(theme.info("No artifacts found"))
        console.print()
        return
    t = theme.make_table()
    t.add_column("Id", style="dim")
    t.add_column("Title", style="bold")
    t.add_column("Version")
    t.add_column("Status")
    t.add_column("Canonical URL")
    variants = {"active": "success", "retired": "error", "draft": "warn"}
    for artifact in found:
        state = artifact.get("status") or "unknown"
        t.add_row(
            _esc(artifact.get("id") or "-"),
            _esc(artifact.get("title") or artifact.get("name") or "-"),
            _esc(artifact.get("version") or "-"),
            theme.badge(state, variants.get(state, "default")),
            _esc(artifact.get("url") or "-"),
        )
    console.print(t)
    console.print()


@artifacts.command("canonical-url")
@click.argument("name")
@click.option("--type", "resource_type", type=_ARTIFACT_TYPE, default="ActivityDefinition", show_default=True)
def artifacts_canonical_url(name: str, resource_type: str) -> None:
    """Print the canonical URL generated for NAME.

    \b
    Examples:
      acpview artifacts canonical-url "ACP gesprek"
    """
    cfg = get_config()
    click.echo(generate_canonical_url(cfg.canonical_base_url, resource_type, name))


@artifacts.command("set-status")
@click.argument("resource_type", type=_ARTIFACT_TYPE)
@click.argument("resource_id")
@click.argument("target", type=_STATUS)
@click.option("--server", type=str, default=None, help="FHIR base URL (overrides ACPVIEW_SERVER_URL).")
def artifacts_set_status(resource_type: str, resource_id: str, target: str, server: Optional[str]) -> None:
    """Move an artifact along draft -> active -> retired.

    \b
    Examples:
      acpview artifacts set-status ActivityDefinition ad-1 active
    """
    cfg = _effective_config(server)

    async def run() -> Optional[dict]:
        async with _make_client(cfg) as client:
            service = CrmiArtifactService.from_config(client, cfg)
            return await service.transition_status(resource_type, resource_id, target)

    try:
        result = asyncio.run(run())
    except ArtifactStatusError as exc:
        allowed = ", ".join(s.value for s in valid_transitions(exc.current))
        raise click.ClickException(f"{exc} Allowed from {exc.current}: {allowed}")
    except AcpViewError as exc:
        raise click.ClickException(str(exc))
    _raise_for_outcome(result)
    console.print(theme.ok(f"{resource_type}/{_esc(resource_id)} is {target}"))


# ---------------------------------------------------------------------------
# config
# ---------------------------------------------------------------------------


@cli.command()
def config() -> None:
    """Show current configuration.

    \b
    Examples:
      acpview config
    """
    cfg = get_config()

    theme.section("FHIR Server", console, "01")
    t = theme.make_kv_table()
    t.add_row("server_url", _esc(cfg.server_url))
    t.add_row("request_timeout", f"{cfg.request_timeout}s")
    headers = ", ".join(sorted(cfg.extra_headers)) if cfg.extra_headers else "[dim]none[/dim]"
    t.add_row("extra_headers", headers)
    console.print(t)

    theme.section("Reference Resolution", console, "02")
    t = theme.make_kv_table()
    t.add_row("reference_resolution_depth", str(cfg.reference_resolution_depth))
    console.print(t)

    theme.section("CRMI Authoring", console, "03")
    t = theme.make_kv_table()
    t.add_row("canonical_base_url", _esc(cfg.canonical_base_url))
    console.print(t)

    theme.section("Paths", console, "04")
    t = theme.make_kv_table()
    t.add_row("home_dir", str(cfg.home_dir))
    t.add_row("cache_dir", str(cfg.cache_dir))
    t.add_row("log_dir", str(cfg.log_dir))
    console.print(t)
    console.print()
