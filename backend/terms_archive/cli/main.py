"""CLI entrypoint for Terms Archive."""

from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional

import typer

from terms_archive.archivist.plugins import LoggingPlugin, MetricsPlugin
from terms_archive.archivist.tracker import Archivist
from terms_archive.core.config import Settings
from terms_archive.core.errors import DeclarationError, UnknownServiceError
from terms_archive.core.logging import configure_logging
from terms_archive.recorder.recorder import Recorder
from terms_archive.services.declarations import load_services

app = typer.Typer(name="tarc", help="Terms Archive command-line interface")


def _settings(config: Optional[Path]) -> Settings:
    settings = Settings.from_yaml(config)
    configure_logging()
    return settings


@app.command()
def track(
    service: Optional[List[str]] = typer.Option(None, "--service", "-s", help="Track only this service ID"),
    extract_only: bool = typer.Option(
        False, "--extract-only", help="Regenerate versions from stored snapshots without fetching"
    ),
    config: Optional[Path] = typer.Option(None, "--config", help="Path to a YAML config file"),
) -> None:
    """Track declared documents and record their changes."""
    settings = _settings(config)
    try:
        archivist = Archivist.from_settings(settings)
    except DeclarationError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)
    archivist.attach(LoggingPlugin())
    archivist.attach(MetricsPlugin())
    archivist.initialize()
    try:
        report = archivist.track(services=service or None, extract_only=extract_only)
    except UnknownServiceError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)
    finally:
        archivist.close()
    typer.echo(json.dumps(report.to_dict(), indent=2, ensure_ascii=False))


@app.command("services")
def list_services(
    config: Optional[Path] = typer.Option(None, "--config", help="Path to a YAML config file"),
) -> None:
    """List declared services and their document types."""
    settings = _settings(config)
    services = load_services(settings.declarations_path)
    payload = {service_id: service.get_document_types() for service_id, service in services.items()}
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))


@app.command()
def log(
    service_id: str = typer.Argument(..., help="Service identifier"),
    document_type: str = typer.Argument(..., help="Document type, e.g. 'Terms of Service'"),
    snapshots: bool = typer.Option(False, "--snapshots", help="Show snapshots instead of versions"),
    config: Optional[Path] = typer.Option(None, "--config", help="Path to a YAML config file"),
) -> None:
    """Print the recorded history of one document, oldest first."""
    settings = _settings(config)
    recorder = Recorder.from_settings(settings).initialize()
    repository = recorder.snapshots_repository if snapshots else recorder.versions_repository
    try:
        for record in repository.iterate(service_id=service_id, document_type=document_type):
            flags = [flag for flag, on in (("first", record.is_first_record), ("refilter", record.is_refilter)) if on]
            typer.echo(
                f"{record.id}  {record.fetch_date.isoformat()}  {record.mime_type}"
                + (f"  [{', '.join(flags)}]" if flags else "")
            )
    finally:
        recorder.close()


if __name__ == "__main__":
    app()
