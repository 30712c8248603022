"""
chatbridge CLI.

Run the API server, create the schema, and store a tenant's provider configuration.
"""

import asyncio
import json

import typer

from chatbridge.core.config.settings import settings

app = typer.Typer(help="chatbridge messaging integration CLI")


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(settings.port, "--port", "-p", help="Port to bind to"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes"),
    workers: int = typer.Option(1, "--workers", "-w", help="Number of worker processes"),
):
    """
    Run the API server.

    Examples:
        chatbridge serve
        chatbridge serve --reload --port 8080
    """
    import uvicorn

    if reload and workers > 1:
        typer.echo("❌ --reload cannot be combined with --workers", err=True)
        raise typer.Exit(1)

    typer.echo("🚀 Starting chatbridge server...")
    typer.echo(f"🌐 Server: http://{host}:{port}")
    if settings.is_development:
        typer.echo(f"📝 Docs: http://{host}:{port}/docs")
    uvicorn.run(
        "chatbridge.main:app",
        host=host,
        port=port,
        reload=reload,
        workers=workers,
        log_level=settings.log_level.lower(),
    )


async def _init_db(database_url: str) -> None:
    from chatbridge.database.manager import DatabaseManager

    database = DatabaseManager(database_url)
    try:
        await database.initialize(create_schema=True)
    finally:
        await database.dispose()


@app.command("init-db")
def init_db(
    database_url: str = typer.Option(
        settings.database_url, "--database-url", help="Database URL"
    ),
):
    """Create every table that does not exist yet."""
    asyncio.run(_init_db(database_url))
    typer.echo("✅ Database schema ready")


async def _seed_config(database_url: str, data: dict) -> None:
    from chatbridge.database.manager import DatabaseManager
    from chatbridge.domain.models import ProviderConfig
    from chatbridge.services.config_store import DatabaseProviderConfigStore

    database = DatabaseManager(database_url)
    try:
        await database.initialize(create_schema=True)
        store = DatabaseProviderConfigStore(database.session_factory)
        await store.save(ProviderConfig.model_validate(data))
    finally:
        await database.dispose()


@app.command("seed-config")
def seed_config(
    config_file: typer.FileText = typer.Argument(
        ..., help="JSON file with a provider configuration ('-' for stdin)"
    ),
    database_url: str = typer.Option(
        settings.database_url, "--database-url", help="Database URL"
    ),
):
    """
    Store or replace a tenant's provider configuration.

    Examples:
        chatbridge seed-config tenant-42-greenapi.json
        cat config.json | chatbridge seed-config -
    """
    from pydantic import ValidationError

    from chatbridge.domain.errors import UnknownProviderError
    from chatbridge.domain.factories.provider_factory import normalize_provider_name

    try:
        data = json.load(config_file)
        if not isinstance(data, dict):
            raise typer.BadParameter("expected a JSON object")
        normalize_provider_name(data.get("provider"))
        asyncio.run(_seed_config(database_url, data))
    except (
        json.JSONDecodeError,
        ValidationError,
        UnknownProviderError,
        typer.BadParameter,
    ) as e:
        typer.echo(f"❌ Invalid provider configuration: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(
        f"✅ Stored {data['provider']} configuration for tenant {data['tenant_id']}"
    )


if __name__ == "__main__":
    app()
