"""
Command-line interface for KeyGate.
"""

from __future__ import annotations

import os

import click
from sqlalchemy.exc import IntegrityError

from keygate.common.clock import isoformat, utcnow
from keygate.common.config import Config
from keygate.common.exceptions import LicenseAPIError
from keygate.common.models import ProductType, normalize_license_key
from keygate.server import start_server
from keygate.server.database import create_db_engine, init_db
from keygate.server.license_generator import LicenseGenerator
from keygate.server.persistence import LicenseRepository


def _open_repository() -> tuple[LicenseRepository, Config]:
    config = Config()
    engine = create_db_engine(config=config)
    init_db(engine)
    return LicenseRepository(engine), config


def _license_key(value: str) -> str:
    try:
        return normalize_license_key(value)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e


@click.group()
@click.option(
    "--database-url",
    default=None,
    help="Database URL (default: from KEYGATE_DATABASE_URL env or a local SQLite file)",
)
def cli(database_url: str | None) -> None:
    """KeyGate license server CLI"""
    if database_url:
        os.environ["KEYGATE_DATABASE_URL"] = database_url


@cli.command()
@click.option(
    "--host",
    default=None,
    help="Host to bind server to (default: from KEYGATE_SERVER_HOST env or 127.0.0.1)",
)
@click.option(
    "--port",
    default=None,
    type=int,
    help="Port to bind server to (default: from KEYGATE_SERVER_PORT env or 8000)",
)
def serve(host: str | None, port: int | None) -> None:
    """Start the license server"""
    # Set environment variables before building the config
    if host:
        os.environ["KEYGATE_SERVER_HOST"] = host
    if port:
        os.environ["KEYGATE_SERVER_PORT"] = str(port)

    config = Config()
    if not config.ADMIN_PASSWORD:
        click.echo(
            "KEYGATE_ADMIN_PASSWORD is not set: admin endpoints are disabled", err=True
        )
    start_server(config)


@cli.command("init-db")
def init_db_command() -> None:
    """Create the database tables"""
    _open_repository()
    click.echo("Database initialized")


@cli.command("add-product")
@click.argument("name")
@click.argument("slug")
@click.option(
    "--type",
    "product_type",
    type=click.Choice([t.value for t in ProductType]),
    default=ProductType.PLUGIN.value,
    show_default=True,
)
@click.option("--inactive", is_flag=True, help="Create the product disabled")
def add_product(name: str, slug: str, product_type: str, inactive: bool) -> None:  # noqa: FBT001
    """Register a product licenses can be issued for"""
    repository, _ = _open_repository()
    try:
        product = repository.add_product(
            name, slug.lower(), ProductType(product_type), active=not inactive
        )
    except IntegrityError as e:
        msg = f"Product with slug '{slug}' already exists"
        raise click.ClickException(msg) from e
    click.echo(f"Product {product.slug} created")


@cli.command("create-license")
@click.argument("product_slug")
@click.option("--customer-name", default=None)
@click.option("--customer-email", default=None)
@click.option("--validity-days", type=click.IntRange(min=1), default=None)
@click.option("--max-domain-changes", type=click.IntRange(min=0), default=None)
@click.option("--notes", default=None)
def create_license(  # noqa: PLR0913
    product_slug: str,
    customer_name: str | None,
    customer_email: str | None,
    validity_days: int | None,
    max_domain_changes: int | None,
    notes: str | None,
) -> None:
    """Issue a new license and print its key"""
    repository, config = _open_repository()
    generator = LicenseGenerator(repository, config)
    try:
        lic = generator.generate_license(
            product_slug=product_slug.lower(),
            customer_name=customer_name,
            customer_email=customer_email,
            validity_days=validity_days,
            max_domain_changes=max_domain_changes,
            notes=notes,
        )
    except LicenseAPIError as e:
        raise click.ClickException(e.message) from e
    click.echo(lic.license_key)


@cli.command()
@click.argument("license_key")
def revoke(license_key: str) -> None:
    """Revoke a license permanently"""
    key = _license_key(license_key)
    repository, _ = _open_repository()
    lic = repository.find_by_key(key)
    if lic is None:
        msg = "License key not found"
        raise click.ClickException(msg)
    if repository.mark_revoked(lic.id, utcnow()):
        click.echo(f"License {key} revoked")
    else:
        click.echo(f"License {key} was already revoked")


@cli.command()
@click.argument("license_key")
def status(license_key: str) -> None:
    """Show a license and its active domain"""
    key = _license_key(license_key)
    repository, _ = _open_repository()
    lic = repository.find_by_key(key)
    if lic is None:
        msg = "License key not found"
        raise click.ClickException(msg)
    active = repository.get_active_activation(lic.id)

    click.echo(f"License:        {lic.license_key}")
    click.echo(f"Product:        {lic.product.slug}")
    click.echo(f"Status:         {lic.status.value}")
    click.echo(f"Domain:         {active.domain if active else '-'}")
    click.echo(f"Activated at:   {isoformat(lic.activated_at) or '-'}")
    click.echo(f"Expires at:     {isoformat(lic.expires_at) or '-'}")
    click.echo(
        f"Domain changes: {lic.domain_changes_used}/{lic.max_domain_changes}"
    )


if __name__ == "__main__":
    cli()
