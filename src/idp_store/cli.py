"""Command-line interface for idp-store table management."""

import logging
import sys
from collections.abc import Callable
from typing import Any

import click

from .exceptions import IdpStoreError
from .repository import DynamoStore


def _connection_options(func: Callable[..., Any]) -> Callable[..., Any]:
    func = click.option(
        "--endpoint-url",
        envvar="IDP_DYNAMODB_ENDPOINT_URL",
        help="AWS endpoint URL (e.g., http://localhost:8000 for DynamoDB Local)",
    )(func)
    func = click.option(
        "--region",
        envvar="IDP_DYNAMODB_REGION",
        help="AWS region (default: use boto3 defaults)",
    )(func)
    func = click.option(
        "--table-prefix",
        envvar="IDP_DYNAMODB_TABLE_PREFIX",
        default="idp",
        show_default=True,
        help="Prefix of every table name",
    )(func)
    return func


def _open_store(table_prefix: str, region: str | None, endpoint_url: str | None) -> DynamoStore:
    try:
        return DynamoStore(table_prefix=table_prefix, region=region, endpoint_url=endpoint_url)
    except IdpStoreError as e:
        raise click.BadParameter(str(e), param_hint="--table-prefix") from e


@click.group()
@click.version_option(package_name="idp-store")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """idp-store DynamoDB table management CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command("create-tables")
@_connection_options
@click.option(
    "--wait/--no-wait",
    default=True,
    help="Wait for created tables to become active",
)
def create_tables(
    table_prefix: str,
    region: str | None,
    endpoint_url: str | None,
    wait: bool,
) -> None:
    """Create every catalog table that does not exist yet."""
    store = _open_store(table_prefix, region, endpoint_url)
    click.echo(f"Creating tables with prefix: {store.table_prefix}")
    try:
        created = store.create_tables(wait=wait)
    except Exception as e:
        click.echo(f"✗ Table creation failed: {e}", err=True)
        sys.exit(1)

    for name in store.table_names():
        marker = "✓ created" if name in created else "· exists"
        click.echo(f"  {marker}  {name}")
    click.echo(f"{len(created)} table(s) created")


@cli.command("delete-tables")
@_connection_options
@click.option("--yes", is_flag=True, help="Skip confirmation prompt")
@click.option(
    "--wait/--no-wait",
    default=True,
    help="Wait for deleted tables to disappear",
)
def delete_tables(
    table_prefix: str,
    region: str | None,
    endpoint_url: str | None,
    yes: bool,
    wait: bool,
) -> None:
    """Delete every catalog table under the prefix. All data is lost."""
    store = _open_store(table_prefix, region, endpoint_url)
    if not yes:
        click.confirm(
            f"Delete all tables with prefix '{store.table_prefix}'? This cannot be undone",
            abort=True,
        )
    try:
        deleted = store.delete_tables(wait=wait)
    except Exception as e:
        click.echo(f"✗ Table deletion failed: {e}", err=True)
        sys.exit(1)

    for name in deleted:
        click.echo(f"  ✓ deleted  {name}")
    click.echo(f"{len(deleted)} table(s) deleted")


@cli.command()
@_connection_options
def status(
    table_prefix: str,
    region: str | None,
    endpoint_url: str | None,
) -> None:
    """Show the status and approximate item count of every table."""
    store = _open_store(table_prefix, region, endpoint_url)
    try:
        tables = store.table_status()
    except Exception as e:
        click.echo(f"✗ Failed to describe tables: {e}", err=True)
        sys.exit(1)

    missing = 0
    for name, info in tables.items():
        if info is None:
            missing += 1
            click.echo(f"  {name:<48} MISSING")
        else:
            click.echo(f"  {name:<48} {info['status']:<10} {info['item_count']:>8} items")

    if missing:
        click.echo(f"{missing} table(s) missing. Run 'idp-store create-tables'.")
        sys.exit(1)


if __name__ == "__main__":
    cli()
