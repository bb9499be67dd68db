import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path

import click

from primelist import database
from primelist.config import settings
from primelist.services.image_migration import migrate_legacy_images, pending_image_ids
from primelist.services.image_store import get_image_store


@click.group()
@click.option("--log-level", default=None, help="Overrides LOG_LEVEL.")
def cli(log_level):
    """PrimeList maintenance commands."""
    logging.basicConfig(
        level=(log_level or settings.LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command("migrate-images")
@click.option(
    "--upload-root",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory holding legacy uploads (defaults to UPLOAD_ROOT).",
)
@click.option("--dry-run", is_flag=True, help="Only count the rows left to migrate.")
def migrate_images(upload_root, dry_run):
    """Copy file-backed property images into the database."""
    upload_root = upload_root or settings.UPLOAD_ROOT
    db = database.SessionLocal()
    try:
        if dry_run:
            click.echo(f"{len(pending_image_ids(db))} images to migrate")
            return
        summary = migrate_legacy_images(db, upload_root, settings.LEGACY_URL_PREFIX)
    finally:
        db.close()

    click.echo("=== Migration Summary ===")
    click.echo(f"Total images: {summary.total}")
    click.echo(f"Successfully migrated: {summary.succeeded}")
    click.echo(f"Failed: {summary.failed}")
    if summary.succeeded:
        click.echo(
            f"After verifying the migration, {upload_root}/properties can be removed."
        )


@cli.command("purge-staged")
@click.option(
    "--older-than-hours",
    type=click.IntRange(min=0),
    default=24,
    show_default=True,
    help="Only purge staged images uploaded at least this long ago.",
)
def purge_staged(older_than_hours):
    """Delete staged images that were never attached to a property."""
    cutoff = datetime.now(timezone.utc) - timedelta(hours=older_than_hours)
    db = database.SessionLocal()
    try:
        removed = get_image_store(db).purge_staged(cutoff)
        db.commit()
    finally:
        db.close()
    click.echo(f"Purged {len(removed)} staged images")


if __name__ == "__main__":
    cli()
