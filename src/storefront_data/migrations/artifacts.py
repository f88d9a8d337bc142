"""
storefront_data.migrations.artifacts

Versioned migration files on disk.

Layout under `MigrationConfig.out_dir`:

    <version>_<name>.sql      statements separated by a breakpoint marker line
    meta/_journal.json        ordered entries with file name and checksum

The journal is the source of order; a file whose content no longer matches its
journal checksum is refused rather than replayed.
"""

from __future__ import annotations

import json
import re
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from storefront_data.errors import MigrationFailed
from storefront_data.migrations.changes import Change
from storefront_data.migrations.pipeline import Migration, build_migration, checksum
from storefront_data.observability.logging import get_logger
from storefront_data.settings import MigrationConfig

log = get_logger(__name__)

BREAKPOINT = "--> statement-breakpoint"
JOURNAL = Path("meta") / "_journal.json"

_SLUG = re.compile(r"[^a-z0-9]+")


def slugify(name: str) -> str:
    return _SLUG.sub("_", name.lower()).strip("_") or "migration"


def read_journal(out_dir: Path) -> dict[str, Any]:
    path = out_dir / JOURNAL
    if not path.exists():
        return {"dialect": "postgresql", "entries": []}
    return json.loads(path.read_text(encoding="utf-8"))


def write_migration(migration: Migration, out_dir: Path, *, dialect: str = "postgresql") -> Path:
    out_dir.mkdir(parents=True, exist_ok=True)
    filename = f"{migration.id}_{slugify(migration.name)}.sql"
    path = out_dir / filename
    path.write_text(f"\n{BREAKPOINT}\n".join(migration.statements) + "\n", encoding="utf-8")

    journal = read_journal(out_dir)
    journal["dialect"] = dialect
    journal["entries"].append(
        {
            "id": migration.id,
            "name": migration.name,
            "file": filename,
            "checksum": migration.checksum,
        }
    )
    journal_path = out_dir / JOURNAL
    journal_path.parent.mkdir(parents=True, exist_ok=True)
    journal_path.write_text(json.dumps(journal, indent=2) + "\n", encoding="utf-8")
    log.info("migration.generated", migration=migration.id, file=str(path))
    return path


def generate(changes: Sequence[Change], config: MigrationConfig, *, name: str) -> Path | None:
    """Write `changes` as the next versioned migration; None when there is nothing to write."""
    if not changes:
        return None
    return write_migration(build_migration(changes, name=name), config.out_dir, dialect=config.dialect)


def load_migrations(out_dir: Path) -> list[Migration]:
    migrations: list[Migration] = []
    for entry in read_journal(out_dir)["entries"]:
        text = (out_dir / entry["file"]).read_text(encoding="utf-8")
        statements = tuple(s.strip() for s in text.split(BREAKPOINT) if s.strip())
        if checksum(statements) != entry["checksum"]:
            raise MigrationFailed(entry["id"], f"{entry['file']} was modified after it was generated")
        migrations.append(Migration(id=entry["id"], name=entry["name"], statements=statements))
    return sorted(migrations, key=lambda m: m.id)


# --- Module Notes -----------------------------------------------------------
# Migration ids sort lexically, so keep them fixed-width.
