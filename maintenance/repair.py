"""
Database repairs for campus data.

Older databases kept catalogue names unique across all campuses, stored
catalogue rows without a campus, and accumulated spelling variants of the
same campus ("Aimorés", "aimores "). These functions bring such data back in
line with the current schema. They stage changes on the session; callers
commit (see `run_repairs`).
"""

import logging
from collections import defaultdict
from typing import Any, Dict, List, Type

from sqlalchemy import inspect, text

from utilities.database import (
    db,
    Campus,
    Category,
    Sector,
    InventoryItem,
    Loan,
    SupportRequest,
    User,
    AuditLogEntry,
    ensure_admin_campus,
    get_admin_campus,
)
from utilities.text import normalize_text

logger = logging.getLogger(__name__)

CATALOGUE_MODELS = (Category, Sector)
UNIQUE_CONSTRAINT_NAMES = {
    "categories": "uq_categories_name_campus",
    "sectors": "uq_sectors_name_campus",
}


def _item_column(model: Type[db.Model]):
    return InventoryItem.category_id if model is Category else InventoryItem.sector_id


def _oldest(rows):
    return min(rows, key=lambda row: (row.created_at is None, row.created_at, row.id))


def find_duplicate_names(model: Type[db.Model]) -> List[Dict[str, Any]]:
    """Groups of rows sharing a normalized name inside one campus."""
    groups = defaultdict(list)
    for row in model.query.order_by(model.id.asc()).all():
        groups[(row.campus_id, normalize_text(row.name))].append(row)
    return [
        {"campus_id": campus_id, "name": rows[0].name, "ids": [row.id for row in rows]}
        for (campus_id, _), rows in groups.items()
        if len(rows) > 1
    ]


def merge_duplicate_names(model: Type[db.Model]) -> int:
    """
    Keep the oldest row of each duplicate group, repoint items to it and drop the rest.

    Returns:
        Number of rows removed
    """
    item_column = _item_column(model)
    removed = 0
    for group in find_duplicate_names(model):
        rows = [db.session.get(model, row_id) for row_id in group["ids"]]
        keeper = _oldest(rows)
        for row in rows:
            if row is keeper:
                continue
            InventoryItem.query.filter(item_column == row.id).update(
                {item_column: keeper.id}, synchronize_session="fetch"
            )
            db.session.delete(row)
            removed += 1
        logger.info("Merged %d duplicate %s row(s) named %r into id %s",
                    len(rows) - 1, model.__tablename__, keeper.name, keeper.id)
    db.session.flush()
    return removed


def backfill_campus_ids(model: Type[db.Model]) -> int:
    """
    Give catalogue rows without a campus the campus of the items using them.

    Rows used by items of exactly one campus get that campus; anything else
    lands on the Administrador campus.
    """
    orphans = model.query.filter(model.campus_id.is_(None)).all()
    if not orphans:
        return 0

    admin_campus = ensure_admin_campus(commit=False)
    item_column = _item_column(model)
    for row in orphans:
        campus_ids = {
            campus_id
            for (campus_id,) in db.session.query(InventoryItem.campus_id)
            .filter(item_column == row.id)
            .distinct()
        }
        row.campus_id = campus_ids.pop() if len(campus_ids) == 1 else admin_campus.id
    db.session.flush()
    logger.info("Assigned a campus to %d %s row(s)", len(orphans), model.__tablename__)
    return len(orphans)


def _move_catalogue(model: Type[db.Model], source: Campus, target: Campus) -> int:
    """Move catalogue rows between campuses, merging rows whose names collide."""
    item_column = _item_column(model)
    existing = {normalize_text(row.name): row for row in model.query.filter_by(campus_id=target.id)}
    merged = 0
    for row in list(model.query.filter_by(campus_id=source.id)):
        twin = existing.get(normalize_text(row.name))
        if twin is not None:
            InventoryItem.query.filter(item_column == row.id).update(
                {item_column: twin.id}, synchronize_session="fetch"
            )
            db.session.delete(row)
            merged += 1
        else:
            # Relationship assignment keeps the delete-orphan cascade away from the row
            row.campus = target
            existing[normalize_text(row.name)] = row
    return merged


def merge_campus_variants() -> List[Dict[str, Any]]:
    """
    Merge campuses whose names are equal once normalized into the oldest one.

    Returns:
        One entry per merged campus: {"from", "into", "merged_names"}
    """
    groups = defaultdict(list)
    for campus in Campus.query.order_by(Campus.id.asc()).all():
        groups[normalize_text(campus.name)].append(campus)

    merges = []
    for campuses in groups.values():
        if len(campuses) < 2:
            continue
        admin = [c for c in campuses if c.is_admin_campus]
        keeper = admin[0] if admin else _oldest(campuses)
        for variant in campuses:
            if variant is keeper:
                continue
            for model in (InventoryItem, User, SupportRequest, Loan):
                model.query.filter_by(campus_id=variant.id).update(
                    {"campus_id": keeper.id}, synchronize_session="fetch"
                )
            # Bulk update: the entry's campus_name snapshot stays as recorded
            AuditLogEntry.query.filter_by(campus_id=variant.id).update(
                {"campus_id": keeper.id}, synchronize_session=False
            )
            merged_names = sum(_move_catalogue(model, variant, keeper) for model in CATALOGUE_MODELS)
            db.session.flush()
            db.session.expire(variant)
            merges.append({"from": variant.name, "into": keeper.name, "merged_names": merged_names})
            logger.warning("Merging campus %r (id %s) into %r (id %s)",
                           variant.name, variant.id, keeper.name, keeper.id)
            db.session.delete(variant)
    db.session.flush()
    return merges


def database_rules() -> Dict[str, Any]:
    """Unique constraints, foreign keys and NOT NULL columns of the catalogue tables."""
    inspector = inspect(db.engine)
    rules = {"dialect": db.engine.dialect.name, "tables": {}}
    for table in UNIQUE_CONSTRAINT_NAMES:
        if not inspector.has_table(table):
            rules["tables"][table] = None
            continue
        rules["tables"][table] = {
            "unique_constraints": [
                {"name": uc.get("name"), "columns": uc["column_names"]}
                for uc in inspector.get_unique_constraints(table)
            ],
            "unique_indexes": [
                {"name": ix.get("name"), "columns": ix["column_names"]}
                for ix in inspector.get_indexes(table)
                if ix.get("unique")
            ],
            "foreign_keys": [
                {
                    "columns": fk["constrained_columns"],
                    "references": f"{fk['referred_table']}({', '.join(fk['referred_columns'])})",
                }
                for fk in inspector.get_foreign_keys(table)
            ],
            "not_null_columns": [
                col["name"] for col in inspector.get_columns(table) if not col.get("nullable", True)
            ],
        }
    return rules


def _unique_column_sets(inspector, table: str) -> List[Dict[str, Any]]:
    found = [
        {"name": uc.get("name"), "columns": list(uc["column_names"]), "kind": "constraint"}
        for uc in inspector.get_unique_constraints(table)
    ]
    found.extend(
        {"name": ix.get("name"), "columns": list(ix["column_names"]), "kind": "index"}
        for ix in inspector.get_indexes(table)
        if ix.get("unique")
    )
    return found


def ensure_unique_constraints() -> Dict[str, Any]:
    """
    Make sure catalogue names are unique per campus and not globally.

    On PostgreSQL a name-only unique constraint is dropped and the composite
    (name, campus_id) one added. Other dialects are only reported on; their
    schema comes from the migrations.
    """
    dialect = db.engine.dialect.name
    report = {"dialect": dialect, "tables": {}, "ok": True}

    for table, constraint_name in UNIQUE_CONSTRAINT_NAMES.items():
        inspector = inspect(db.engine)
        uniques = _unique_column_sets(inspector, table)
        name_only = [u for u in uniques if u["columns"] == ["name"]]
        has_composite = any(set(u["columns"]) == {"name", "campus_id"} for u in uniques)
        entry = {"before": uniques, "dropped": [], "added": None}

        if dialect == "postgresql":
            for unique in name_only:
                if unique["kind"] == "constraint":
                    db.session.execute(text(f'ALTER TABLE {table} DROP CONSTRAINT IF EXISTS "{unique["name"]}"'))
                else:
                    db.session.execute(text(f'DROP INDEX IF EXISTS "{unique["name"]}"'))
                entry["dropped"].append(unique["name"])
            if not has_composite:
                db.session.execute(
                    text(f"ALTER TABLE {table} ADD CONSTRAINT {constraint_name} UNIQUE (name, campus_id)")
                )
                entry["added"] = constraint_name
            db.session.commit()
            name_only, has_composite = [], True
            logger.info("Unique constraints of %s checked: dropped=%s added=%s",
                        table, entry["dropped"], entry["added"])

        entry["name_only_unique"] = [u["name"] for u in name_only]
        entry["composite_unique"] = has_composite
        if name_only or not has_composite:
            report["ok"] = False
        report["tables"][table] = entry

    return report


def campus_report() -> Dict[str, Any]:
    """Per-campus counts, cross-campus duplicate names and items pointing at another campus's catalogue."""
    campuses = []
    for campus in Campus.query.order_by(Campus.name.asc()).all():
        campuses.append({
            "id": campus.id,
            "name": campus.name,
            "items": InventoryItem.query.filter_by(campus_id=campus.id).count(),
            "disposed": InventoryItem.query.filter_by(campus_id=campus.id, status="descarte").count(),
            "categories": sorted(c.name for c in Category.query.filter_by(campus_id=campus.id)),
            "sectors": sorted(s.name for s in Sector.query.filter_by(campus_id=campus.id)),
            "technicians": User.query.filter_by(campus_id=campus.id).count(),
            "open_requests": SupportRequest.query.filter_by(campus_id=campus.id)
            .filter(SupportRequest.status.in_(["aberto", "em-andamento"]))
            .count(),
            "open_loans": Loan.query.filter_by(campus_id=campus.id, status="loaned").count(),
        })

    shared_names = {}
    for model in CATALOGUE_MODELS:
        by_name = defaultdict(set)
        for row in model.query.all():
            by_name[normalize_text(row.name)].add(row.campus_id)
        shared_names[model.__tablename__] = sorted(
            name for name, campus_ids in by_name.items() if len(campus_ids) > 1
        )

    mismatched = (
        InventoryItem.query.outerjoin(Category, InventoryItem.category_id == Category.id)
        .outerjoin(Sector, InventoryItem.sector_id == Sector.id)
        .filter(
            db.or_(
                db.and_(InventoryItem.category_id.isnot(None), Category.campus_id != InventoryItem.campus_id),
                db.and_(InventoryItem.sector_id.isnot(None), Sector.campus_id != InventoryItem.campus_id),
            )
        )
        .all()
    )

    admin_campus = get_admin_campus()
    return {
        "campuses": campuses,
        "admin_campus_present": admin_campus is not None,
        "names_in_several_campuses": shared_names,
        "duplicates_within_campus": {
            model.__tablename__: find_duplicate_names(model) for model in CATALOGUE_MODELS
        },
        "items_with_foreign_catalogue": [
            {"id": item.id, "serial": item.serial, "campus_id": item.campus_id}
            for item in mismatched
        ],
    }


def run_repairs() -> Dict[str, Any]:
    """Run every repair in order and commit them as one transaction."""
    try:
        admin_campus = ensure_admin_campus(commit=False)
        backfilled = {model.__tablename__: backfill_campus_ids(model) for model in CATALOGUE_MODELS}
        merged_campuses = merge_campus_variants()
        merged_names = {model.__tablename__: merge_duplicate_names(model) for model in CATALOGUE_MODELS}
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Campus repair failed")
        raise

    return {
        "admin_campus_id": admin_campus.id,
        "backfilled": backfilled,
        "merged_campuses": merged_campuses,
        "merged_duplicate_names": merged_names,
    }
