"""
Two-way relation synchronization.

References between collections are stored on both sides: a list of ids
(JSON column) or a single id (integer column). There are no foreign keys,
so after the source record of a relation is written, the synchronizer
updates the other side to agree with it. It is the only code allowed to
write the reverse side of a relation.

Synchronization must run after the source write and before the unit of
work commits, with the same options, so both sides commit together. With
transactions disabled each step commits on its own and a failure part-way
leaves the relation half-synchronized.
"""

from dataclasses import dataclass
from enum import Enum as PyEnum
from typing import Any, Iterable

from sqlalchemy import String, cast, or_, select, update

from app.models.base import Base
from app.repositories.options import RepositoryOptions
from app.repositories.session import run_with_session


class Cardinality(str, PyEnum):
    """
    Shape of a relation seen from its source field.

    - MANY_TO_ONE: source holds a list of ids, each target one back-reference
    - ONE_TO_MANY: source holds one id, the target a list of back-references
    - MANY_TO_MANY: lists on both sides
    """

    MANY_TO_ONE = "many_to_one"
    ONE_TO_MANY = "one_to_many"
    MANY_TO_MANY = "many_to_many"


@dataclass(frozen=True)
class Relation:
    """Declarative description of one side of a two-way relation"""

    source: type[Base]
    source_field: str
    cardinality: Cardinality
    target: type[Base]
    target_field: str

    @property
    def target_holds_many(self) -> bool:
        """True when the target's back-reference is a list of ids"""
        return self.cardinality != Cardinality.MANY_TO_ONE


def sync_relation(record: Base, relation: Relation, options: RepositoryOptions) -> None:
    """Bring the target side of ``relation`` in line with ``record``'s source field"""
    if relation.cardinality == Cardinality.MANY_TO_ONE:
        refresh_two_way_relation_many_to_one(record, relation, options)
    elif relation.cardinality == Cardinality.ONE_TO_MANY:
        refresh_two_way_relation_one_to_many(record, relation, options)
    else:
        refresh_two_way_relation_many_to_many(record, relation, options)


def destroy_relation(record_id: int, relation: Relation, options: RepositoryOptions) -> None:
    """Remove every reference to a deleted source record from the target side"""
    if relation.target_holds_many:
        destroy_relation_to_many(record_id, relation.target, relation.target_field, options)
    else:
        destroy_relation_to_one(record_id, relation.target, relation.target_field, options)


def refresh_two_way_relation_many_to_one(
    record: Base, relation: Relation, options: RepositoryOptions
) -> None:
    """
    Source holds many ids; each target points back at one source.

    A target can be claimed by a single source, so the ids are first taken
    away from every other source record. Then the claimed targets point at
    ``record`` and targets it no longer claims are cleared.
    """
    ids = _id_list(getattr(record, relation.source_field))
    target = relation.target
    back_reference = getattr(target, relation.target_field)

    if ids:
        others = _records_referencing(
            relation.source, relation.source_field, ids, options, scope=record, exclude_id=record.id
        )

        def release_claims(db):
            for other in others:
                setattr(
                    other,
                    relation.source_field,
                    [i for i in _id_list(getattr(other, relation.source_field)) if i not in ids],
                )

        run_with_session(release_claims, options)

        claim = _scoped(update(target).where(target.id.in_(ids)), target, record)
        run_with_session(
            lambda db: db.execute(claim.values({relation.target_field: record.id})), options
        )

    release = _scoped(update(target).where(back_reference == record.id), target, record)
    if ids:
        release = release.where(target.id.not_in(ids))
    run_with_session(
        lambda db: db.execute(release.values({relation.target_field: None})), options
    )


def refresh_two_way_relation_one_to_many(
    record: Base, relation: Relation, options: RepositoryOptions
) -> None:
    """
    Source holds one id; the target keeps a set of back-references.

    ``record.id`` is added to the referenced target (set semantics, no
    duplicates) and removed from every other target still listing it.
    """
    target_id = getattr(record, relation.source_field)

    if target_id is not None:
        referenced = options.db.execute(
            _scoped(select(relation.target).where(relation.target.id == target_id), relation.target, record)
        ).scalar_one_or_none()
        if referenced is not None:
            run_with_session(lambda db: _add_reference(referenced, relation.target_field, record.id), options)

    stale = _records_referencing(
        relation.target, relation.target_field, [record.id], options, scope=record, exclude_id=target_id
    )
    run_with_session(lambda db: _remove_reference(stale, relation.target_field, record.id), options)


def refresh_two_way_relation_many_to_many(
    record: Base, relation: Relation, options: RepositoryOptions
) -> None:
    """
    Lists on both sides.

    ``record.id`` is added to every referenced target and removed from every
    target no longer referenced.
    """
    ids = _id_list(getattr(record, relation.source_field))
    target = relation.target

    referenced = []
    if ids:
        referenced = list(
            options.db.execute(_scoped(select(target).where(target.id.in_(ids)), target, record)).scalars()
        )

    stale = [
        candidate
        for candidate in _records_referencing(
            target, relation.target_field, [record.id], options, scope=record
        )
        if candidate.id not in ids
    ]

    def write(db):
        for item in referenced:
            _add_reference(item, relation.target_field, record.id)
        _remove_reference(stale, relation.target_field, record.id)

    run_with_session(write, options)


def destroy_relation_to_many(
    record_id: int, target: type[Base], target_field: str, options: RepositoryOptions
) -> None:
    """Pull ``record_id`` out of the id lists in ``target.target_field``"""
    referencing = _records_referencing(target, target_field, [record_id], options)
    run_with_session(lambda db: _remove_reference(referencing, target_field, record_id), options)


def destroy_relation_to_one(
    record_id: int, target: type[Base], target_field: str, options: RepositoryOptions
) -> None:
    """Clear ``target.target_field`` wherever it points at ``record_id``"""
    statement = (
        update(target)
        .where(getattr(target, target_field) == record_id)
        .values({target_field: None})
    )
    run_with_session(lambda db: db.execute(statement), options)


def _id_list(value: Any) -> list[int]:
    """Normalize a reference field to a list of ids"""
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return [item for item in value if item is not None]
    return [value]


def _add_reference(record: Base, field: str, value: int) -> None:
    current = _id_list(getattr(record, field))
    if value not in current:
        setattr(record, field, current + [value])


def _remove_reference(records: Iterable[Base], field: str, value: int) -> None:
    for record in records:
        setattr(record, field, [item for item in _id_list(getattr(record, field)) if item != value])


def _scoped(statement, model: type[Base], record: Base | None):
    """Restrict a statement to the record's tenant when both sides are tenant-scoped"""
    tenant_id = getattr(record, "tenant_id", None) if record is not None else None
    if tenant_id is not None and hasattr(model, "tenant_id"):
        return statement.where(model.tenant_id == tenant_id)
    return statement


def _records_referencing(
    model: type[Base],
    field: str,
    values: list[int],
    options: RepositoryOptions,
    scope: Base | None = None,
    exclude_id: int | None = None,
) -> list[Base]:
    """
    Records whose id list in ``field`` contains any of ``values``.

    The SQL filter is a textual pre-selection on the serialized JSON (it
    matches ``1`` inside ``[12]``); the exact membership test runs on the
    loaded lists.
    """
    if not values:
        return []

    column = getattr(model, field)
    statement = select(model).where(
        or_(*[cast(column, String).contains(str(value)) for value in values])
    )
    if exclude_id is not None:
        statement = statement.where(model.id != exclude_id)
    statement = _scoped(statement, model, scope)

    wanted = set(values)
    return [
        record
        for record in options.db.execute(statement).scalars()
        if wanted.intersection(_id_list(getattr(record, field)))
    ]
