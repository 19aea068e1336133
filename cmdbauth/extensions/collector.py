"""Batched lookups of configuration entities by identifier."""

import logging
from typing import Any, Callable, Iterable, List, Mapping, TypeVar

from cmdbauth.common import constants
from cmdbauth.common.exception import CountMismatch, NotFound, ParseError, UpstreamError
from cmdbauth.common.util import unique
from cmdbauth.models.condition import QueryPredicate
from cmdbauth.models.metadata import Attribute, Classification, Identity, Object
from cmdbauth.store import EntityStore

logger = logging.getLogger(__name__)

E = TypeVar("E")


class EntityCollector:
    def __init__(self, store: EntityStore) -> None:
        self._store = store

    def fetch_by_ids(
        self,
        identity: Identity,
        table: str,
        field: str,
        identifiers: Iterable[Any],
        parse: Callable[[Mapping[str, Any]], E],
        strict: bool = True,
    ) -> List[E]:
        """Fetch and decode the records of ``table`` whose ``field`` is one of ``identifiers``.

        Identifiers are deduplicated first so that the number of records returned can
        be compared with the number requested: in strict mode, getting nothing raises
        ``NotFound`` and getting a different number raises ``CountMismatch``, which
        points at a stale or invalid identifier. Any record that fails to decode
        aborts the whole batch with ``ParseError``.
        """
        ids = unique(identifiers)
        if not ids:
            return []

        predicate = QueryPredicate.create().where_in(field, ids)
        identity.ensure_active("entity store")
        try:
            records = self._store.fetch_by_filter(identity, table, predicate)
        except Exception as e:
            logger.error("Reading %s by %s %s failed: %s", table, field, ids, e)
            raise UpstreamError(collaborator="entity store", reason=f"read {table} by {field} {ids}: {e}") from e

        if strict:
            if not records:
                raise NotFound(table=table, field=field, ids=ids)
            if len(records) != len(ids):
                raise CountMismatch(table=table, field=field, ids=ids, got=len(records), expected=len(ids))

        entities = []
        for record in records:
            try:
                entities.append(parse(record))
            except ParseError as e:
                logger.error("Decoding %s record %s requested by %s %s failed: %s", table, record, field, ids, e)
                raise
        return entities

    def collect_attributes_by_ids(self, identity: Identity, *ids: int) -> List[Attribute]:
        return self.fetch_by_ids(identity, constants.TABLE_ATTRIBUTE, constants.FIELD_ID, ids, Attribute.parse)

    def collect_objects_by_object_ids(self, identity: Identity, *object_ids: str) -> List[Object]:
        return self.fetch_by_ids(identity, constants.TABLE_OBJECT, constants.FIELD_OBJECT_ID, object_ids, Object.parse)

    def collect_objects_by_raw_ids(self, identity: Identity, *ids: int) -> List[Object]:
        return self.fetch_by_ids(identity, constants.TABLE_OBJECT, constants.FIELD_ID, ids, Object.parse)

    def collect_classifications_by_classification_ids(
        self, identity: Identity, *classification_ids: str, strict: bool = False
    ) -> List[Classification]:
        # Non-strict by default for parent lookups, gaps are reported by the caller as a missing relation
        return self.fetch_by_ids(
            identity,
            constants.TABLE_CLASSIFICATION,
            constants.FIELD_CLASSIFICATION_ID,
            classification_ids,
            Classification.parse,
            strict=strict,
        )

    def collect_classifications_by_raw_ids(self, identity: Identity, *ids: int) -> List[Classification]:
        return self.fetch_by_ids(
            identity, constants.TABLE_CLASSIFICATION, constants.FIELD_ID, ids, Classification.parse
        )
