"""Audit log authorization.

Audit log entries are authorized per model: a user may read the entries whose
``op_target`` names a model they were granted in a business, or in the global
tier (business 0) which covers every business. The grants are turned into a
list of store predicates, any of which a visible entry has to match::

    [{"op_target": {"$in": ["host", "switch"]}},
     {"op_target": {"$in": ["module"]}, "bk_biz_id": 7}]
"""

import dataclasses
import logging
from typing import Dict, List, Tuple

from cmdbauth.authorization.provider import PolicyEngine, ResourceType
from cmdbauth.common import constants
from cmdbauth.common.exception import ParseError, UpstreamError
from cmdbauth.common.util import get_int64, unique
from cmdbauth.extensions.collector import EntityCollector
from cmdbauth.models.condition import QueryPredicate, render_all
from cmdbauth.models.metadata import AuditCategory, Identity, Object
from cmdbauth.store import EntityStore

logger = logging.getLogger(__name__)


class AuditConditionBuilder:
    def __init__(self, engine: PolicyEngine, store: EntityStore, collector: EntityCollector) -> None:
        self._engine = engine
        self._store = store
        self._collector = collector

    def collect_audit_category_by_business_id(self, identity: Identity, business_id: int) -> List[AuditCategory]:
        """List the models audit entries of a business are about.

        Entries that cannot be decoded are skipped and counted, as are categories
        naming a model that no longer exists. Only the first category of each model
        is kept, with ``model_id`` filled in.
        """
        predicate = QueryPredicate.create().where_eq(constants.FIELD_BUSINESS_ID, business_id)
        identity.ensure_active("entity store")
        try:
            records = self._store.fetch_by_filter(identity, constants.TABLE_OPERATION_LOG, predicate)
        except Exception as e:
            logger.error("Collecting audit categories of business %d failed: %s", business_id, e)
            raise UpstreamError(
                collaborator="entity store", reason=f"read audit log of business {business_id}: {e}"
            ) from e

        categories: Dict[str, AuditCategory] = {}
        skipped = 0
        for record in records:
            try:
                category = AuditCategory.parse(record)
            except ParseError as e:
                skipped += 1
                logger.error("Skipping audit record %s of business %d: %s", record, business_id, e)
                continue
            categories.setdefault(category.op_target, category)

        if skipped:
            logger.warning("Skipped %d of %d audit records of business %d", skipped, len(records), business_id)
        if not categories:
            return []

        logger.debug("Audit records of business %d belong to models %s", business_id, list(categories))
        objects = self._collector.fetch_by_ids(
            identity,
            constants.TABLE_OBJECT,
            constants.FIELD_OBJECT_ID,
            categories.keys(),
            Object.parse,
            strict=False,
        )
        model_ids = {obj.object_id: obj.id for obj in objects}

        valid = []
        for op_target, category in categories.items():
            if op_target not in model_ids:
                logger.error("Unexpected audit op_target %s in business %d", op_target, business_id)
                continue
            valid.append(dataclasses.replace(category, model_id=model_ids[op_target]))

        logger.debug("Audit categories of business %d: %s", business_id, valid)
        return valid

    def _authorized_business_ids(self, identity: Identity, business_id: int) -> List[int]:
        business_ids: List[int] = []
        if business_id == constants.GLOBAL_BUSINESS_ID:
            identity.ensure_active(self._engine.get_name())
            try:
                business_ids = list(self._engine.list_authorized_businesses(identity))
            except Exception as e:
                logger.error("Listing authorized businesses of %s failed: %s", identity.user, e)
                raise UpstreamError(
                    collaborator=self._engine.get_name(), reason=f"list authorized businesses: {e}"
                ) from e
        else:
            business_ids = [business_id]

        business_ids.append(constants.GLOBAL_BUSINESS_ID)
        return unique(business_ids)

    def _authorized_models(self, identity: Identity, business_id: int) -> List[str]:
        identity.ensure_active(self._engine.get_name())
        try:
            grants = self._engine.list_grants(identity, business_id, ResourceType.AUDIT_LOG)
        except Exception as e:
            logger.error("Listing audit grants of %s in business %d failed: %s", identity.user, business_id, e)
            raise UpstreamError(
                collaborator=self._engine.get_name(), reason=f"list audit grants in business {business_id}: {e}"
            ) from e
        logger.info("Authorized audit grants of %s in business %d: %s", identity.user, business_id, grants)

        model_ids = []
        for grant in grants:
            if not grant.resource_ids:
                continue
            leaf = grant.resource_ids[-1].resource_id
            try:
                model_ids.append(get_int64(leaf))
            except ValueError as e:
                raise ParseError(kind="audit grant", reason=f"business {business_id}, resource id {leaf!r}: {e}") from e

        if not model_ids:
            return []

        objects = self._collector.collect_objects_by_raw_ids(identity, *model_ids)
        return unique(obj.object_id for obj in objects)

    def make_authorized_audit_list_condition(
        self, identity: Identity, business_id: int
    ) -> Tuple[List[QueryPredicate], bool]:
        """Build the conditions restricting an audit log query to what ``identity`` may read.

        ``business_id`` 0 asks for every business the identity is authorized in. The
        global tier is always consulted; its models become a single predicate with no
        business clause and it is left out of the per-business predicates.

        Returns:
            the predicates (any of which a visible entry must match) and whether there
            is any authorization at all. When the latter is False the caller must deny
            the query, not run it unfiltered.
        """
        business_ids = self._authorized_business_ids(identity, business_id)
        logger.debug("Audit authorization of %s checked in businesses %s", identity.user, business_ids)

        authorized: Dict[int, List[str]] = {}
        for current in business_ids:
            models = self._authorized_models(identity, current)
            if models:
                authorized[current] = models
        logger.info("Authorized audit models of %s by business: %s", identity.user, authorized)

        predicates = []
        global_models = authorized.pop(constants.GLOBAL_BUSINESS_ID, None)
        if global_models:
            predicates.append(QueryPredicate.create().where_in(constants.FIELD_OP_TARGET, global_models))

        for current, models in authorized.items():
            predicates.append(
                QueryPredicate.create()
                .where_in(constants.FIELD_OP_TARGET, models)
                .where_eq(constants.FIELD_BUSINESS_ID, current)
            )

        logger.debug("Authorized audit list condition: %s", render_all(predicates))
        return predicates, bool(predicates)
