"""Authorization manager for cmdbauth.

The manager turns configuration entities into resource descriptors and forwards
them to the policy engine: registering resources when entities are created,
updating or deregistering them when entities change or go away, and checking
access before entities are read or modified.

Every operation takes the caller ``Identity`` explicitly and accepts an empty
batch as a successful no-op. Nothing is retried and nothing is rolled back:
when a multi-resource update fails part way, the resources submitted before the
failure stay applied and the error is returned to the caller.

The deadline and cancel event carried by the identity are checked before each
engine call, so a cancelled request stops between two resources of a batch.
"""

import logging
from typing import List, Optional, Sequence, Tuple

from cmdbauth.authorization.provider import Action, PolicyEngine, ResourceDescriptor
from cmdbauth.common.exception import PermissionDenied, UpstreamError
from cmdbauth.config import AuthConfig
from cmdbauth.extensions.audit import AuditConditionBuilder
from cmdbauth.extensions.collector import EntityCollector
from cmdbauth.extensions.projector import ResourceProjector
from cmdbauth.extensions.tenancy import resolve_business_id
from cmdbauth.models.condition import QueryPredicate
from cmdbauth.models.metadata import Attribute, AuditCategory, Classification, Identity
from cmdbauth.store import EntityStore

logger = logging.getLogger(__name__)


class AuthManager:
    """Routes configuration entity changes and checks to the policy engine.

    The manager holds no per-call state and can be shared between threads.
    """

    def __init__(self, engine: PolicyEngine, store: EntityStore, auth_config: Optional[AuthConfig] = None) -> None:
        self._engine = engine
        self._config = auth_config or AuthConfig()
        self._collector = EntityCollector(store)
        self._projector = ResourceProjector(self._collector)
        self._audit = AuditConditionBuilder(engine, store, self._collector)

    # Policy engine calls

    def _register(self, identity: Identity, resources: Sequence[ResourceDescriptor]) -> None:
        identity.ensure_active(self._engine.get_name())
        try:
            self._engine.register_resources(identity, resources)
        except Exception as e:
            logger.error("Registering %d resources with %s failed: %s", len(resources), self._engine.get_name(), e)
            raise UpstreamError(collaborator=self._engine.get_name(), reason=f"register resources: {e}") from e

    def _deregister(self, identity: Identity, resources: Sequence[ResourceDescriptor]) -> None:
        identity.ensure_active(self._engine.get_name())
        try:
            self._engine.deregister_resources(identity, resources)
        except Exception as e:
            logger.error("Deregistering %d resources with %s failed: %s", len(resources), self._engine.get_name(), e)
            raise UpstreamError(collaborator=self._engine.get_name(), reason=f"deregister resources: {e}") from e

    def _update(self, identity: Identity, resources: Sequence[ResourceDescriptor]) -> None:
        for idx, resource in enumerate(resources):
            identity.ensure_active(self._engine.get_name())
            try:
                self._engine.update_resource(identity, resource)
            except Exception as e:
                logger.error(
                    "Updating %s %s failed after %d of %d resources were updated: %s",
                    resource.resource_type.value,
                    resource.name,
                    idx,
                    len(resources),
                    e,
                )
                raise UpstreamError(
                    collaborator=self._engine.get_name(),
                    reason=f"update {resource.resource_type.value} {resource.name}: {e}",
                ) from e

    def _authorize(self, identity: Identity, resources: Sequence[ResourceDescriptor]) -> None:
        for resource in resources:
            identity.ensure_active(self._engine.get_name())
            try:
                decision = self._engine.check_access(identity, resource.action, resource)
            except Exception as e:
                logger.error(
                    "Access check of %s on %s %s failed: %s",
                    identity.user,
                    resource.resource_type.value,
                    resource.name,
                    e,
                )
                raise UpstreamError(collaborator=self._engine.get_name(), reason=f"check access: {e}") from e

            log_msg = "Authorization %s: user=%s, action=%s, resource=%s %s, business=%d, reason=%s"
            log_args = (
                "GRANTED" if decision.allowed else "DENIED",
                identity.user,
                resource.action.value,
                resource.resource_type.value,
                resource.name,
                resource.business_id,
                decision.reason,
            )
            if not decision.allowed:
                logger.warning(log_msg, *log_args)
                raise PermissionDenied(
                    action=resource.action.value,
                    resource_type=resource.resource_type.value,
                    name=resource.name,
                    business_id=resource.business_id,
                    reason=decision.reason,
                )
            logger.info(log_msg, *log_args)

    def _skip_read(self, action: Action) -> bool:
        return self._config.skip_read_authorization and action.is_read

    # Model attributes

    def register_model_attribute(self, identity: Identity, attributes: Sequence[Attribute]) -> None:
        if not attributes or not self._config.register_resources_enabled:
            return

        resources = self._projector.make_resources_by_attributes(identity, Action.EMPTY, attributes)
        self._register(identity, resources)

    def deregister_model_attribute(self, identity: Identity, attributes: Sequence[Attribute]) -> None:
        if not attributes or not self._config.register_resources_enabled:
            return

        resources = self._projector.make_resources_by_attributes(identity, Action.EMPTY, attributes)
        self._deregister(identity, resources)

    def deregister_model_attribute_by_id(self, identity: Identity, attribute_ids: Sequence[int]) -> None:
        if not attribute_ids or not self._config.register_resources_enabled:
            return

        attributes = self._collector.collect_attributes_by_ids(identity, *attribute_ids)
        self.deregister_model_attribute(identity, attributes)

    def update_registered_model_attribute(self, identity: Identity, attributes: Sequence[Attribute]) -> None:
        if not attributes or not self._config.register_resources_enabled:
            return

        resources = self._projector.make_resources_by_attributes(identity, Action.EMPTY, attributes)
        self._update(identity, resources)

    def update_registered_model_attribute_by_id(self, identity: Identity, attribute_ids: Sequence[int]) -> None:
        if not attribute_ids or not self._config.register_resources_enabled:
            return

        attributes = self._collector.collect_attributes_by_ids(identity, *attribute_ids)
        self.update_registered_model_attribute(identity, attributes)

    def authorize_model_attribute(self, identity: Identity, action: Action, attributes: Sequence[Attribute]) -> None:
        """Check ``action`` on every attribute.

        Without fine grained resources, changing an attribute is changing its model,
        so the check falls back to updating the owning models.
        """
        if not attributes or self._skip_read(action):
            return

        if not self._config.register_resources_enabled:
            self.authorize_by_object_id(identity, Action.UPDATE, [attr.object_id for attr in attributes])
            return

        resources = self._projector.make_resources_by_attributes(identity, action, attributes)
        self._authorize(identity, resources)

    def authorize_by_attribute_id(self, identity: Identity, action: Action, attribute_ids: Sequence[int]) -> None:
        if not attribute_ids or self._skip_read(action):
            return

        attributes = self._collector.collect_attributes_by_ids(identity, *attribute_ids)
        self.authorize_model_attribute(identity, action, attributes)

    # Models

    def authorize_by_object_id(self, identity: Identity, action: Action, object_ids: Sequence[str]) -> None:
        if not object_ids or self._skip_read(action):
            return

        objects = self._collector.collect_objects_by_object_ids(identity, *object_ids)
        resources = self._projector.make_resources_by_objects(identity, action, objects)
        self._authorize(identity, resources)

    # Model classifications

    def authorize_by_classification(
        self, identity: Identity, action: Action, classifications: Sequence[Classification]
    ) -> None:
        if not classifications or self._skip_read(action):
            logger.debug("Skip authorization of %s on classifications %s", action.value, classifications)
            return

        resources = self._projector.make_resources_by_classifications(identity, action, classifications)
        self._authorize(identity, resources)

    def register_classification(self, identity: Identity, classifications: Sequence[Classification]) -> None:
        if not classifications or not self._config.register_resources_enabled:
            return

        resources = self._projector.make_resources_by_classifications(identity, Action.EMPTY, classifications)
        self._register(identity, resources)

    def deregister_classification(self, identity: Identity, classifications: Sequence[Classification]) -> None:
        if not classifications or not self._config.register_resources_enabled:
            return

        resources = self._projector.make_resources_by_classifications(identity, Action.EMPTY, classifications)
        self._deregister(identity, resources)

    def deregister_classification_by_raw_id(self, identity: Identity, ids: Sequence[int]) -> None:
        if not ids or not self._config.register_resources_enabled:
            return

        classifications = self._collector.collect_classifications_by_raw_ids(identity, *ids)
        self.deregister_classification(identity, classifications)

    def update_registered_classification(self, identity: Identity, classifications: Sequence[Classification]) -> None:
        if not classifications or not self._config.register_resources_enabled:
            return

        resources = self._projector.make_resources_by_classifications(identity, Action.EMPTY, classifications)
        self._update(identity, resources)

    def update_registered_classification_by_id(self, identity: Identity, classification_ids: Sequence[str]) -> None:
        if not classification_ids or not self._config.register_resources_enabled:
            return

        classifications = self._collector.collect_classifications_by_classification_ids(
            identity, *classification_ids, strict=True
        )
        self.update_registered_classification(identity, classifications)

    def update_registered_classification_by_raw_id(self, identity: Identity, ids: Sequence[int]) -> None:
        if not ids or not self._config.register_resources_enabled:
            return

        classifications = self._collector.collect_classifications_by_raw_ids(identity, *ids)
        self.update_registered_classification(identity, classifications)

    # Audit log

    def register_audit_categories(self, identity: Identity, categories: Sequence[AuditCategory]) -> None:
        if not categories or not self._config.register_resources_enabled:
            return

        resources = self._projector.make_resources_by_audit_categories(identity, Action.EMPTY, categories)
        self._register(identity, resources)

    def extract_business_id_from_audit_categories(self, categories: Sequence[AuditCategory]) -> int:
        return resolve_business_id(categories)

    def collect_audit_category_by_business_id(self, identity: Identity, business_id: int) -> List[AuditCategory]:
        return self._audit.collect_audit_category_by_business_id(identity, business_id)

    def make_authorized_audit_list_condition(
        self, identity: Identity, business_id: int
    ) -> Tuple[List[QueryPredicate], bool]:
        return self._audit.make_authorized_audit_list_condition(identity, business_id)
