"""Resource descriptors for configuration entities.

Resources form a fixed hierarchy: classification, then model, then the model's
attributes. The ancestors of a resource are expressed as parent layers ordered
from the root; the resource itself is the descriptor and never appears as a
layer::

    modelAttribute "ip" (id 1)
        layers: [modelClassification "infra" (id 10), model "host" (id 5)]

Audit log resources are addressed by model and carry no layers.
"""

import logging
from typing import Dict, List, Sequence

from cmdbauth.authorization.provider import Action, ParentLayer, ResourceDescriptor, ResourceType
from cmdbauth.common.exception import MissingRelation
from cmdbauth.extensions.collector import EntityCollector
from cmdbauth.extensions.tenancy import Entity, resolve_business_id
from cmdbauth.models.metadata import Attribute, AuditCategory, Classification, Identity, Object

logger = logging.getLogger(__name__)


class ResourceProjector:
    def __init__(self, collector: EntityCollector) -> None:
        self._collector = collector

    def project(self, identity: Identity, action: Action, entities: Sequence[Entity]) -> List[ResourceDescriptor]:
        """Build one descriptor per entity, in input order.

        The batch must hold a single kind of entity. Duplicate entities produce
        duplicate descriptors.
        """
        if not entities:
            return []

        kinds = {type(entity) for entity in entities}
        if len(kinds) > 1:
            raise TypeError(f"cannot project a batch mixing {sorted(k.__name__ for k in kinds)}")

        kind = kinds.pop()
        if kind is Attribute:
            return self.make_resources_by_attributes(identity, action, entities)  # type: ignore[arg-type]
        if kind is Object:
            return self.make_resources_by_objects(identity, action, entities)  # type: ignore[arg-type]
        if kind is Classification:
            return self.make_resources_by_classifications(identity, action, entities)  # type: ignore[arg-type]
        if kind is AuditCategory:
            return self.make_resources_by_audit_categories(identity, action, entities)  # type: ignore[arg-type]
        raise TypeError(f"no resource projection for {kind.__name__}")

    def _classification_map(self, identity: Identity, objects: Sequence[Object]) -> Dict[str, Classification]:
        classifications = self._collector.collect_classifications_by_classification_ids(
            identity, *(obj.classification_id for obj in objects)
        )
        return {classification.classification_id: classification for classification in classifications}

    @staticmethod
    def _classification_layer(obj: Object, classification_map: Dict[str, Classification]) -> ParentLayer:
        classification = classification_map.get(obj.classification_id)
        if classification is None:
            raise MissingRelation(
                kind="model", name=obj.object_id, relation="classification", target=obj.classification_id
            )
        return ParentLayer(ResourceType.MODEL_CLASSIFICATION, classification.classification_id, classification.id)

    def make_resources_by_attributes(
        self, identity: Identity, action: Action, attributes: Sequence[Attribute]
    ) -> List[ResourceDescriptor]:
        if not attributes:
            return []
        logger.debug("make_resources_by_attributes input: %s", attributes)

        objects = self._collector.collect_objects_by_object_ids(identity, *(attr.object_id for attr in attributes))
        object_map = {obj.object_id: obj for obj in objects}
        business_id = resolve_business_id(objects)
        classification_map = self._classification_map(identity, objects)

        resources = []
        for attribute in attributes:
            obj = object_map.get(attribute.object_id)
            if obj is None:
                raise MissingRelation(
                    kind="attribute", name=attribute.property_id, relation="model", target=attribute.object_id
                )

            layers = (
                self._classification_layer(obj, classification_map),
                ParentLayer(ResourceType.MODEL, obj.object_id, obj.id),
            )
            resources.append(
                ResourceDescriptor(
                    action=action,
                    resource_type=ResourceType.MODEL_ATTRIBUTE,
                    name=attribute.property_name,
                    instance_id=attribute.id,
                    business_id=business_id,
                    layers=layers,
                    supplier_account=identity.supplier_account,
                )
            )

        logger.debug("make_resources_by_attributes output: %s", resources)
        return resources

    def make_resources_by_objects(
        self, identity: Identity, action: Action, objects: Sequence[Object]
    ) -> List[ResourceDescriptor]:
        if not objects:
            return []

        business_id = resolve_business_id(objects)
        classification_map = self._classification_map(identity, objects)

        return [
            ResourceDescriptor(
                action=action,
                resource_type=ResourceType.MODEL,
                name=obj.object_id,
                instance_id=obj.id,
                business_id=business_id,
                layers=(self._classification_layer(obj, classification_map),),
                supplier_account=identity.supplier_account,
            )
            for obj in objects
        ]

    def make_resources_by_classifications(
        self, identity: Identity, action: Action, classifications: Sequence[Classification]
    ) -> List[ResourceDescriptor]:
        business_id = resolve_business_id(classifications)
        return [
            ResourceDescriptor(
                action=action,
                resource_type=ResourceType.MODEL_CLASSIFICATION,
                name=classification.classification_id,
                instance_id=classification.id,
                business_id=business_id,
                supplier_account=identity.supplier_account,
            )
            for classification in classifications
        ]

    def make_resources_by_audit_categories(
        self, identity: Identity, action: Action, categories: Sequence[AuditCategory]
    ) -> List[ResourceDescriptor]:
        business_id = resolve_business_id(categories)
        resources = [
            ResourceDescriptor(
                action=action,
                resource_type=ResourceType.AUDIT_LOG,
                name=category.op_target,
                instance_id=category.model_id,
                business_id=business_id,
                supplier_account=identity.supplier_account,
            )
            for category in categories
        ]
        logger.debug("make_resources_by_audit_categories output: %s", resources)
        return resources
