"""Business (tenant) resolution for batches of configuration entities."""

from typing import Optional, Sequence, Union

from cmdbauth.common.constants import GLOBAL_BUSINESS_ID
from cmdbauth.common.exception import InconsistentTenant
from cmdbauth.models.metadata import Attribute, AuditCategory, Classification, Object

Entity = Union[Attribute, AuditCategory, Classification, Object]


def business_id_of(entity: Entity) -> int:
    """Business of one entity, 0 when it carries no business label."""
    business_id: Optional[int] = entity.business_id
    return GLOBAL_BUSINESS_ID if business_id is None else business_id


def resolve_business_id(entities: Sequence[Entity]) -> int:
    """Return the single business all ``entities`` belong to.

    The first entity sets the candidate and every following one must agree with it.
    An unlabelled entity counts as business 0, so mixing it with a labelled one is
    inconsistent. An empty batch belongs to business 0.

    Raises:
        InconsistentTenant: if two entities belong to different businesses
    """
    business_id = GLOBAL_BUSINESS_ID
    for idx, entity in enumerate(entities):
        current = business_id_of(entity)
        if idx > 0 and current != business_id:
            raise InconsistentTenant(kind=type(entity).__name__.lower(), first=business_id, other=current)
        business_id = current
    return business_id
