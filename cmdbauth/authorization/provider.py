"""Policy engine interface for cmdbauth.

This module defines the resource descriptors submitted to the external policy
engine and the abstract interface every engine client must implement. The
engine owns all permit/deny decisions; cmdbauth only prepares descriptors and
consumes decisions and grant lists.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Sequence, Tuple

from cmdbauth.models.metadata import Identity


class Action(Enum):
    """Actions that can be requested on a configuration resource.

    ``EMPTY`` is used when a resource is registered, deregistered or updated with
    the engine, since no particular action is being checked.
    """

    EMPTY = ""
    FIND = "find"
    FIND_MANY = "findMany"
    CREATE = "create"
    CREATE_MANY = "createMany"
    UPDATE = "update"
    UPDATE_MANY = "updateMany"
    DELETE = "delete"
    DELETE_MANY = "deleteMany"

    @property
    def is_read(self) -> bool:
        return self in (Action.FIND, Action.FIND_MANY)


class ResourceType(Enum):
    """Kinds of authorizable resources known to the policy engine."""

    MODEL_CLASSIFICATION = "modelClassification"
    MODEL = "model"
    MODEL_ATTRIBUTE = "modelAttribute"
    AUDIT_LOG = "auditlog"


@dataclass(frozen=True)
class ParentLayer:
    """One ancestor of a resource.

    Attributes:
        resource_type: kind of the ancestor
        name: display name, e.g. the classification id "infra"
        instance_id: instance id of the ancestor record
    """

    resource_type: ResourceType
    name: str
    instance_id: int


@dataclass(frozen=True)
class ResourceDescriptor:
    """A single authorizable resource together with its ancestry.

    Attributes:
        action: the action being checked, ``Action.EMPTY`` for registration
        resource_type: kind of the resource
        name: display name of the resource
        instance_id: instance id of the resource record
        business_id: owning business, 0 for resources shared by all businesses
        layers: ancestors ordered from the root down to the direct parent; the
                resource itself is never repeated as a layer
        supplier_account: owner account of the caller
    """

    action: Action
    resource_type: ResourceType
    name: str
    instance_id: int
    business_id: int
    layers: Tuple[ParentLayer, ...] = field(default_factory=tuple)
    supplier_account: str = ""


@dataclass(frozen=True)
class ResourceRef:
    resource_type: ResourceType
    resource_id: Any


@dataclass(frozen=True)
class GrantEntry:
    """A statement from the engine that an identity may act on a resource.

    Attributes:
        identity: user the grant was issued to
        business_id: business the grant applies to, 0 for the global tier
        resource_type: kind of the granted (leaf) resource
        resource_ids: chain of resource references from the root to the leaf
    """

    identity: str
    business_id: int
    resource_type: ResourceType
    resource_ids: Tuple[ResourceRef, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class AccessDecision:
    """Result of an access check.

    Attributes:
        allowed: whether the engine permits the action
        reason: human-readable reason for the decision (for logging and auditing)
    """

    allowed: bool
    reason: str


class PolicyEngine(ABC):
    """Abstract base class for policy engine clients.

    Implementations must be safe to call concurrently and must not keep any
    per-caller state: the caller identity is passed with every call and should be
    forwarded to the engine (it carries the request id for correlation). Errors
    are raised as exceptions; cmdbauth wraps them in ``UpstreamError`` and never
    retries.
    """

    @abstractmethod
    def register_resources(self, identity: Identity, resources: Sequence[ResourceDescriptor]) -> None:
        """Register resources with the engine so that permissions can be granted on them."""

    @abstractmethod
    def deregister_resources(self, identity: Identity, resources: Sequence[ResourceDescriptor]) -> None:
        """Remove previously registered resources."""

    @abstractmethod
    def update_resource(self, identity: Identity, resource: ResourceDescriptor) -> None:
        """Update the display data of one registered resource."""

    @abstractmethod
    def check_access(self, identity: Identity, action: Action, resource: ResourceDescriptor) -> AccessDecision:
        """Ask the engine whether ``identity`` may perform ``action`` on ``resource``."""

    @abstractmethod
    def list_authorized_businesses(self, identity: Identity) -> List[int]:
        """Return the ids of all businesses the identity holds any permission in."""

    @abstractmethod
    def list_grants(self, identity: Identity, business_id: int, resource_type: ResourceType) -> List[GrantEntry]:
        """Return the identity's grants on resources of one kind within a business.

        ``business_id`` 0 returns the grants of the global tier.
        """

    @abstractmethod
    def get_name(self) -> str:
        """Get the engine name for logging and debugging."""

    @abstractmethod
    def health_check(self) -> bool:
        """Check whether the engine can currently be reached."""


class PolicyEngineError(Exception):
    """Raised by engine clients when a call cannot be completed.

    This indicates that the engine could not answer, not that it denied access.
    """
