"""In-memory policy engine for cmdbauth.

This engine keeps registered resources in a dictionary and answers from a static
grant table. It is meant for development setups and tests, where running the
real policy service is not practical. Grants can be loaded from a YAML file::

    grants:
      - user: alice
        business_id: 0
        resource_type: auditlog
        resource_ids:
          - {type: auditlog, id: 5}
      - user: alice
        business_id: 7
        resource_type: modelAttribute
        resource_ids:
          - {type: modelClassification, id: 10}
          - {type: model, id: 5}

A grant covers every action on the resource at the end of its chain and on
everything below it, within its business. Grants of business 0 apply in every
business.
"""

import logging
import threading
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import yaml

try:
    from yaml import CSafeLoader as SafeLoader
except ImportError:
    from yaml import SafeLoader  # type: ignore

from cmdbauth.authorization.provider import (
    AccessDecision,
    Action,
    GrantEntry,
    PolicyEngine,
    PolicyEngineError,
    ResourceDescriptor,
    ResourceRef,
    ResourceType,
)
from cmdbauth.common.constants import GLOBAL_BUSINESS_ID
from cmdbauth.models.metadata import Identity

logger = logging.getLogger(__name__)


def _grant_from_dict(data: Mapping[str, Any]) -> GrantEntry:
    try:
        chain = tuple(
            ResourceRef(ResourceType(ref["type"]), ref["id"]) for ref in data.get("resource_ids") or []
        )
        return GrantEntry(
            identity=str(data["user"]),
            business_id=int(data.get("business_id", GLOBAL_BUSINESS_ID)),
            resource_type=ResourceType(data["resource_type"]),
            resource_ids=chain,
        )
    except (KeyError, TypeError, ValueError) as e:
        raise PolicyEngineError(f"invalid grant {data!r}: {e}") from e


class InMemoryPolicyEngine(PolicyEngine):
    def __init__(self, grants: Optional[Iterable[GrantEntry]] = None) -> None:
        self._grants: Tuple[GrantEntry, ...] = tuple(grants or ())
        self._resources: Dict[Tuple[ResourceType, int], ResourceDescriptor] = {}
        self._lock = threading.Lock()
        logger.info("Initialized InMemoryPolicyEngine with %d grants", len(self._grants))

    @classmethod
    def from_yaml(cls, path: str) -> "InMemoryPolicyEngine":
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.load(f, Loader=SafeLoader)
        except (OSError, yaml.YAMLError) as e:
            logger.error("Could not load grants from %s: %s", path, e)
            raise PolicyEngineError(f"could not load grants from {path}: {e}") from e

        if data is None:
            return cls()
        if not isinstance(data, dict) or not isinstance(data.get("grants", []), list):
            raise PolicyEngineError(f"{path} must contain a 'grants' list")
        return cls(_grant_from_dict(item) for item in data.get("grants", []))

    @property
    def registered(self) -> List[ResourceDescriptor]:
        with self._lock:
            return list(self._resources.values())

    def register_resources(self, identity: Identity, resources: Sequence[ResourceDescriptor]) -> None:
        with self._lock:
            for resource in resources:
                self._resources[(resource.resource_type, resource.instance_id)] = resource

    def deregister_resources(self, identity: Identity, resources: Sequence[ResourceDescriptor]) -> None:
        with self._lock:
            for resource in resources:
                self._resources.pop((resource.resource_type, resource.instance_id), None)

    def update_resource(self, identity: Identity, resource: ResourceDescriptor) -> None:
        key = (resource.resource_type, resource.instance_id)
        with self._lock:
            if key not in self._resources:
                raise PolicyEngineError(f"{resource.resource_type.value} {resource.instance_id} is not registered")
            self._resources[key] = resource

    @staticmethod
    def _covers(grant: GrantEntry, resource: ResourceDescriptor) -> bool:
        if not grant.resource_ids:
            return False
        leaf = grant.resource_ids[-1]
        # ids may come from YAML as strings
        path = [(layer.resource_type, str(layer.instance_id)) for layer in resource.layers]
        path.append((resource.resource_type, str(resource.instance_id)))
        return (leaf.resource_type, str(leaf.resource_id)) in path

    def check_access(self, identity: Identity, action: Action, resource: ResourceDescriptor) -> AccessDecision:
        for grant in self._grants:
            if grant.identity != identity.user:
                continue
            if grant.business_id not in (GLOBAL_BUSINESS_ID, resource.business_id):
                continue
            if self._covers(grant, resource):
                return AccessDecision(
                    allowed=True,
                    reason=f"{identity.user} granted {grant.resource_type.value} in business {grant.business_id}",
                )
        return AccessDecision(
            allowed=False,
            reason=f"no grant of {identity.user} covers {resource.resource_type.value} {resource.instance_id}",
        )

    def list_authorized_businesses(self, identity: Identity) -> List[int]:
        return sorted(
            {
                grant.business_id
                for grant in self._grants
                if grant.identity == identity.user and grant.business_id != GLOBAL_BUSINESS_ID
            }
        )

    def list_grants(self, identity: Identity, business_id: int, resource_type: ResourceType) -> List[GrantEntry]:
        return [
            grant
            for grant in self._grants
            if grant.identity == identity.user
            and grant.business_id == business_id
            and grant.resource_type == resource_type
        ]

    def get_name(self) -> str:
        return "memory"

    def health_check(self) -> bool:
        return True
