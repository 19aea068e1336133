"""Access to the configuration store.

cmdbauth never talks to the document store directly. It goes through an
``EntityStore`` which answers filtered reads on one table at a time.
``InMemoryEntityStore`` keeps rows in dictionaries and is meant for development
setups and tests.
"""

import copy
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Mapping, Optional

from cmdbauth.models.condition import QueryPredicate
from cmdbauth.models.metadata import Identity

logger = logging.getLogger(__name__)


class EntityStore(ABC):
    @abstractmethod
    def fetch_by_filter(self, identity: Identity, table: str, predicate: QueryPredicate) -> List[Mapping[str, Any]]:
        """Return every record of ``table`` matching ``predicate``.

        Records come back in storage order. Implementations raise an exception when
        the read cannot be performed; an empty list means nothing matched.
        """


class InMemoryEntityStore(EntityStore):
    def __init__(self, tables: Optional[Mapping[str, Iterable[Mapping[str, Any]]]] = None) -> None:
        self._tables: Dict[str, List[Dict[str, Any]]] = {}
        for table, rows in (tables or {}).items():
            self._tables[table] = [dict(row) for row in rows]

    def fetch_by_filter(self, identity: Identity, table: str, predicate: QueryPredicate) -> List[Mapping[str, Any]]:
        rows = self._tables.get(table, [])
        found = [copy.deepcopy(row) for row in rows if predicate.matches(row)]
        logger.debug("Fetched %d rows from %s with %s for %s", len(found), table, predicate.to_dict(), identity.user)
        return found
