"""Store query predicates.

A ``QueryPredicate`` is a conjunction of clauses over record fields. A list of
predicates is read by the store as a disjunction ("any predicate matches"). The
rendered form is the mapping understood by the configuration store::

    >>> QueryPredicate.create().where_in("op_target", ["host"]).where_eq("bk_biz_id", 7).to_dict()
    {'op_target': {'$in': ['host']}, 'bk_biz_id': 7}
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence, Tuple

OP_EQ = "$eq"
OP_IN = "$in"


@dataclass(frozen=True)
class Clause:
    field: str
    operator: str
    value: Any

    def matches(self, record: Mapping[str, Any]) -> bool:
        if self.field not in record:
            return False
        actual = record[self.field]
        if self.operator == OP_IN:
            return actual in self.value
        return bool(actual == self.value)

    def render(self) -> Any:
        if self.operator == OP_IN:
            return {OP_IN: list(self.value)}
        return self.value


@dataclass(frozen=True)
class QueryPredicate:
    clauses: Tuple[Clause, ...] = field(default_factory=tuple)

    @classmethod
    def create(cls) -> "QueryPredicate":
        return cls()

    def where_in(self, name: str, values: Sequence[Any]) -> "QueryPredicate":
        return QueryPredicate(self.clauses + (Clause(name, OP_IN, tuple(values)),))

    def where_eq(self, name: str, value: Any) -> "QueryPredicate":
        return QueryPredicate(self.clauses + (Clause(name, OP_EQ, value),))

    def matches(self, record: Mapping[str, Any]) -> bool:
        return all(clause.matches(record) for clause in self.clauses)

    def to_dict(self) -> Dict[str, Any]:
        return {clause.field: clause.render() for clause in self.clauses}


def render_all(predicates: Sequence[QueryPredicate]) -> List[Dict[str, Any]]:
    return [predicate.to_dict() for predicate in predicates]
