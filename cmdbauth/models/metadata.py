"""Typed views of configuration store records.

Every entity is decoded from a raw record (a mapping as returned by the store)
through its ``parse`` class method. Decoding is strict: a missing or mistyped
field raises ``ParseError`` and the caller is expected to abort the batch.

Classifications, models and attributes carry their business (tenant) as a label
under ``metadata.label.bk_biz_id``. A missing label means the entity is shared by
all businesses and is exposed as ``business_id = None``.
"""

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from cmdbauth.common import constants
from cmdbauth.common.exception import ParseError, RequestCancelled
from cmdbauth.common.util import get_int64


@dataclass(frozen=True)
class Identity:
    """The caller on whose behalf an operation runs.

    The identity is passed to every store and policy engine call and also carries
    the execution context of the request. A collaborator should give up once
    ``deadline`` has passed or ``cancel_event`` is set; cmdbauth itself checks both
    before each call and raises ``RequestCancelled`` instead of calling.

    Attributes:
        user: user name as known by the policy engine
        supplier_account: owner (supplier) account the request belongs to
        request_id: optional correlation id forwarded to collaborators
        deadline: ``time.monotonic()`` value after which the request has timed out
        cancel_event: set by the caller to cancel the request
    """

    user: str
    supplier_account: str
    request_id: Optional[str] = None
    deadline: Optional[float] = None
    cancel_event: Optional[threading.Event] = field(default=None, compare=False, repr=False)

    def ensure_active(self, collaborator: str) -> None:
        """Raise ``RequestCancelled`` if the request was cancelled or ran out of time."""
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise RequestCancelled(collaborator=collaborator, reason=f"request {self.request_id} was cancelled")
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise RequestCancelled(collaborator=collaborator, reason=f"request {self.request_id} timed out")


def _require_int(kind: str, record: Mapping[str, Any], name: str) -> int:
    if name not in record or record[name] is None:
        raise ParseError(kind=kind, reason=f"field '{name}' is missing")
    try:
        return get_int64(record[name])
    except ValueError as e:
        raise ParseError(kind=kind, reason=f"field '{name}': {e}") from e


def _require_str(kind: str, record: Mapping[str, Any], name: str) -> str:
    value = record.get(name)
    if not isinstance(value, str) or not value:
        raise ParseError(kind=kind, reason=f"field '{name}' must be a non-empty string, got {value!r}")
    return value


def _optional_str(kind: str, record: Mapping[str, Any], name: str) -> str:
    value = record.get(name, "")
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ParseError(kind=kind, reason=f"field '{name}' must be a string, got {value!r}")
    return value


def _label_business_id(kind: str, record: Mapping[str, Any]) -> Optional[int]:
    metadata = record.get(constants.FIELD_METADATA)
    if metadata is None:
        return None
    if not isinstance(metadata, Mapping):
        raise ParseError(kind=kind, reason=f"field '{constants.FIELD_METADATA}' must be a mapping")

    label = metadata.get(constants.FIELD_LABEL)
    if label is None:
        return None
    if not isinstance(label, Mapping):
        raise ParseError(kind=kind, reason=f"field '{constants.FIELD_LABEL}' must be a mapping")

    if constants.FIELD_BUSINESS_ID not in label:
        return None
    try:
        return get_int64(label[constants.FIELD_BUSINESS_ID])
    except ValueError as e:
        raise ParseError(kind=kind, reason=f"business label: {e}") from e


@dataclass(frozen=True)
class Classification:
    id: int
    classification_id: str
    classification_name: str = ""
    business_id: Optional[int] = None

    @classmethod
    def parse(cls, record: Mapping[str, Any]) -> "Classification":
        kind = "classification"
        return cls(
            id=_require_int(kind, record, constants.FIELD_ID),
            classification_id=_require_str(kind, record, constants.FIELD_CLASSIFICATION_ID),
            classification_name=_optional_str(kind, record, constants.FIELD_CLASSIFICATION_NAME),
            business_id=_label_business_id(kind, record),
        )


@dataclass(frozen=True)
class Object:
    """A model definition, e.g. "host", grouped under a classification."""

    id: int
    object_id: str
    classification_id: str
    object_name: str = ""
    business_id: Optional[int] = None

    @classmethod
    def parse(cls, record: Mapping[str, Any]) -> "Object":
        kind = "model"
        return cls(
            id=_require_int(kind, record, constants.FIELD_ID),
            object_id=_require_str(kind, record, constants.FIELD_OBJECT_ID),
            classification_id=_require_str(kind, record, constants.FIELD_CLASSIFICATION_ID),
            object_name=_optional_str(kind, record, constants.FIELD_OBJECT_NAME),
            business_id=_label_business_id(kind, record),
        )


@dataclass(frozen=True)
class Attribute:
    id: int
    object_id: str
    property_id: str
    property_name: str = ""
    business_id: Optional[int] = None

    @classmethod
    def parse(cls, record: Mapping[str, Any]) -> "Attribute":
        kind = "attribute"
        return cls(
            id=_require_int(kind, record, constants.FIELD_ID),
            object_id=_require_str(kind, record, constants.FIELD_OBJECT_ID),
            property_id=_require_str(kind, record, constants.FIELD_PROPERTY_ID),
            property_name=_optional_str(kind, record, constants.FIELD_PROPERTY_NAME),
            business_id=_label_business_id(kind, record),
        )


@dataclass(frozen=True)
class AuditCategory:
    """The model an audit log entry is about, within a business.

    ``model_id`` is the instance id of the model named by ``op_target``; it is 0
    until resolved against the model table.
    """

    op_target: str
    business_id: int = constants.GLOBAL_BUSINESS_ID
    model_id: int = 0

    @classmethod
    def parse(cls, record: Mapping[str, Any]) -> "AuditCategory":
        kind = "audit category"
        business_id = constants.GLOBAL_BUSINESS_ID
        if record.get(constants.FIELD_BUSINESS_ID) is not None:
            business_id = _require_int(kind, record, constants.FIELD_BUSINESS_ID)
        return cls(
            op_target=_require_str(kind, record, constants.FIELD_OP_TARGET),
            business_id=business_id,
        )
