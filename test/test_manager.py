"""Unit tests for the authorization manager.

Tests cover:
- Registration, deregistration and one-by-one updates of resources
- Access checks and how denials and engine failures surface
- The register_resources and skip_read_authorization switches
- Request deadlines and cancellation
"""

import threading
import time
import unittest
from unittest.mock import MagicMock

from cmdbauth.authorization.manager import AuthManager
from cmdbauth.authorization.provider import AccessDecision, Action, PolicyEngine, ResourceType
from cmdbauth.common import constants
from cmdbauth.common.exception import (
    InconsistentTenant,
    NotFound,
    PermissionDenied,
    RequestCancelled,
    UpstreamError,
)
from cmdbauth.config import AuthConfig
from cmdbauth.models.metadata import Attribute, AuditCategory, Classification, Identity
from cmdbauth.store import EntityStore, InMemoryEntityStore

IDENTITY = Identity(user="alice", supplier_account="0", request_id="req-1")

ATTRIBUTES = [
    Attribute(id=1, object_id="host", property_id="ip", property_name="IP"),
    Attribute(id=2, object_id="host", property_id="name", property_name="Name"),
]

CLASSIFICATIONS = [
    Classification(id=10, classification_id="infra"),
    Classification(id=11, classification_id="network"),
    Classification(id=12, classification_id="facility"),
]


def _store():
    return InMemoryEntityStore(
        {
            constants.TABLE_CLASSIFICATION: [
                {"id": 10, "bk_classification_id": "infra"},
                {"id": 11, "bk_classification_id": "network"},
            ],
            constants.TABLE_OBJECT: [{"id": 5, "bk_obj_id": "host", "bk_classification_id": "infra"}],
            constants.TABLE_ATTRIBUTE: [
                {"id": 1, "bk_obj_id": "host", "bk_property_id": "ip", "bk_property_name": "IP"},
                {"id": 2, "bk_obj_id": "host", "bk_property_id": "name", "bk_property_name": "Name"},
            ],
        }
    )


def _engine():
    engine = MagicMock(spec=PolicyEngine)
    engine.get_name.return_value = "mock"
    engine.check_access.return_value = AccessDecision(allowed=True, reason="granted")
    return engine


class TestAuthManagerWritePath(unittest.TestCase):
    def setUp(self):
        self.engine = _engine()
        self.manager = AuthManager(self.engine, _store(), AuthConfig())

    def test_register_model_attribute(self):
        self.manager.register_model_attribute(IDENTITY, ATTRIBUTES)

        self.engine.register_resources.assert_called_once()
        identity, resources = self.engine.register_resources.call_args.args
        self.assertIs(identity, IDENTITY)
        self.assertEqual([r.instance_id for r in resources], [1, 2])
        self.assertTrue(all(r.action == Action.EMPTY for r in resources))

    def test_deregister_model_attribute_by_id(self):
        self.manager.deregister_model_attribute_by_id(IDENTITY, [2, 2])

        _, resources = self.engine.deregister_resources.call_args.args
        self.assertEqual([r.name for r in resources], ["Name"])

    def test_deregister_unknown_attribute_id(self):
        self.assertRaises(NotFound, self.manager.deregister_model_attribute_by_id, IDENTITY, [1, 99])
        self.engine.deregister_resources.assert_not_called()

    def test_update_model_attribute_by_id_one_by_one(self):
        self.manager.update_registered_model_attribute_by_id(IDENTITY, [1, 2])

        self.assertEqual(self.engine.update_resource.call_count, 2)
        self.engine.register_resources.assert_not_called()

    def test_update_stops_at_first_failure(self):
        """Test that a failed update aborts the rest and leaves earlier updates applied."""
        self.engine.update_resource.side_effect = [None, RuntimeError("engine down"), None]

        with self.assertRaises(UpstreamError) as cm:
            self.manager.update_registered_classification(IDENTITY, CLASSIFICATIONS)

        self.assertEqual(self.engine.update_resource.call_count, 2)
        self.assertIn("network", str(cm.exception))
        self.assertIsInstance(cm.exception.__cause__, RuntimeError)

    def test_register_failure_wrapped(self):
        self.engine.register_resources.side_effect = ConnectionError("timeout")

        self.assertRaises(UpstreamError, self.manager.register_classification, IDENTITY, CLASSIFICATIONS)

    def test_classification_by_raw_id(self):
        self.manager.deregister_classification_by_raw_id(IDENTITY, [10, 11])
        _, resources = self.engine.deregister_resources.call_args.args
        self.assertEqual([r.name for r in resources], ["infra", "network"])

        self.manager.update_registered_classification_by_raw_id(IDENTITY, [11])
        _, resource = self.engine.update_resource.call_args.args
        self.assertEqual(resource.instance_id, 11)

    def test_classification_by_id_must_exist(self):
        self.manager.update_registered_classification_by_id(IDENTITY, ["infra"])
        self.assertEqual(self.engine.update_resource.call_count, 1)

        self.assertRaises(
            NotFound, self.manager.update_registered_classification_by_id, IDENTITY, ["infra", "storage"]
        )

    def test_register_audit_categories(self):
        self.manager.register_audit_categories(IDENTITY, [AuditCategory("host", 3, 5)])

        _, resources = self.engine.register_resources.call_args.args
        self.assertEqual(resources[0].resource_type, ResourceType.AUDIT_LOG)
        self.assertEqual(resources[0].business_id, 3)

    def test_register_audit_categories_of_two_businesses(self):
        categories = [AuditCategory("host", 3, 5), AuditCategory("switch", 4, 6)]

        self.assertRaises(InconsistentTenant, self.manager.register_audit_categories, IDENTITY, categories)
        self.engine.register_resources.assert_not_called()

    def test_empty_batches(self):
        """Test that empty inputs succeed without calling anything."""
        store = MagicMock(spec=EntityStore)
        manager = AuthManager(self.engine, store)

        manager.register_model_attribute(IDENTITY, [])
        manager.deregister_model_attribute_by_id(IDENTITY, [])
        manager.update_registered_classification_by_id(IDENTITY, [])
        manager.authorize_by_attribute_id(IDENTITY, Action.UPDATE, [])
        manager.authorize_by_classification(IDENTITY, Action.UPDATE, [])
        manager.register_audit_categories(IDENTITY, [])

        self.assertEqual(self.engine.register_resources.call_count, 0)
        self.assertEqual(self.engine.check_access.call_count, 0)
        store.fetch_by_filter.assert_not_called()


class TestAuthManagerReadPath(unittest.TestCase):
    def setUp(self):
        self.engine = _engine()
        self.manager = AuthManager(self.engine, _store(), AuthConfig())

    def test_authorize_model_attribute(self):
        self.manager.authorize_model_attribute(IDENTITY, Action.FIND, ATTRIBUTES)

        self.assertEqual(self.engine.check_access.call_count, 2)
        identity, action, resource = self.engine.check_access.call_args.args
        self.assertIs(identity, IDENTITY)
        self.assertEqual(action, Action.FIND)
        self.assertEqual(resource.resource_type, ResourceType.MODEL_ATTRIBUTE)
        self.engine.register_resources.assert_not_called()

    def test_denied(self):
        self.engine.check_access.return_value = AccessDecision(allowed=False, reason="no grant")

        with self.assertRaises(PermissionDenied) as cm:
            self.manager.authorize_by_attribute_id(IDENTITY, Action.UPDATE, [1])
        self.assertIn("no grant", str(cm.exception))
        self.assertIn("IP", str(cm.exception))

    def test_engine_failure_is_not_a_denial(self):
        self.engine.check_access.side_effect = RuntimeError("engine down")

        self.assertRaises(
            UpstreamError, self.manager.authorize_by_classification, IDENTITY, Action.FIND, CLASSIFICATIONS
        )

    def test_authorize_by_object_id(self):
        self.manager.authorize_by_object_id(IDENTITY, Action.DELETE, ["host"])

        _, action, resource = self.engine.check_access.call_args.args
        self.assertEqual(action, Action.DELETE)
        self.assertEqual(resource.resource_type, ResourceType.MODEL)
        self.assertEqual(resource.layers[0].name, "infra")

    def test_skip_read_authorization(self):
        manager = AuthManager(self.engine, _store(), AuthConfig(skip_read_authorization=True))

        manager.authorize_by_classification(IDENTITY, Action.FIND, CLASSIFICATIONS)
        manager.authorize_model_attribute(IDENTITY, Action.FIND_MANY, ATTRIBUTES)
        self.engine.check_access.assert_not_called()

        manager.authorize_by_classification(IDENTITY, Action.UPDATE, CLASSIFICATIONS[:1])
        self.engine.check_access.assert_called_once()


class TestAuthManagerRegistrationDisabled(unittest.TestCase):
    def setUp(self):
        self.engine = _engine()
        self.store = MagicMock(wraps=_store())
        self.manager = AuthManager(self.engine, self.store, AuthConfig(register_resources_enabled=False))

    def test_write_path_is_noop(self):
        """Test that no registration call reaches the engine or the store."""
        self.manager.register_model_attribute(IDENTITY, ATTRIBUTES)
        self.manager.deregister_model_attribute(IDENTITY, ATTRIBUTES)
        self.manager.deregister_model_attribute_by_id(IDENTITY, [1, 2])
        self.manager.update_registered_model_attribute(IDENTITY, ATTRIBUTES)
        self.manager.update_registered_model_attribute_by_id(IDENTITY, [1])
        self.manager.register_classification(IDENTITY, CLASSIFICATIONS)
        self.manager.deregister_classification(IDENTITY, CLASSIFICATIONS)
        self.manager.deregister_classification_by_raw_id(IDENTITY, [10])
        self.manager.update_registered_classification(IDENTITY, CLASSIFICATIONS)
        self.manager.update_registered_classification_by_id(IDENTITY, ["infra"])
        self.manager.update_registered_classification_by_raw_id(IDENTITY, [10])
        self.manager.register_audit_categories(IDENTITY, [AuditCategory("host", 0, 5)])

        self.assertEqual(self.engine.method_calls, [])
        self.store.fetch_by_filter.assert_not_called()

    def test_attribute_check_falls_back_to_model(self):
        """Test that attribute checks become an update check on the owning model."""
        self.manager.authorize_model_attribute(IDENTITY, Action.DELETE, ATTRIBUTES)

        self.engine.check_access.assert_called_once()
        _, action, resource = self.engine.check_access.call_args.args
        self.assertEqual(action, Action.UPDATE)
        self.assertEqual(resource.resource_type, ResourceType.MODEL)
        self.assertEqual(resource.name, "host")

    def test_attribute_id_check_falls_back_to_model(self):
        self.manager.authorize_by_attribute_id(IDENTITY, Action.UPDATE, [1, 2])

        _, _, resource = self.engine.check_access.call_args.args
        self.assertEqual(resource.resource_type, ResourceType.MODEL)


class TestAuthManagerRequestContext(unittest.TestCase):
    def setUp(self):
        self.engine = _engine()
        self.store = MagicMock(wraps=_store())
        self.manager = AuthManager(self.engine, self.store, AuthConfig())

    def test_expired_deadline(self):
        """Test that no collaborator is called once the deadline has passed."""
        identity = Identity(user="alice", supplier_account="0", request_id="req-2", deadline=time.monotonic() - 1)

        with self.assertRaises(RequestCancelled) as cm:
            self.manager.register_model_attribute(identity, ATTRIBUTES)

        self.assertIsInstance(cm.exception, UpstreamError)
        self.assertIn("req-2", str(cm.exception))
        self.store.fetch_by_filter.assert_not_called()
        self.assertEqual(self.engine.method_calls, [])

    def test_deadline_forwarded(self):
        identity = Identity(user="alice", supplier_account="0", deadline=time.monotonic() + 60)

        self.manager.authorize_by_classification(identity, Action.UPDATE, CLASSIFICATIONS[:1])

        forwarded, _, _ = self.engine.check_access.call_args.args
        self.assertEqual(forwarded.deadline, identity.deadline)
        self.assertIs(self.store.fetch_by_filter.call_args, None)

    def test_cancelled_mid_batch(self):
        """Test that cancelling stops the remaining updates and keeps the ones already sent."""
        cancel = threading.Event()
        identity = Identity(user="alice", supplier_account="0", cancel_event=cancel)
        self.engine.update_resource.side_effect = lambda identity, resource: cancel.set()

        self.assertRaises(RequestCancelled, self.manager.update_registered_classification, identity, CLASSIFICATIONS)
        self.assertEqual(self.engine.update_resource.call_count, 1)

    def test_cancelled_between_checks(self):
        cancel = threading.Event()
        identity = Identity(user="alice", supplier_account="0", cancel_event=cancel)

        def check(identity, action, resource):
            cancel.set()
            return AccessDecision(allowed=True, reason="granted")

        self.engine.check_access.side_effect = check

        self.assertRaises(RequestCancelled, self.manager.authorize_model_attribute, identity, Action.FIND, ATTRIBUTES)
        self.assertEqual(self.engine.check_access.call_count, 1)


if __name__ == "__main__":
    unittest.main()
