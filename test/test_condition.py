import unittest

from cmdbauth.models.condition import QueryPredicate, render_all


class TestQueryPredicate(unittest.TestCase):
    def test_render(self):
        predicate = QueryPredicate.create().where_in("op_target", ["host", "switch"]).where_eq("bk_biz_id", 7)
        self.assertEqual(predicate.to_dict(), {"op_target": {"$in": ["host", "switch"]}, "bk_biz_id": 7})

    def test_builder_does_not_mutate(self):
        base = QueryPredicate.create().where_in("op_target", ["host"])
        base.where_eq("bk_biz_id", 7)
        self.assertEqual(base.to_dict(), {"op_target": {"$in": ["host"]}})

    def test_matches(self):
        predicate = QueryPredicate.create().where_in("op_target", ["host"]).where_eq("bk_biz_id", 7)
        self.assertTrue(predicate.matches({"op_target": "host", "bk_biz_id": 7, "extra": 1}))
        self.assertFalse(predicate.matches({"op_target": "host", "bk_biz_id": 3}))
        self.assertFalse(predicate.matches({"op_target": "host"}))
        self.assertTrue(QueryPredicate.create().matches({}))

    def test_render_all(self):
        predicates = [QueryPredicate.create().where_eq("id", 1), QueryPredicate.create()]
        self.assertEqual(render_all(predicates), [{"id": 1}, {}])


if __name__ == "__main__":
    unittest.main()
