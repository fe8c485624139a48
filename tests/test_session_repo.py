import warnings

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from tests.handle.base import *  # noqa: F401,F403


class SessionRepoTests(CruxTestBase):
    def test_unknown_options_are_rejected_for_every_call(self):
        stmt = select(Baguette)
        calls = (
            lambda: self.repo.execute(stmt, timeout=5),
            lambda: self.repo.count(stmt, timeout=5),
            lambda: self.repo.exists(stmt, timeout=5),
            lambda: self.repo.get_by_id(Baguette, 1, timeout=5),
            lambda: self.repo.stream(stmt, timeout=5),
            lambda: self.repo.insert(Baguette(name="a"), timeout=5),
        )
        for call in calls:
            with self.assertRaises(UnknownOptionError) as ctx:
                call()
            self.assertEqual(ctx.exception.keys, ["timeout"])

    def test_prefix_translates_schema(self):
        self._seed(2)

        self.assertEqual(self.repo.count(select(Baguette), prefix="main"), 2)
        self.assertEqual(len(self.repo.execute(select(Baguette), prefix="main")), 2)

    def test_count_and_exists(self):
        self._seed(3, kind="best")
        stmt = select(Baguette).where(Baguette.id > 1).order_by(Baguette.name)

        self.assertEqual(self.repo.count(stmt), 2)
        self.assertTrue(self.repo.exists(stmt))
        self.assertFalse(self.repo.exists(select(Baguette).where(Baguette.kind == "none")))

    def test_stream_is_lazy_iterator(self):
        self._seed(5)

        stream = self.repo.stream(select(Baguette).order_by(Baguette.id), yield_per=2)

        self.assertEqual(next(stream).id, 1)
        self.assertEqual([row.id for row in stream], [2, 3, 4, 5])

    def test_failed_write_rolls_back(self):
        with self.assertRaises(IntegrityError):
            self.repo.insert(Baguette(id=1, name=None))

        self.assertEqual(self.repo.count(select(Baguette)), 0)
        self.assertIsNotNone(self.repo.insert(Baguette(id=1, name="ok")).id)


TENANT = {None: "tenant"}


class SessionRepoPrefixWriteTests(CruxTestBase):
    """Writes routed to an attached SQLite schema named ``tenant``."""

    @classmethod
    def setUpClass(cls):
        super().setUpClass()
        with cls.engine.connect() as conn:
            conn.exec_driver_sql("ATTACH DATABASE ':memory:' AS tenant")
            conn.commit()
            conn.execution_options(schema_translate_map=TENANT)
            Bakery.__table__.create(bind=conn)
            Baguette.__table__.create(bind=conn)
            conn.commit()

    def setUp(self):
        super().setUp()
        with self.SessionLocal() as db:
            db.execute(delete(Baguette), execution_options={"schema_translate_map": TENANT})
            db.execute(delete(Bakery), execution_options={"schema_translate_map": TENANT})
            db.commit()

    def _tenant_count(self):
        return self.repo.count(select(Baguette), prefix="tenant")

    def _main_count(self):
        return self.repo.count(select(Baguette))

    def test_create_if_not_exist_writes_to_prefixed_schema(self):
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            result = self.baguettes.create_if_not_exist({"name": "y"}, prefix="tenant")

        self.assertTrue(result.ok)
        self.assertEqual(result.record.name, "y")
        self.assertEqual(self._tenant_count(), 1)
        self.assertEqual(self._main_count(), 0)
        self.assertEqual([str(w.message) for w in caught if "ignored" in str(w.message)], [])

    def test_create_if_not_exist_finds_existing_prefixed_row(self):
        first = self.baguettes.create_if_not_exist({"name": "y"}, prefix="tenant").record
        again = self.baguettes.create_if_not_exist({"name": "y"}, prefix="tenant").record

        self.assertEqual(again.id, first.id)
        self.assertEqual(self._tenant_count(), 1)

    def test_update_and_delete_after_read_stay_in_schema(self):
        row = self.baguettes.create({"name": "a"}, prefix="tenant").record
        self.assertEqual(len(self.baguettes.find_by({}, prefix="tenant")), 1)

        self.assertTrue(self.baguettes.update(row, {"kind": "best"}, prefix="tenant").ok)
        self.assertEqual(self.baguettes.count_by({"kind": "best"}, prefix="tenant"), 1)
        self.assertEqual(self._main_count(), 0)

        self.assertTrue(self.baguettes.exists({"name": "a"}, prefix="tenant"))
        self.assertTrue(self.baguettes.delete(row, prefix="tenant").ok)
        self.assertEqual(self._tenant_count(), 0)

    def test_routing_does_not_leak_into_later_calls(self):
        self.baguettes.create({"id": 1, "name": "t"}, prefix="tenant")
        self.baguettes.create({"id": 2, "name": "m"})

        self.assertEqual([row.name for row in self.baguettes.find_by({})], ["m"])
        self.assertEqual(self._tenant_count(), 1)
        self.assertEqual(self._main_count(), 1)

    def test_preload_reads_from_prefixed_schema(self):
        bakeries = Crux(Bakery, self.repo)
        bakery = bakeries.create({"id": 1, "name": "tenant bakery"}, prefix="tenant").record
        self.db.expunge(bakery)
        row = self.baguettes.create({"name": "x", "bakery_id": 1}, prefix="tenant").record
        self.baguettes.count(prefix="tenant")

        self.baguettes.preload(row, ["bakery"], prefix="tenant")

        self.assertEqual(row.bakery.name, "tenant bakery")

    def test_failed_prefixed_write_rolls_back(self):
        self.baguettes.find_by({}, prefix="tenant")

        with self.assertRaises(IntegrityError):
            self.repo.insert(Baguette(id=1, name=None), prefix="tenant")

        self.assertEqual(self._tenant_count(), 0)
        self.assertEqual(self.repo.insert(Baguette(id=1, name="ok"), prefix="tenant").name, "ok")
        self.assertEqual(self._main_count(), 0)
