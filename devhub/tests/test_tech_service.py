import unittest
from unittest import mock

from redis.exceptions import TimeoutError as RedisTimeoutError
from sqlalchemy import event

from devhub.cache import InMemoryCacheStore, ProjectCache, TechCache
from devhub.db import Database, TechRow, UserRow
from devhub.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from devhub.services import ProjectService, TechService
from devhub.storage import ImageUpload, ImageUploader, InMemoryStorageClient


class TechServiceTests(unittest.TestCase):
    def setUp(self):
        self.db = Database("sqlite+pysqlite:///:memory:")
        self.addCleanup(self.db.dispose)
        self.store = InMemoryCacheStore()
        self.cache = TechCache(self.store)
        self.project_cache = ProjectCache(self.store)
        self.storage = InMemoryStorageClient()
        uploader = ImageUploader(self.storage)
        self.service = TechService(self.db, self.cache, self.project_cache, uploader)
        self.projects = ProjectService(self.db, self.project_cache, uploader)
        with self.db.Session() as session, session.begin():
            admin = UserRow(fullname="Admin", email="admin@example.com", password="x")
            member = UserRow(fullname="Member", email="member@example.com", password="x")
            session.add_all([admin, member])
            session.flush()
            self.admin, self.member = admin.id, member.id

    def test_duplicate_name_conflicts_and_leaves_name_lookup(self):
        first = self.service.create_tech({"name": "Go"}, self.admin)
        with self.assertRaises(ConflictError):
            self.service.create_tech({"name": "Go"}, self.admin)
        self.assertEqual(self.store.get("tech:name:go"), first["id"])

    def test_cached_name_short_circuits_without_database(self):
        self.service.create_tech({"name": "Go"}, self.admin)
        statements = []

        def record(conn, cursor, statement, parameters, context, executemany):
            statements.append(statement)

        event.listen(self.db.engine, "before_cursor_execute", record)
        self.addCleanup(event.remove, self.db.engine, "before_cursor_execute", record)
        with self.assertRaises(ConflictError):
            self.service.create_tech({"name": " Go "}, self.admin)
        self.assertEqual(statements, [])

    def test_database_hit_is_backfilled_into_name_lookup(self):
        first = self.service.create_tech({"name": "Rust"}, self.admin)
        self.store.reset()
        with self.assertRaises(ConflictError):
            self.service.create_tech({"name": "Rust"}, self.admin)
        self.assertEqual(self.cache.get_name_lookup("rust"), first["id"])

    def test_losing_a_create_race_is_a_conflict(self):
        self.service.create_tech({"name": "Zig"}, self.admin)
        # Both requests passed the pre-check; the unique column decides.
        with mock.patch.object(self.service, "ensure_name_available"):
            with self.assertRaises(ConflictError):
                self.service.create_tech({"name": "Zig"}, self.admin)

    def test_blank_name_is_rejected(self):
        with self.assertRaises(ValidationError):
            self.service.create_tech({"name": "   "}, self.admin)

    def test_rename_checks_other_names_only(self):
        go = self.service.create_tech({"name": "Go"}, self.admin)
        self.service.create_tech({"name": "Rust"}, self.admin)
        with self.assertRaises(ConflictError):
            self.service.update_tech(go["id"], {"name": "Rust"})

        renamed = self.service.update_tech(go["id"], {"name": "Golang", "description": "gophers"})
        self.assertEqual(renamed["name"], "Golang")
        self.assertEqual(renamed["description"], "gophers")
        self.assertIsNone(self.store.get("tech:name:go"))
        self.assertEqual(self.store.get("tech:name:golang"), go["id"])

        same = self.service.update_tech(go["id"], {"name": "Golang", "icon": "go.svg"})
        self.assertEqual(same["icon"], "go.svg")

    def test_list_search_and_cache(self):
        for name in ("Go", "Rust", "TypeScript", "JavaScript"):
            self.service.create_tech({"name": name}, self.admin)
        result = self.service.list_techs(search="script")
        self.assertEqual([t["name"] for t in result["techs"]], ["JavaScript", "TypeScript"])
        self.assertEqual(result["pagination"]["totalItems"], 2)
        self.assertEqual(result["pagination"]["search"], "script")
        self.assertIsNotNone(self.cache.get_list(1, 10, {"search": "script"}))
        self.assertEqual(self.service.list_techs(search=" SCRIPT ")["techs"], result["techs"])

        self.assertEqual([t["name"] for t in self.service.search_techs("ru")], ["Rust"])
        self.assertEqual(self.service.search_techs("  "), [])

    def test_get_tech_includes_creator(self):
        tech = self.service.create_tech({"name": "Go"}, self.admin)
        fetched = self.service.get_tech(tech["id"])
        self.assertEqual(fetched["creator"]["id"], self.admin)
        self.assertEqual(self.cache.get_item(tech["id"]), fetched)
        with self.assertRaises(NotFoundError):
            self.service.get_tech("missing")

    def test_soft_delete_hides_tech_and_invalidates_project_caches(self):
        tech = self.service.create_tech({"name": "Go"}, self.admin)
        project = self.projects.create_project(
            {"title": "Gopher", "techs": [tech["id"]]}, self.member
        )
        self.projects.get_project(project["id"])
        self.projects.list_tech_projects(tech["id"])

        self.service.delete_tech(tech["id"])

        self.assertEqual(self.store.keys("project:*"), [])
        with self.assertRaises(NotFoundError):
            self.service.get_tech(tech["id"])
        self.assertEqual(self.service.list_techs()["techs"], [])
        self.assertEqual(self.projects.get_project(project["id"])["techs"], [])
        with self.db.Session() as session:
            self.assertIsNotNone(session.get(TechRow, tech["id"]).deleted_at)

    def test_batch_create_reports_per_item(self):
        self.service.create_tech({"name": "Go"}, self.admin)
        result = self.service.batch_create_techs(
            [{"name": "Rust"}, {"name": "Go"}, {"name": ""}, {"name": "Rust"}, {"name": "Elixir"}],
            self.admin,
        )
        self.assertEqual([t["name"] for t in result["created"]], ["Rust", "Elixir"])
        self.assertEqual([s["index"] for s in result["skipped"]], [1, 3])
        self.assertEqual([e["index"] for e in result["errors"]], [2])
        self.assertEqual(
            result["summary"], {"total": 5, "created": 2, "skipped": 2, "errors": 1}
        )
        self.assertEqual(self.store.get("tech:name:elixir"), result["created"][1]["id"])

    def test_batch_create_reports_malformed_entries(self):
        result = self.service.batch_create_techs(
            [{"name": 123}, {"name": "Go", "description": ["x"]}, {"name": "Rust"}, "Zig"],
            self.admin,
        )
        self.assertEqual([t["name"] for t in result["created"]], ["Rust"])
        self.assertEqual(
            result["errors"],
            [
                {"index": 0, "name": "Item 0", "error": "Tech name must be a string"},
                {"index": 1, "name": "Go", "error": "description must be a string"},
                {"index": 3, "name": "Item 3", "error": "Tech entry must be an object"},
            ],
        )
        self.assertEqual(result["summary"]["created"], 1)

    def test_search_treats_wildcards_literally(self):
        self.service.create_tech({"name": "Go"}, self.admin)
        self.service.create_tech({"name": "C_lang"}, self.admin)
        self.assertEqual(self.service.search_techs("%"), [])
        self.assertEqual([t["name"] for t in self.service.search_techs("_")], ["C_lang"])
        self.assertEqual(self.service.list_techs(search="%")["techs"], [])

    def test_writes_survive_a_failing_cache(self):
        store = mock.Mock()
        for method in ("get", "set", "delete", "keys"):
            getattr(store, method).side_effect = RedisTimeoutError("read timed out")
        uploader = ImageUploader(self.storage)
        service = TechService(self.db, TechCache(store), ProjectCache(store), uploader)

        tech = service.create_tech({"name": "Go"}, self.admin)
        with self.assertRaises(ConflictError):
            service.create_tech({"name": "Go"}, self.admin)
        self.assertEqual(service.update_tech(tech["id"], {"icon": "go.svg"})["icon"], "go.svg")
        service.delete_tech(tech["id"])
        self.assertEqual(service.list_techs()["techs"], [])

    def test_icon_update_permissions(self):
        tech = self.service.create_tech({"name": "Go", "icon": "old.png"}, self.admin)
        icon = ImageUpload(data=b"RIFFxxxxWEBP", filename="go.webp", mime_type="image/webp")

        with self.assertRaises(ForbiddenError):
            self.service.update_tech_icon(tech["id"], icon, self.member, is_admin=False)

        by_creator = self.service.update_tech_icon(tech["id"], icon, self.admin)
        self.assertIn(f"tech_icon_{tech['id']}_", by_creator["icon"])
        self.assertEqual(self.storage.deleted_keys, ["old.png"])

        by_admin = self.service.update_tech_icon(tech["id"], icon, self.member, is_admin=True)
        self.assertNotEqual(by_admin["icon"], None)


if __name__ == "__main__":
    unittest.main()
