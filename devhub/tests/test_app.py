import json
import unittest

from fastapi.testclient import TestClient

from devhub.app import create_app
from devhub.cache import InMemoryCacheStore
from devhub.db import Database, UserRow
from devhub.dependencies import (
    get_cache_store,
    get_database,
    get_storage_client,
    reset_singletons,
)
from devhub.storage import InMemoryStorageClient

API = "/api/v1"


class DevhubApiTests(unittest.TestCase):
    def setUp(self):
        self.db = Database("sqlite+pysqlite:///:memory:")
        self.addCleanup(self.db.dispose)
        self.store = InMemoryCacheStore()
        self.storage = InMemoryStorageClient()
        reset_singletons()
        self.addCleanup(reset_singletons)

        app = create_app()
        app.dependency_overrides[get_database] = lambda: self.db
        app.dependency_overrides[get_cache_store] = lambda: self.store
        app.dependency_overrides[get_storage_client] = lambda: self.storage
        self.client = TestClient(app)

    def _signup(self, fullname="Ada Lovelace", email="ada@example.com"):
        response = self.client.post(
            f"{API}/auth/signup",
            json={"fullname": fullname, "email": email, "password": "password123"},
        )
        self.assertEqual(response.status_code, 201)
        body = response.json()
        return body["user"], {"Authorization": f"Bearer {body['accessToken']}"}

    def _set_role(self, user_id, role):
        with self.db.Session() as session, session.begin():
            session.get(UserRow, user_id).role = role

    def test_health(self):
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")

    def test_health_reports_cache_stats_across_requests(self):
        _, headers = self._signup()
        project = self.client.post(
            f"{API}/projects", json={"title": "Engine"}, headers=headers
        ).json()["project"]
        self.client.get(f"{API}/projects/{project['id']}")
        self.client.get(f"{API}/projects/{project['id']}")

        stats = self.client.get("/health").json()["cache"]["project"]
        self.assertEqual(stats, {"hits": 1, "misses": 1, "errors": 0})

    def test_out_of_range_paging_is_clamped(self):
        response = self.client.get(f"{API}/projects", params={"page": 0, "pageSize": 500})
        self.assertEqual(response.status_code, 200)
        pagination = response.json()["pagination"]
        self.assertEqual((pagination["page"], pagination["pageSize"]), (1, 100))

        negative = self.client.get(f"{API}/techs", params={"page": -3, "pageSize": 0})
        self.assertEqual(negative.status_code, 200)
        self.assertEqual(negative.json()["pagination"]["page"], 1)

    def test_missing_token_is_unauthorized(self):
        response = self.client.post(f"{API}/projects", json={"title": "Nope"})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(
            response.json(),
            {"success": False, "message": ["Access denied. No token provided."]},
        )

        bad = self.client.get(
            f"{API}/users/profile", headers={"Authorization": "Bearer not-a-jwt"}
        )
        self.assertEqual(bad.status_code, 401)

    def test_validation_errors_render_as_400(self):
        response = self.client.post(
            f"{API}/auth/signup",
            json={"fullname": "Ada", "email": "ada@example.com", "password": "short"},
        )
        self.assertEqual(response.status_code, 400)
        body = response.json()
        self.assertFalse(body["success"])
        self.assertTrue(any("password" in message for message in body["message"]))

    def test_signin_and_profile(self):
        user, _ = self._signup()
        response = self.client.post(
            f"{API}/auth/signin",
            json={"email": "ada@example.com", "password": "password123"},
        )
        self.assertEqual(response.status_code, 200)
        headers = {"Authorization": f"Bearer {response.json()['accessToken']}"}

        profile = self.client.get(f"{API}/users/profile", headers=headers)
        self.assertEqual(profile.json()["user"]["id"], user["id"])

        wrong = self.client.post(
            f"{API}/auth/signin",
            json={"email": "ada@example.com", "password": "wrong-password"},
        )
        self.assertEqual(wrong.status_code, 401)

    def test_tech_creation_requires_admin(self):
        user, headers = self._signup()
        forbidden = self.client.post(f"{API}/techs", json={"name": "Go"}, headers=headers)
        self.assertEqual(forbidden.status_code, 403)

        self._set_role(user["id"], "ADMIN")
        created = self.client.post(f"{API}/techs", json={"name": "Go"}, headers=headers)
        self.assertEqual(created.status_code, 201)
        self.assertEqual(created.json()["tech"]["name"], "Go")

        duplicate = self.client.post(f"{API}/techs", json={"name": "go"}, headers=headers)
        self.assertEqual(duplicate.status_code, 409)
        self.assertEqual(
            duplicate.json()["message"], ['Tech with name "go" already exists']
        )

    def test_batch_with_malformed_entry_still_creates_the_rest(self):
        user, headers = self._signup()
        self._set_role(user["id"], "ADMIN")
        response = self.client.post(
            f"{API}/techs/batch",
            json={"techs": [{"name": 123}, {"name": "Go"}]},
            headers=headers,
        )
        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual([t["name"] for t in body["created"]], ["Go"])
        self.assertEqual(body["errors"][0]["index"], 0)

    def test_project_lifecycle_over_json_and_multipart(self):
        user, headers = self._signup()
        self._set_role(user["id"], "ADMIN")
        tech = self.client.post(f"{API}/techs", json={"name": "Go"}, headers=headers)
        tech_id = tech.json()["tech"]["id"]

        created = self.client.post(
            f"{API}/projects",
            json={"title": "Engine", "techs": [tech_id]},
            headers=headers,
        )
        self.assertEqual(created.status_code, 201)
        project = created.json()["project"]
        self.assertEqual([t["id"] for t in project["techs"]], [tech_id])

        uploaded = self.client.post(
            f"{API}/projects",
            data={"title": "Mill", "techs": json.dumps([tech_id])},
            files={"coverImage": ("cover.png", b"\x89PNG", "image/png")},
            headers=headers,
        )
        self.assertEqual(uploaded.status_code, 201)
        cover = uploaded.json()["project"]["coverImage"]
        self.assertTrue(cover.startswith(self.storage.base_url))
        self.assertEqual(len(self.storage.stored_objects), 1)

        listing = self.client.get(f"{API}/projects", params={"tech": tech_id})
        self.assertEqual(listing.json()["pagination"]["totalItems"], 2)

        deleted = self.client.delete(f"{API}/projects/{project['id']}", headers=headers)
        self.assertEqual(deleted.status_code, 200)
        missing = self.client.get(f"{API}/projects/{project['id']}")
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.json(), {"success": False, "message": ["Project not found"]})

    def test_unknown_tech_rejects_project(self):
        _, headers = self._signup()
        response = self.client.post(
            f"{API}/projects",
            json={"title": "Engine", "techs": ["missing"]},
            headers=headers,
        )
        self.assertEqual(response.status_code, 404)
        listing = self.client.get(f"{API}/projects")
        self.assertEqual(listing.json()["projects"], [])

    def test_project_contributor_routes(self):
        _, headers = self._signup()
        grace, _ = self._signup("Grace Hopper", "grace@example.com")
        project = self.client.post(
            f"{API}/projects", json={"title": "Engine"}, headers=headers
        ).json()["project"]
        url = f"{API}/projects/{project['id']}/contributors"

        added = self.client.post(url, json={"contributorIds": [grace["id"]]}, headers=headers)
        self.assertEqual(
            [c["id"] for c in added.json()["project"]["contributors"]], [grace["id"]]
        )
        mine = self.client.get(f"{API}/users/{grace['id']}/projects")
        self.assertEqual(mine.json()["pagination"]["totalItems"], 1)

        removed = self.client.request(
            "DELETE", url, json={"contributorIds": [grace["id"]]}, headers=headers
        )
        self.assertEqual(removed.json()["project"]["contributors"], [])

    def test_user_skill_routes(self):
        user, headers = self._signup()
        self._set_role(user["id"], "ADMIN")
        skill = self.client.post(f"{API}/skills", json={"name": "SQL"}, headers=headers)
        skill_id = skill.json()["skill"]["id"]

        added = self.client.post(
            f"{API}/users/me/skills", json={"skillId": skill_id}, headers=headers
        )
        self.assertEqual(added.status_code, 201)
        self.assertEqual([s["id"] for s in added.json()["skills"]], [skill_id])

        again = self.client.post(
            f"{API}/users/me/skills", json={"skillId": skill_id}, headers=headers
        )
        self.assertEqual(again.status_code, 409)

        removed = self.client.delete(f"{API}/users/me/skills/{skill_id}", headers=headers)
        self.assertEqual(removed.json()["skills"], [])
        listed = self.client.get(f"{API}/users/me/skills", headers=headers)
        self.assertEqual(listed.json()["skills"], [])

    def test_role_assignment(self):
        admin, admin_headers = self._signup()
        user, user_headers = self._signup("Grace Hopper", "grace@example.com")
        self._set_role(admin["id"], "ADMIN")

        denied = self.client.post(
            f"{API}/roles/assign",
            json={"userId": admin["id"], "role": "USER"},
            headers=user_headers,
        )
        self.assertEqual(denied.status_code, 403)

        promoted = self.client.post(
            f"{API}/roles/assign",
            json={"userId": user["id"], "role": "ADMIN"},
            headers=admin_headers,
        )
        self.assertEqual(promoted.status_code, 200)
        self.assertEqual(promoted.json()["user"]["role"], "ADMIN")

        root = self.client.post(
            f"{API}/roles/assign",
            json={"userId": user["id"], "role": "ROOT"},
            headers=admin_headers,
        )
        self.assertEqual(root.status_code, 400)


if __name__ == "__main__":
    unittest.main()
