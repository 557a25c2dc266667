import asyncio
import json
import unittest
from dataclasses import dataclass

from fastapi.testclient import TestClient
from starlette.requests import Request

from cms_storage import app as app_module
from cms_storage.app import create_app
from cms_storage.auth import StaticTokenVerifier
from cms_storage.config import Settings
from cms_storage.routes import VALID_OPERATIONS
from cms_storage.storage import InMemoryStorageClient

URL = "/api/admin-storage"
U1 = {"Authorization": "Bearer token-u1"}


def _settings(**overrides):
    values = {
        "use_in_memory_backends": True,
        "delete_batch_delay_seconds": 0,
        "move_batch_delay_seconds": 0,
    }
    values.update(overrides)
    return Settings(**values)


class StorageApiTests(unittest.TestCase):
    def setUp(self):
        self.storage = InMemoryStorageClient()
        self.app = create_app(
            _settings(),
            storage_client=self.storage,
            token_verifier=StaticTokenVerifier({"token-u1": "u1", "token-u2": "u2"}),
        )
        self.client = TestClient(self.app)

    def seed(self, *paths):
        for path in paths:
            self.storage.put_bytes(path, b"data")

    def post(self, payload, headers=U1):
        return self.client.post(URL, json=payload, headers=headers)

    def delete(self, payload, headers=U1):
        return self.client.request("DELETE", URL, json=payload, headers=headers)

    def assert_cors(self, response):
        self.assertEqual(response.headers["access-control-allow-origin"], "*")
        self.assertIn("application/json", response.headers["content-type"])

    # Transport

    def test_preflight_needs_no_auth(self):
        response = self.client.options(URL)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.content, b"")
        self.assert_cors(response)
        self.assertIn("DELETE", response.headers["access-control-allow-methods"])

    def test_missing_authorization_header(self):
        response = self.post({"operation": "createFolder", "destPath": "users/u1/x"}, headers={})
        self.assertEqual(response.status_code, 401)
        self.assertIn("Unauthorized", response.json()["error"])
        self.assert_cors(response)

    def test_empty_and_unknown_tokens(self):
        response = self.post({}, headers={"Authorization": "Bearer   "})
        self.assertEqual(response.status_code, 401)
        self.assertIn("Unauthorized", response.json()["error"])

        response = self.post({}, headers={"Authorization": "Bearer nope"})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["error"], "Invalid authentication token")

    def test_other_methods_are_not_allowed(self):
        for method in ("GET", "PUT", "PATCH", "TRACE", "CONNECT"):
            with self.subTest(method=method):
                response = self.client.request(method, URL, headers=U1)
                self.assertEqual(response.status_code, 405)
                self.assertEqual(
                    response.json()["allowedMethods"], ["POST", "DELETE", "OPTIONS"]
                )
                self.assert_cors(response)

        response = self.client.head(URL, headers=U1)
        self.assertEqual(response.status_code, 405)

    # POST validation

    def test_invalid_json_body(self):
        response = self.client.post(
            URL, content=b"{not json", headers={**U1, "Content-Type": "application/json"}
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "Invalid JSON in request body")

    def test_operation_is_required(self):
        response = self.post({"sourcePath": "users/u1/a.png"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(
            response.json()["error"], "Operation is required and must be a string"
        )

    def test_unknown_operation_lists_valid_operations(self):
        response = self.post({"operation": "explode"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["validOperations"], VALID_OPERATIONS)
        self.assertEqual(len(VALID_OPERATIONS), 6)

    def test_missing_fields_per_operation(self):
        cases = [
            {"operation": "copyFile", "sourcePath": "users/u1/a.png"},
            {"operation": "moveFile", "destPath": "users/u1/a.png"},
            {"operation": "renameFile", "sourcePath": "users/u1/a.png"},
            {"operation": "moveFolder", "sourcePath": "users/u1/a/"},
            {"operation": "renameFolder", "newName": "b"},
            {"operation": "createFolder"},
        ]
        for payload in cases:
            with self.subTest(operation=payload["operation"]):
                response = self.post(payload)
                self.assertEqual(response.status_code, 400)
                self.assertIn(payload["operation"], response.json()["error"])
        self.assertEqual(self.storage.calls, [])

    # POST operations

    def test_create_folder_twice(self):
        payload = {"operation": "createFolder", "destPath": "users/u1/photos"}

        first = self.post(payload)
        self.assertEqual(first.status_code, 200)
        self.assertEqual(
            first.json(),
            {"success": True, "message": "Folder created successfully", "path": "users/u1/photos/"},
        )

        second = self.post(payload)
        self.assertEqual(second.status_code, 500)
        body = second.json()
        self.assertIn("already exists", body["error"])
        self.assertEqual(body["operation"], "createFolder")
        self.assertEqual(body["destPath"], "users/u1/photos")
        self.assertIn("AlreadyExists", body["details"])
        self.assert_cors(second)

    def test_copy_file(self):
        self.seed("users/u1/a.png")
        response = self.post(
            {"operation": "copyFile", "sourcePath": "users/u1/a.png", "destPath": "users/u1/b.png"}
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["destPath"], "users/u1/b.png")
        self.assertIn("users/u1/a.png", self.storage.stored_objects)
        self.assertIn("users/u1/b.png", self.storage.stored_objects)

    def test_copy_missing_source_is_server_error(self):
        response = self.post(
            {"operation": "copyFile", "sourcePath": "users/u1/a.png", "destPath": "users/u1/b.png"}
        )
        self.assertEqual(response.status_code, 500)
        self.assertEqual(
            response.json()["error"], "Failed to copy file: Source file does not exist"
        )

    def test_move_file_into_other_namespace_is_rejected(self):
        self.seed("users/u1/a.png")
        response = self.post(
            {"operation": "moveFile", "sourcePath": "users/u1/a.png", "destPath": "users/u2/a.png"}
        )
        self.assertEqual(response.status_code, 500)
        body = response.json()
        self.assertIn("Access denied", body["error"])
        self.assertEqual(body["sourcePath"], "users/u1/a.png")
        self.assertEqual(body["destPath"], "users/u2/a.png")
        self.assertNotIn("users/u2/a.png", self.storage.stored_objects)
        self.assertEqual(
            [call for call in self.storage.calls if call[0] != "put"], []
        )

    def test_access_denied_status_is_configurable(self):
        app = create_app(
            _settings(access_denied_status_code=403),
            storage_client=self.storage,
            token_verifier=StaticTokenVerifier({"token-u1": "u1"}),
        )
        response = TestClient(app).post(
            URL,
            json={"operation": "createFolder", "destPath": "users/u2/photos"},
            headers=U1,
        )
        self.assertEqual(response.status_code, 403)

    def test_rename_file(self):
        self.seed("users/u1/photos/a.png")
        response = self.post(
            {"operation": "renameFile", "sourcePath": "users/u1/photos/a.png", "newName": "b.png"}
        )
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["newPath"], "users/u1/photos/b.png")
        self.assertEqual(body["newName"], "b.png")

    def test_rename_file_rejects_separator(self):
        self.seed("users/u1/photos/a.png")
        response = self.post(
            {"operation": "renameFile", "sourcePath": "users/u1/photos/a.png", "newName": "x/b.png"}
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["operation"], "renameFile")
        self.assertIn("users/u1/photos/a.png", self.storage.stored_objects)

    def test_move_folder_reports_counts(self):
        self.seed("users/u1/photos/a.png", "users/u1/photos/sub/b.png")
        response = self.post(
            {"operation": "moveFolder", "sourcePath": "users/u1/photos", "destPath": "users/u1/archive"}
        )
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["sourcePath"], "users/u1/photos/")
        self.assertEqual(body["destPath"], "users/u1/archive/photos/")
        self.assertEqual(body["movedCount"], 2)
        self.assertEqual(body["errors"], [])

    def test_move_folder_into_itself_is_client_error(self):
        self.seed("users/u1/photos/a.png")
        self.storage.calls.clear()
        response = self.post(
            {"operation": "moveFolder", "sourcePath": "users/u1/photos", "destPath": "users/u1/photos/deep"}
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("own subdirectory", response.json()["error"])
        self.assertEqual(self.storage.calls, [])

    def test_rename_folder_to_existing_name_is_client_error(self):
        self.seed("users/u1/photos/a.png", "users/u1/pictures/b.png")
        response = self.post(
            {"operation": "renameFolder", "sourcePath": "users/u1/photos", "newName": "pictures"}
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("already exists", response.json()["error"])

    def test_rename_folder(self):
        self.seed("users/u1/photos/a.png")
        response = self.post(
            {"operation": "renameFolder", "sourcePath": "users/u1/photos/", "newName": "pictures"}
        )
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["newPath"], "users/u1/pictures/")
        self.assertEqual(body["movedCount"], 1)

    # DELETE

    def test_delete_requires_file_path(self):
        response = self.delete({"isFolder": False})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(
            response.json()["error"], "File path is required for delete operation"
        )

    def test_delete_file(self):
        self.seed("users/u1/a.png")
        response = self.delete({"filePath": "users/u1/a.png", "isFolder": False})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json(),
            {"success": True, "message": "File deleted successfully", "path": "users/u1/a.png"},
        )

    def test_delete_missing_file_is_not_found(self):
        response = self.delete({"filePath": "users/u1/a.png"})
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"error": "File does not exist"})
        self.assert_cors(response)

    def test_delete_folder(self):
        self.seed(*[f"users/u1/photos/{i}.png" for i in range(7)])
        response = self.delete({"filePath": "users/u1/photos", "isFolder": True})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["path"], "users/u1/photos/")
        self.assertEqual(body["deletedCount"], 7)
        self.assertEqual(body["errors"], [])

    def test_delete_empty_folder_succeeds(self):
        response = self.delete({"filePath": "users/u1/empty/", "isFolder": True})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["deletedCount"], 0)

    def test_delete_other_namespace(self):
        self.seed("users/u2/a.png")
        response = self.delete({"filePath": "users/u2/a.png"})
        self.assertEqual(response.status_code, 500)
        self.assertIn("users/u2/a.png", self.storage.stored_objects)


@dataclass
class RejectingStorageClient(InMemoryStorageClient):
    """In-memory store that rejects copies and deletes of chosen paths."""

    fail_copy: set = None
    fail_delete: set = None

    def __post_init__(self):
        super().__post_init__()
        self.fail_copy = self.fail_copy or set()
        self.fail_delete = self.fail_delete or set()

    def copy(self, src_path, dest_path):
        if src_path in self.fail_copy:
            raise RuntimeError(f"copy rejected for {src_path}")
        super().copy(src_path, dest_path)

    def delete(self, path):
        if path in self.fail_delete:
            raise RuntimeError(f"delete rejected for {path}")
        super().delete(path)


class PartialFailureTests(unittest.TestCase):
    def setUp(self):
        self.storage = RejectingStorageClient()
        app = create_app(
            _settings(),
            storage_client=self.storage,
            token_verifier=StaticTokenVerifier({"token-u1": "u1"}),
        )
        self.client = TestClient(app)
        self.paths = [f"users/u1/photos/{i}.png" for i in range(4)]
        for path in self.paths:
            self.storage.put_bytes(path, b"data")

    def assert_item_errors(self, errors, items):
        self.assertEqual([error["item"] for error in errors], items)
        for error in errors:
            self.assertEqual(set(error), {"item", "error"})
            self.assertIn("rejected", error["error"])

    def test_move_folder_reports_per_object_failures(self):
        self.storage.fail_copy = {self.paths[1]}
        self.storage.fail_delete = {self.paths[3]}

        response = self.client.post(
            URL,
            json={"operation": "moveFolder", "sourcePath": "users/u1/photos", "destPath": "users/u1/archive"},
            headers=U1,
        )

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["movedCount"], 2)
        self.assertEqual(body["movedCount"] + len(body["errors"]), len(self.paths))
        self.assert_item_errors(body["errors"], [self.paths[1], self.paths[3]])
        self.assertIn(self.paths[1], self.storage.stored_objects)
        self.assertNotIn("users/u1/archive/photos/1.png", self.storage.stored_objects)

    def test_rename_folder_reports_per_object_failures(self):
        self.storage.fail_copy = {self.paths[0]}

        response = self.client.post(
            URL,
            json={"operation": "renameFolder", "sourcePath": "users/u1/photos", "newName": "pictures"},
            headers=U1,
        )

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["newPath"], "users/u1/pictures/")
        self.assertEqual(body["movedCount"], 3)
        self.assertEqual(body["movedCount"] + len(body["errors"]), len(self.paths))
        self.assert_item_errors(body["errors"], [self.paths[0]])

    def test_delete_folder_reports_per_object_failures(self):
        self.storage.fail_delete = {self.paths[0], self.paths[2]}

        response = self.client.request(
            "DELETE", URL, json={"filePath": "users/u1/photos", "isFolder": True}, headers=U1
        )

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["deletedCount"], 2)
        self.assertEqual(body["deletedCount"] + len(body["errors"]), len(self.paths))
        self.assert_item_errors(body["errors"], [self.paths[0], self.paths[2]])
        self.assertEqual(
            sorted(self.storage.stored_objects), [self.paths[0], self.paths[2]]
        )


class ProductionErrorTests(unittest.TestCase):
    def test_details_are_hidden_in_production(self):
        app = create_app(
            _settings(environment="production"),
            storage_client=InMemoryStorageClient(),
            token_verifier=StaticTokenVerifier({"token-u1": "u1"}),
        )
        response = TestClient(app).post(
            URL,
            json={"operation": "copyFile", "sourcePath": "users/u1/a", "destPath": "users/u1/b"},
            headers=U1,
        )
        self.assertEqual(response.status_code, 500)
        self.assertNotIn("details", response.json())


class UnhandledErrorTests(unittest.TestCase):
    def test_unhandled_exception_handler(self):
        app = create_app(
            _settings(environment="production"),
            storage_client=InMemoryStorageClient(),
            token_verifier=StaticTokenVerifier(),
        )
        scope = {
            "type": "http",
            "http_version": "1.1",
            "method": "POST",
            "scheme": "http",
            "path": URL,
            "raw_path": URL.encode(),
            "query_string": b"",
            "headers": [],
            "client": ("127.0.0.1", 12345),
            "server": ("testserver", 80),
            "app": app,
        }
        response = asyncio.run(
            app_module.unhandled_exception_handler(Request(scope), RuntimeError("boom"))
        )

        self.assertEqual(response.status_code, 500)
        body = json.loads(response.body)
        self.assertEqual(body["error"], "Internal server error")
        self.assertEqual(body["message"], "boom")
        self.assertNotIn("details", body)
        self.assertIn("timestamp", body)
        self.assertEqual(response.headers["access-control-allow-origin"], "*")


if __name__ == "__main__":
    unittest.main()
