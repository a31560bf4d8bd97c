"""Tests for APK releases: version comparison, publishing and the public check."""

import pytest

from antimat.errors import ValidationError
from antimat.services.releases import DEFAULT_DESCRIPTION, DEFAULT_TITLE, compare_versions
from antimat.services.s3 import CURRENT_RELEASE_KEY


@pytest.mark.parametrize(
    ("a", "b", "expected"),
    [
        ("1.0.1", "1.0.0", 1),
        ("1.0.0", "1.0.1", -1),
        ("1.0", "1.0.0", 0),
        ("1.10.0", "1.9.9", 1),
        ("2", "1.99.99", 1),
    ],
)
def test_compare_versions(a, b, expected):
    assert compare_versions(a, b) == expected


def test_compare_rejects_non_numeric():
    with pytest.raises(ValidationError):
        compare_versions("1.0-beta", "1.0")


async def publish(client, storage, admin_headers, version, size=1024, **extra):
    issued = await client.post("/api/admin/updates/upload-url", headers=admin_headers)
    key = issued.json()["data"]["uploadKey"]
    storage.objects[key] = size
    response = await client.post(
        "/api/admin/updates",
        json={"version": version, "uploadKey": key, **extra},
        headers=admin_headers,
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]["update"]


class TestPublish:
    async def test_upload_url(self, client, storage, admin_headers):
        response = await client.post("/api/admin/updates/upload-url", headers=admin_headers)

        data = response.json()["data"]
        assert data["uploadKey"].startswith("apk/uploads/")
        assert data["fields"] == {"key": data["uploadKey"]}

    async def test_publish_promotes_upload(self, client, storage, admin_headers):
        update = await publish(client, storage, admin_headers, "1.2.0", size=4096, title="Faster")

        assert update["filePath"] == CURRENT_RELEASE_KEY
        assert update["fileSize"] == 4096
        assert update["title"] == "Faster"
        assert storage.objects == {CURRENT_RELEASE_KEY: 4096}

    async def test_duplicate_version(self, client, storage, admin_headers):
        await publish(client, storage, admin_headers, "1.0.0")
        storage.objects["apk/uploads/again.apk"] = 10

        response = await client.post(
            "/api/admin/updates",
            json={"version": "1.0.0", "uploadKey": "apk/uploads/again.apk"},
            headers=admin_headers,
        )

        assert response.status_code == 409

    async def test_missing_upload(self, client, storage, admin_headers):
        response = await client.post(
            "/api/admin/updates",
            json={"version": "1.0.0", "uploadKey": "apk/uploads/never-uploaded.apk"},
            headers=admin_headers,
        )

        assert response.status_code == 400

    async def test_key_outside_upload_area(self, client, storage, admin_headers):
        response = await client.post(
            "/api/admin/updates",
            json={"version": "1.0.0", "uploadKey": CURRENT_RELEASE_KEY},
            headers=admin_headers,
        )

        assert response.status_code == 400

    async def test_list_newest_first(self, client, storage, admin_headers):
        await publish(client, storage, admin_headers, "1.0.0")
        await publish(client, storage, admin_headers, "1.1.0")

        response = await client.get("/api/admin/updates", headers=admin_headers)

        assert [u["version"] for u in response.json()["data"]["updates"]] == ["1.1.0", "1.0.0"]

    async def test_delete_older_keeps_artifact(self, client, storage, admin_headers):
        old = await publish(client, storage, admin_headers, "1.0.0")
        await publish(client, storage, admin_headers, "1.1.0")

        response = await client.delete(f"/api/admin/updates/{old['id']}", headers=admin_headers)

        assert response.status_code == 200
        assert CURRENT_RELEASE_KEY in storage.objects

    async def test_delete_latest_keeps_download_for_older_release(self, client, storage, admin_headers):
        await publish(client, storage, admin_headers, "1.0.0")
        latest = await publish(client, storage, admin_headers, "1.1.0")

        response = await client.delete(f"/api/admin/updates/{latest['id']}", headers=admin_headers)

        assert response.status_code == 200
        assert storage.deleted == []
        check = await client.get("/api/updates/check?currentVersion=0.9.0")
        assert check.json()["data"]["latestVersion"] == "1.0.0"
        download = await client.get("/download/app-release.apk")
        assert download.status_code == 302

    async def test_delete_latest_removes_artifact(self, client, storage, admin_headers):
        latest = await publish(client, storage, admin_headers, "1.0.0")

        response = await client.delete(f"/api/admin/updates/{latest['id']}", headers=admin_headers)

        assert response.status_code == 200
        assert storage.deleted == [CURRENT_RELEASE_KEY]
        listed = await client.get("/api/admin/updates", headers=admin_headers)
        assert listed.json()["data"]["updates"] == []


class TestCheck:
    async def test_requires_version(self, client):
        response = await client.get("/api/updates/check")

        assert response.status_code == 400
        assert response.json()["message"] == "Current version is required"

    async def test_no_releases(self, client):
        response = await client.get("/api/updates/check?currentVersion=1.0.0")

        data = response.json()["data"]
        assert data["hasUpdate"] is False
        assert data["message"] == "No updates found"

    async def test_newer_release_available(self, client, storage, admin_headers):
        await publish(client, storage, admin_headers, "1.1.0", size=2048)

        response = await client.get("/api/updates/check?currentVersion=1.0.9")

        data = response.json()["data"]
        assert data["hasUpdate"] is True
        assert data["latestVersion"] == "1.1.0"
        assert data["title"] == DEFAULT_TITLE
        assert data["description"] == DEFAULT_DESCRIPTION
        assert data["downloadUrl"] == "https://antimat.test/download/app-release.apk"
        assert data["fileSize"] == 2048

    async def test_up_to_date(self, client, storage, admin_headers):
        await publish(client, storage, admin_headers, "1.1")

        response = await client.get("/api/updates/check?currentVersion=1.1.0")

        data = response.json()["data"]
        assert data["hasUpdate"] is False
        assert data["latestVersion"] == "1.1"


class TestDownload:
    async def test_missing_artifact(self, client, storage):
        response = await client.get("/download/app-release.apk")

        assert response.status_code == 404
        assert response.json()["message"] == "APK file not found"

    async def test_redirects_to_storage(self, client, storage, admin_headers):
        await publish(client, storage, admin_headers, "1.0.0")

        response = await client.get("/download/app-release.apk")

        assert response.status_code == 302
        assert response.headers["location"].startswith("https://storage.test/antimat-releases/apk/app-release.apk")
