"""
API 端到端测试

通过 httpx.AsyncClient + ASGITransport 调用 FastAPI 应用，
数据库依赖替换为测试库：
1. 认证与租户边界（401 / 403）
2. 提交 → 审批 → 知识库浏览 → 检索
3. 摄取失败返回 {error, details}，版本保持 PENDING
4. 驳回原因校验、后台审批、标签管理
"""

import pytest
from httpx import ASGITransport, AsyncClient

from app.api.deps import get_session_factory
from app.db.session import get_db
from app.main import app
from tests.factories import HANDBOOK_TEXT, create_tenant, issue_api_key


@pytest.fixture
async def client(session_factory):
    async def _get_db():
        async with session_factory() as db_session:
            yield db_session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http_client:
        yield http_client

    app.dependency_overrides.clear()


@pytest.fixture
async def auth(session, seeded):
    """管理员与普通成员的认证头"""
    admin_key = await issue_api_key(session, seeded.admin)
    member_key = await issue_api_key(session, seeded.member)
    await session.commit()
    return {
        "admin": {"Authorization": f"Bearer {admin_key}"},
        "member": {"Authorization": f"Bearer {member_key}"},
    }


def _file_payload(file_ref) -> dict:
    return {
        "url": file_ref.url,
        "original_name": file_ref.original_name,
        "mime_type": file_ref.mime_type,
        "size": file_ref.size,
    }


async def _submit(client, headers, make_file, text=HANDBOOK_TEXT, name="Employee Handbook", tags=None):
    resp = await client.post(
        "/v1/tenants/acme/documents",
        json={
            "name": name,
            "description": "HR policies",
            "file": _file_payload(make_file(text)),
            "access_tag_ids": tags or [],
        },
        headers=headers,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestHealth:
    """测试健康检查"""

    @pytest.mark.asyncio
    async def test_healthz(self, client):
        resp = await client.get("/healthz")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}
        assert "X-Request-ID" in resp.headers

    @pytest.mark.asyncio
    async def test_readyz(self, client):
        resp = await client.get("/readyz")
        assert resp.status_code == 200
        assert resp.json()["database"] == "ok"


class TestAuthAndTenantBoundary:
    """测试认证与租户边界"""

    @pytest.mark.asyncio
    async def test_missing_api_key(self, client, seeded):
        resp = await client.get("/v1/tenants/acme/documents")
        assert resp.status_code == 401
        assert resp.json() == {"detail": "Missing or invalid Authorization header", "code": "UNAUTHORIZED"}

    @pytest.mark.asyncio
    async def test_invalid_api_key(self, client, seeded):
        resp = await client.get("/v1/tenants/acme/documents", headers={"Authorization": "Bearer kh_sk_wrong"})
        assert resp.status_code == 401
        assert resp.json()["code"] == "INVALID_API_KEY"

    @pytest.mark.asyncio
    async def test_unknown_tenant_forbidden(self, client, auth):
        resp = await client.get("/v1/tenants/nowhere/documents", headers=auth["admin"])
        assert resp.status_code == 403
        assert resp.json()["code"] == "FORBIDDEN"

    @pytest.mark.asyncio
    async def test_other_tenant_forbidden(self, client, auth, session):
        await create_tenant(session, "globex")
        await session.commit()

        resp = await client.get("/v1/tenants/globex/knowledge-base", headers=auth["admin"])
        assert resp.status_code == 403


class TestDocumentWorkflow:
    """测试文档审批流程"""

    @pytest.mark.asyncio
    async def test_submit_approve_browse_retrieve(self, client, auth, make_file):
        submitted = await _submit(client, auth["member"], make_file)
        document_id = submitted["document_id"]
        version = submitted["version"]
        assert version["status"] == "PENDING"
        assert version["version_number"] == 1
        assert submitted["auto_approved"] is False

        resp = await client.get("/v1/tenants/acme/knowledge-base", headers=auth["member"])
        assert resp.json()["articles"] == []

        resp = await client.post(
            f"/v1/tenants/acme/documents/{document_id}/versions/{version['id']}/approve",
            headers=auth["admin"],
        )
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["version"]["status"] == "APPROVED"
        assert body["version"]["is_active"] is True
        assert body["chunk_count"] >= 1

        resp = await client.get("/v1/tenants/acme/knowledge-base", headers=auth["member"])
        listing = resp.json()
        assert [a["title"] for a in listing["articles"]] == ["Employee Handbook"]
        assert listing["pagination"]["total"] == 1

        resp = await client.get(f"/v1/tenants/acme/knowledge-base/{document_id}", headers=auth["member"])
        assert resp.status_code == 200
        assert resp.json()["version_id"] == version["id"]

        resp = await client.post(
            "/v1/tenants/acme/retrieve",
            json={"query": "refund policy", "top_k": 3},
            headers=auth["member"],
        )
        assert resp.status_code == 200
        assert resp.json()["results"][0]["document_id"] == document_id

    @pytest.mark.asyncio
    async def test_ingestion_failure_keeps_version_pending(self, client, auth, make_file):
        submitted = await _submit(client, auth["member"], make_file, text="   \n\n  ")
        document_id = submitted["document_id"]
        version_id = submitted["version"]["id"]

        resp = await client.post(
            f"/v1/tenants/acme/documents/{document_id}/versions/{version_id}/approve",
            headers=auth["admin"],
        )
        assert resp.status_code == 500
        body = resp.json()
        assert body["code"] == "EMPTY_CONTENT"
        assert body["error"] == "Failed to process document content. Version was not approved."
        assert body["details"]

        resp = await client.get(f"/v1/tenants/acme/documents/{document_id}/versions", headers=auth["member"])
        versions = resp.json()["versions"]
        assert versions[0]["status"] == "PENDING"
        assert versions[0]["ingestion_status"] == "failed"
        assert resp.json()["active_version_id"] is None

    @pytest.mark.asyncio
    async def test_member_cannot_approve(self, client, auth, make_file):
        submitted = await _submit(client, auth["member"], make_file)

        resp = await client.post(
            f"/v1/tenants/acme/documents/{submitted['document_id']}/versions/{submitted['version']['id']}/approve",
            headers=auth["member"],
        )
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_reject_requires_reason(self, client, auth, make_file):
        submitted = await _submit(client, auth["member"], make_file)
        url = f"/v1/tenants/acme/documents/{submitted['document_id']}/reject"

        resp = await client.post(url, json={"reason": "  "}, headers=auth["admin"])
        assert resp.status_code == 400
        assert resp.json()["code"] == "VALIDATION_ERROR"

        resp = await client.post(url, json={"reason": "Needs legal review"}, headers=auth["admin"])
        assert resp.status_code == 200
        assert resp.json()["status"] == "REJECTED"
        assert resp.json()["rejection_reason"] == "Needs legal review"

    @pytest.mark.asyncio
    async def test_second_pending_version_conflicts(self, client, auth, make_file):
        submitted = await _submit(client, auth["member"], make_file)

        resp = await client.post(
            f"/v1/tenants/acme/documents/{submitted['document_id']}/versions",
            json={"file": _file_payload(make_file("Another draft")), "change_notes": "typo"},
            headers=auth["member"],
        )
        assert resp.status_code == 409
        assert resp.json()["code"] == "CONFLICT"

    @pytest.mark.asyncio
    async def test_unsupported_file_type(self, client, auth, make_file):
        resp = await client.post(
            "/v1/tenants/acme/documents",
            json={
                "name": "Logo",
                "file": _file_payload(make_file(b"\x89PNG", mime_type="image/png", name="logo.png")),
            },
            headers=auth["member"],
        )
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_file_outside_storage_rejected(self, client, auth, tmp_path_factory):
        secret = tmp_path_factory.mktemp("outside") / "server_secret.env"
        secret.write_text("DATABASE_PASSWORD=hunter2")

        for url in (secret.as_uri(), str(secret)):
            resp = await client.post(
                "/v1/tenants/acme/documents",
                json={
                    "name": "Handbook",
                    "file": {"url": url, "original_name": "handbook.txt", "mime_type": "text/plain", "size": 25},
                },
                headers=auth["member"],
            )
            assert resp.status_code == 400
            assert resp.json()["code"] == "INVALID_FILE_LOCATION"

        resp = await client.get("/v1/tenants/acme/documents", headers=auth["admin"])
        assert resp.status_code == 200
        assert resp.json()["total"] == 0

    @pytest.mark.asyncio
    async def test_background_approval(self, client, auth, make_file):
        submitted = await _submit(client, auth["member"], make_file)
        document_id = submitted["document_id"]

        resp = await client.post(
            f"/v1/tenants/acme/documents/{document_id}/versions/{submitted['version']['id']}/approve",
            params={"background": "true"},
            headers=auth["admin"],
        )
        assert resp.status_code == 202
        assert resp.json()["ingestion_status"] == "processing"

        resp = await client.get(f"/v1/tenants/acme/documents/{document_id}/versions", headers=auth["admin"])
        versions = resp.json()["versions"]
        assert versions[0]["status"] == "APPROVED"
        assert versions[0]["is_active"] is True

    @pytest.mark.asyncio
    async def test_delete_document(self, client, auth, make_file):
        submitted = await _submit(client, auth["member"], make_file)
        document_id = submitted["document_id"]

        resp = await client.delete(f"/v1/tenants/acme/documents/{document_id}", headers=auth["member"])
        assert resp.status_code == 403

        resp = await client.delete(f"/v1/tenants/acme/documents/{document_id}", headers=auth["admin"])
        assert resp.status_code == 204

        resp = await client.get(f"/v1/tenants/acme/documents/{document_id}/versions", headers=auth["admin"])
        assert resp.status_code == 404


class TestTagEndpoints:
    """测试访问标签接口"""

    @pytest.mark.asyncio
    async def test_tag_scoped_visibility(self, client, auth, seeded, make_file):
        resp = await client.post("/v1/tenants/acme/tags", json={"name": "HR"}, headers=auth["admin"])
        assert resp.status_code == 201
        tag_id = resp.json()["id"]

        submitted = await _submit(client, auth["admin"], make_file, name="Salaries", tags=[tag_id])
        await client.post(
            f"/v1/tenants/acme/documents/{submitted['document_id']}/versions/{submitted['version']['id']}/approve",
            headers=auth["admin"],
        )

        resp = await client.get(
            f"/v1/tenants/acme/knowledge-base/{submitted['document_id']}", headers=auth["member"]
        )
        assert resp.status_code == 403

        resp = await client.post(
            f"/v1/tenants/acme/tags/{tag_id}/grant",
            json={"user_id": seeded.member.id},
            headers=auth["admin"],
        )
        assert resp.status_code == 204

        resp = await client.get(
            f"/v1/tenants/acme/knowledge-base/{submitted['document_id']}", headers=auth["member"]
        )
        assert resp.status_code == 200
        assert resp.json()["categories"] == [{"id": tag_id, "name": "HR"}]

    @pytest.mark.asyncio
    async def test_member_cannot_list_tags(self, client, auth):
        resp = await client.get("/v1/tenants/acme/tags", headers=auth["member"])
        assert resp.status_code == 403
