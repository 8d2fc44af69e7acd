"""
Tests for role permissions and the permission dependency.
"""

import pytest
from httpx import AsyncClient

from nyayasetu.core.user_context import UserContext, UserRole, get_permissions


class TestPermissions:

    def test_victim(self):
        user = UserContext(user_id="u1", role=UserRole.VICTIM)
        assert user.has_permission("grievance_create")
        assert user.has_permission("disbursement_verify")
        assert not user.has_permission("grievance_read_all")
        assert not user.has_permission("document_download")
        assert user.is_victim

    def test_officer(self):
        user = UserContext(user_id="u2", role=UserRole.OFFICER)
        assert user.can("grievance_review", "disbursement_create", "fund_manage")
        assert not user.has_permission("document_delete")
        assert not user.has_permission("grievance_create")
        assert not user.is_victim

    def test_admin_expands_wildcard(self):
        perms = get_permissions(UserRole.ADMIN)
        assert "*" not in perms
        assert "document_delete" in perms
        assert get_permissions(UserRole.OFFICER) < perms
        assert get_permissions(UserRole.VICTIM) < perms

    def test_can_needs_every_permission(self):
        user = UserContext(user_id="u1", role=UserRole.VICTIM)
        assert user.can("document_upload")
        assert not user.can("document_upload", "document_view_all")

    def test_explicit_permissions_kept(self):
        user = UserContext(user_id="u3", role=UserRole.OFFICER, permissions={"fund_manage"})
        assert user.permissions == {"fund_manage"}

    def test_to_dict_sorts_permissions(self):
        data = UserContext(user_id="u1", role=UserRole.VICTIM, full_name="Sunita").to_dict()
        assert data["role"] == "victim"
        assert data["permissions"] == sorted(get_permissions(UserRole.VICTIM))


class TestPermissionDependency:

    async def test_missing_permission_is_named(self, officer_client: AsyncClient):
        response = await officer_client.delete("/api/documents/missing-id")
        assert response.status_code == 403
        assert response.json() == {
            "success": False,
            "message": "Missing required permissions: ['document_delete']",
        }

    @pytest.mark.parametrize("method,path", [
        ("post", "/api/funds/allocate"),
        ("post", "/api/grievances/any-id/review"),
        ("post", "/api/grievances/any-id/disburse"),
        ("get", "/api/documents/any-id/download"),
    ])
    async def test_victim_lacks_officer_permissions(self, victim_client: AsyncClient, method, path):
        response = await victim_client.request(method, path, json={})
        assert response.status_code == 403

    async def test_admin_reads_every_grievance(self, grievance: dict, admin_client: AsyncClient):
        response = await admin_client.get("/api/grievances")
        assert response.status_code == 200
        assert response.json()["count"] == 1

        response = await admin_client.get(f"/api/documents/grievance/{grievance['id']}")
        assert response.status_code == 200
