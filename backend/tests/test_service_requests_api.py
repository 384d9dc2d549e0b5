import unittest
import uuid
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from boatcare.api.v1.service_requests import get_request_badges
from boatcare.core.auth import CurrentUser, get_current_user
from boatcare.core.dependencies import get_db, get_request_repository
from boatcare.main import app
from boatcare.models.service_request import Base, Boat, ServiceRequest, User
from boatcare.services.request_repository import SqlAlchemyRequestRepository
from boatcare.utils.request_badges import RequestBadges


class ServiceRequestApiTests(unittest.TestCase):
    def setUp(self):
        self.engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine)

        def override_get_db():
            db = self.SessionLocal()
            try:
                yield db
            finally:
                db.close()

        self.badges = RequestBadges()
        self.client_user = self._create_user("CLIENT", "Claire", "Client")
        self.bm_user = self._create_user("BOAT_MANAGER", "Marc", "Manager")
        self.company_user = self._create_user("NAUTICAL_COMPANY", "Nina", "Owner", company_name="Nautic Services")
        self.boat_id = self._create_boat(self.client_user)
        self.current_user = CurrentUser(id=self.client_user, role="CLIENT")

        def override_get_current_user():
            return self.current_user

        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_current_user] = override_get_current_user
        app.dependency_overrides[get_request_badges] = lambda: self.badges
        self.client = TestClient(app)

    def tearDown(self):
        self.client.close()
        app.dependency_overrides.clear()
        Base.metadata.drop_all(self.engine)
        self.engine.dispose()

    def _create_user(self, role, first_name, last_name, company_name=None):
        db = self.SessionLocal()
        user = User(
            email=f"{uuid.uuid4()}@example.com",
            role=role,
            first_name=first_name,
            last_name=last_name,
            company_name=company_name,
            created_at=datetime.now(timezone.utc),
        )
        db.add(user)
        db.commit()
        user_id = str(user.id)
        db.close()
        return user_id

    def _create_boat(self, owner_id):
        db = self.SessionLocal()
        boat = Boat(owner_id=uuid.UUID(owner_id), name="Sea Breeze")
        db.add(boat)
        db.commit()
        boat_id = str(boat.id)
        db.close()
        return boat_id

    def _act_as(self, user_id, role):
        self.current_user = CurrentUser(id=user_id, role=role)

    def _create_request(self):
        self._act_as(self.client_user, "CLIENT")
        resp = self.client.post(
            "/api/v1/service-requests",
            json={
                "category": "maintenance",
                "title": "Hull cleaning",
                "urgency": "urgent",
                "boat_id": self.boat_id,
                "boat_manager_id": self.bm_user,
            },
        )
        self.assertEqual(resp.status_code, 201, resp.text)
        return resp.json()

    def _transition(self, request_id, intent, inputs=None, expected_status=None):
        body = {"intent": intent, "inputs": inputs or {}}
        if expected_status:
            body["expected_status"] = expected_status
        return self.client.post(f"/api/v1/service-requests/{request_id}/transitions", json=body)

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def test_status_catalog(self):
        resp = self.client.get("/api/v1/status-catalog")
        self.assertEqual(resp.status_code, 200)
        items = resp.json()["items"]
        self.assertEqual(len(items), 11)
        self.assertEqual(items[0]["status"], "submitted")
        self.assertEqual(items[0]["next_action"], "take_charge")
        self.assertEqual(items[-1]["status"], "cancelled")
        self.assertTrue(items[-1]["terminal"])

    # ------------------------------------------------------------------
    # Create / read
    # ------------------------------------------------------------------

    def test_create_request_as_client(self):
        view = self._create_request()
        self.assertEqual(view["request"]["status"], "submitted")
        self.assertEqual(view["request"]["urgency"], "urgent")
        self.assertEqual(view["request"]["category_label"], "Maintenance")
        self.assertEqual(view["handler"]["display_text"], "Handled by boat manager: Marc Manager")
        self.assertEqual(view["actions"], [])
        self.assertTrue(view["is_new"])

    def test_create_request_validation_error(self):
        resp = self.client.post("/api/v1/service-requests", json={"category": "repair", "title": "Engine"})
        self.assertEqual(resp.status_code, 422)
        detail = resp.json()["detail"]
        self.assertEqual(detail["code"], "VALIDATION_FAILED")
        self.assertEqual(detail["errors"], {"boat_id": "required"})

    def test_list_is_scoped_and_summarized(self):
        view = self._create_request()
        self._act_as(self.bm_user, "BOAT_MANAGER")
        resp = self.client.get("/api/v1/service-requests")
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual([item["request"]["id"] for item in body["items"]], [view["request"]["id"]])
        self.assertEqual(
            [action["intent"] for action in body["items"][0]["actions"]],
            ["take_charge", "cancel"],
        )
        self.assertEqual(body["summary"]["total"], 1)
        self.assertEqual(body["summary"]["urgent"], 1)
        self.assertEqual(body["summary"]["new_requests"], 1)

        self._act_as(self.company_user, "NAUTICAL_COMPANY")
        resp = self.client.get("/api/v1/service-requests")
        self.assertEqual(resp.json()["items"], [])

    def test_list_filters_are_mutually_exclusive(self):
        resp = self.client.get("/api/v1/service-requests?status_filter=submitted&urgency=urgent")
        self.assertEqual(resp.status_code, 422)
        self.assertEqual(resp.json()["detail"]["code"], "VALIDATION_FAILED")

    def test_list_search_and_filter(self):
        self._create_request()
        resp = self.client.get("/api/v1/service-requests?q=sea%20breeze&status_filter=new_requests")
        self.assertEqual(len(resp.json()["items"]), 1)
        self.assertEqual(resp.json()["status_filter"], "new_requests")
        resp = self.client.get("/api/v1/service-requests?q=nothing")
        self.assertEqual(resp.json()["items"], [])

    def test_detail_clears_badges(self):
        view = self._create_request()
        request_id = view["request"]["id"]
        resp = self.client.get(f"/api/v1/service-requests/{request_id}")
        self.assertEqual(resp.status_code, 200)
        self.assertFalse(resp.json()["is_new"])
        summary = self.client.get("/api/v1/service-requests/summary").json()
        self.assertEqual(summary["new_requests"], 0)
        self.assertEqual(summary["by_status"]["submitted"], 1)

    def test_detail_of_other_client_is_not_found(self):
        view = self._create_request()
        stranger = self._create_user("CLIENT", "Sam", "Stranger")
        self._act_as(stranger, "CLIENT")
        resp = self.client.get(f"/api/v1/service-requests/{view['request']['id']}")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["detail"]["code"], "REQUEST_NOT_FOUND")

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def test_take_charge_and_forward(self):
        request_id = self._create_request()["request"]["id"]
        self._act_as(self.bm_user, "BOAT_MANAGER")

        resp = self._transition(request_id, "take_charge", expected_status="submitted")
        self.assertEqual(resp.status_code, 200, resp.text)
        self.assertEqual(resp.json()["request"]["status"], "in_progress")
        self.assertTrue(resp.json()["has_status_update"])

        resp = self._transition(request_id, "forward", {"company_id": self.company_user})
        self.assertEqual(resp.status_code, 200, resp.text)
        body = resp.json()
        self.assertEqual(body["request"]["company"]["name"], "Nautic Services")
        self.assertEqual(body["handler"]["actor"], "company")

        db = self.SessionLocal()
        stored = db.get(ServiceRequest, uuid.UUID(request_id))
        self.assertEqual(stored.status, "forwarded")
        db.close()

    def test_invalid_transition(self):
        request_id = self._create_request()["request"]["id"]
        resp = self._transition(request_id, "accept_quote")
        self.assertEqual(resp.status_code, 400)
        detail = resp.json()["detail"]
        self.assertEqual(detail["code"], "INVALID_TRANSITION")
        self.assertEqual(detail["current_status"], "submitted")

    def test_missing_inputs(self):
        request_id = self._create_request()["request"]["id"]
        self._act_as(self.bm_user, "BOAT_MANAGER")
        self._transition(request_id, "take_charge")
        resp = self._transition(request_id, "forward", {})
        self.assertEqual(resp.status_code, 422)
        self.assertEqual(resp.json()["detail"]["errors"], {"company_id": "required"})

    def test_forward_to_non_company_is_rejected(self):
        request_id = self._create_request()["request"]["id"]
        self._act_as(self.bm_user, "BOAT_MANAGER")
        self._transition(request_id, "take_charge")

        for company_id in ("not-a-uuid", self.client_user, str(uuid.uuid4())):
            resp = self._transition(request_id, "forward", {"company_id": company_id})
            self.assertEqual(resp.status_code, 422, resp.text)
            self.assertEqual(resp.json()["detail"]["errors"], {"company_id": "unknown nautical company"})

        detail = self.client.get(f"/api/v1/service-requests/{request_id}").json()
        self.assertEqual(detail["request"]["status"], "in_progress")
        self.assertIsNone(detail["request"]["company"])

    def test_stale_expected_status(self):
        request_id = self._create_request()["request"]["id"]
        self._act_as(self.bm_user, "BOAT_MANAGER")
        self._transition(request_id, "take_charge", expected_status="submitted")
        resp = self._transition(request_id, "cancel", {"reason": "duplicate"}, expected_status="submitted")
        self.assertEqual(resp.status_code, 409)
        detail = resp.json()["detail"]
        self.assertEqual(detail["code"], "CONCURRENT_MODIFICATION")
        self.assertEqual(detail["actual_status"], "in_progress")

    def test_unknown_request(self):
        self._act_as(self.bm_user, "BOAT_MANAGER")
        resp = self._transition(str(uuid.uuid4()), "take_charge")
        self.assertEqual(resp.status_code, 404)

    def test_unknown_intent_rejected_by_schema(self):
        request_id = self._create_request()["request"]["id"]
        resp = self._transition(request_id, "teleport")
        self.assertEqual(resp.status_code, 422)

    def test_store_failure_maps_to_503(self):
        class _BrokenSession:
            def execute(self, *args, **kwargs):
                raise OperationalError("SELECT 1", {}, Exception("connection refused"))

        app.dependency_overrides[get_request_repository] = lambda: SqlAlchemyRequestRepository(_BrokenSession())
        resp = self.client.get("/api/v1/service-requests")
        self.assertEqual(resp.status_code, 503)
        self.assertEqual(resp.json()["detail"]["code"], "REPOSITORY_FAILURE")


@pytest.mark.asyncio
async def test_async_client_lifecycle_until_quote(api_client, factory):
    client = factory.client()
    bm = factory.boat_manager()
    company = factory.company()
    boat = factory.boat(client)
    client_id, bm_id, company_id, boat_id = str(client.id), str(bm.id), str(company.id), str(boat.id)

    as_client = {"x-test-role": "CLIENT", "x-test-sub": client_id}
    as_bm = {"x-test-role": "BOAT_MANAGER", "x-test-sub": bm_id}
    as_company = {"x-test-role": "NAUTICAL_COMPANY", "x-test-sub": company_id}

    resp = await api_client.post(
        "/api/v1/service-requests",
        json={"category": "repair", "title": "Bilge pump", "boat_id": boat_id, "boat_manager_id": bm_id},
        headers=as_client,
    )
    assert resp.status_code == 201, resp.text
    request_id = resp.json()["request"]["id"]

    url = f"/api/v1/service-requests/{request_id}/transitions"
    resp = await api_client.post(url, json={"intent": "take_charge"}, headers=as_bm)
    assert resp.status_code == 200, resp.text
    resp = await api_client.post(url, json={"intent": "forward", "inputs": {"company_id": company_id}}, headers=as_bm)
    assert resp.status_code == 200, resp.text
    resp = await api_client.post(
        url, json={"intent": "request_quote", "inputs": {"amount": 480}}, headers=as_company
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["request"]["status"] == "quote_sent"
    assert body["request"]["price"] == 480.0

    resp = await api_client.get(f"/api/v1/service-requests/{request_id}", headers=as_client)
    assert [action["intent"] for action in resp.json()["actions"]] == ["accept_quote", "reject_quote"]
