"""
Linked device listing and removal.
"""
import pytest

from api_helpers import DEVICE_ID, auth_headers, device_headers
from models import UserDeviceLink
from services.identity import anonymous_user_id

OTHER_DEVICE = "device-other-987654"


@pytest.fixture
def linked(client, db_session):
    """user_1 has signed in from two devices; returns headers for the first."""
    headers = {**auth_headers("user_1"), **device_headers(DEVICE_ID)}
    client.get("/v1/goal", headers=headers)
    client.get("/v1/goal", headers={**auth_headers("user_1"), **device_headers(OTHER_DEVICE)})
    return headers


class TestListDevices:
    def test_lists_links_and_marks_current(self, client, linked):
        resp = client.get("/v1/devices", headers=linked)
        assert resp.status_code == 200
        body = resp.json()
        assert body["current_device_id"] == DEVICE_ID
        devices = {d["device_id"]: d for d in body["devices"]}
        assert set(devices) == {DEVICE_ID, OTHER_DEVICE}
        assert devices[DEVICE_ID]["is_current"] is True
        assert devices[OTHER_DEVICE]["is_current"] is False
        assert devices[OTHER_DEVICE]["first_seen_at"] is not None

    def test_token_only_caller_has_no_current_device(self, client, linked):
        body = client.get("/v1/devices", headers=auth_headers("user_1")).json()
        assert body["current_device_id"] is None
        assert all(d["is_current"] is False for d in body["devices"])

    def test_anonymous_device_has_no_links(self, client, db_session):
        body = client.get("/v1/devices", headers=device_headers("device-lonely-000001")).json()
        assert body == {"current_device_id": "device-lonely-000001", "devices": []}


class TestDeleteDevice:
    def test_other_device_is_unlinked(self, client, db_session, linked):
        resp = client.delete(f"/v1/devices/{OTHER_DEVICE}", headers=linked)
        assert resp.status_code == 204
        assert db_session.query(UserDeviceLink).filter(UserDeviceLink.device_id == OTHER_DEVICE).count() == 0

        # The unlinked device is anonymous again.
        ident = client.get("/v1/billing/status", headers=device_headers(OTHER_DEVICE)).json()
        assert ident["user_id"] == anonymous_user_id(OTHER_DEVICE)

    def test_current_device_cannot_remove_itself(self, client, linked):
        resp = client.delete(f"/v1/devices/{DEVICE_ID}", headers=linked)
        assert resp.status_code == 400
        assert resp.json() == {"detail": "You cannot delete the current device from itself."}

    def test_unknown_link_is_404(self, client, linked):
        resp = client.delete("/v1/devices/device-never-seen-1", headers=linked)
        assert resp.status_code == 404

    def test_invalid_device_id_is_400(self, client, linked):
        resp = client.delete("/v1/devices/short", headers=linked)
        assert resp.status_code == 400
        assert resp.json() == {"detail": "device_id is required and must be valid"}

    def test_cannot_unlink_another_users_device(self, client, db_session, linked):
        resp = client.delete(f"/v1/devices/{OTHER_DEVICE}", headers=auth_headers("user_2"))
        assert resp.status_code == 404
        assert db_session.query(UserDeviceLink).count() == 2
