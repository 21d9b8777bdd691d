from datetime import datetime, timedelta

from sqlmodel import Session, select

from clouddrive.models import Share
from conftest import auth, register, upload


def share(client, owner, file_id, email, permissions="view"):
    return client.post(
        f"/api/shares/{file_id}/share",
        json={"email": email, "permissions": permissions},
        headers=auth(owner),
    )


def test_share_with_user(client, alice, bob):
    f = upload(client, alice).json()["file"]
    r = share(client, alice, f["id"], bob["email"], "edit")
    assert r.status_code == 200
    body = r.json()["share"]
    assert body["shared_with_email"] == bob["email"]
    assert body["permissions"] == "edit"
    assert body["share_type"] == "private"


def test_duplicate_share_conflicts(client, ctx, alice, bob):
    f = upload(client, alice).json()["file"]
    assert share(client, alice, f["id"], bob["email"]).status_code == 200
    assert share(client, alice, f["id"], bob["email"], "edit").status_code == 409

    with Session(ctx.engine) as s:
        rows = s.exec(select(Share).where(Share.file_id == f["id"])).all()
    assert len(rows) == 1
    assert rows[0].permissions == "view"


def test_share_with_unknown_user(client, alice):
    f = upload(client, alice).json()["file"]
    r = share(client, alice, f["id"], "nobody@example.com")
    assert r.status_code == 404
    assert r.json()["detail"] == "User not found"


def test_share_with_self(client, alice):
    f = upload(client, alice).json()["file"]
    assert share(client, alice, f["id"], alice["email"]).status_code == 400


def test_invalid_permission_is_bad_request(client, alice, bob):
    f = upload(client, alice).json()["file"]
    assert share(client, alice, f["id"], bob["email"], "superuser").status_code == 400


def test_only_owner_can_share(client, alice, bob):
    f = upload(client, alice).json()["file"]
    share(client, alice, f["id"], bob["email"], "admin")
    carol = register(client, "carol@example.com")
    assert share(client, bob, f["id"], carol["email"]).status_code == 403


def test_shared_listings(client, alice, bob):
    report = upload(client, alice, name="report.pdf").json()["file"]
    photo = upload(client, alice, name="photo.jpg").json()["file"]
    share(client, alice, report["id"], bob["email"])
    share(client, alice, photo["id"], bob["email"], "edit")

    r = client.get("/api/shares/shared-with-me", headers=auth(bob))
    assert r.status_code == 200
    body = r.json()
    assert body["total"] == 2
    assert {s["file"]["name"] for s in body["shares"]} == {"report.pdf", "photo.jpg"}
    assert all(s["owner_email"] == alice["email"] for s in body["shares"])

    r = client.get("/api/shares/shared-with-me", params={"search": "report"}, headers=auth(bob))
    assert [s["file"]["name"] for s in r.json()["shares"]] == ["report.pdf"]

    r = client.get("/api/shares/shared-by-me", params={"search": "bob@"}, headers=auth(alice))
    body = r.json()
    assert body["total"] == 2
    assert all(s["shared_with_email"] == bob["email"] for s in body["shares"])

    assert client.get("/api/shares/shared-by-me", headers=auth(bob)).json()["total"] == 0


def test_trashed_files_drop_out_of_shared_with_me(client, alice, bob):
    f = upload(client, alice).json()["file"]
    share(client, alice, f["id"], bob["email"])
    client.delete(f"/api/files/{f['id']}", headers=auth(alice))
    assert client.get("/api/shares/shared-with-me", headers=auth(bob)).json()["total"] == 0


def test_revoke_share(client, alice, bob):
    f = upload(client, alice).json()["file"]
    share_id = share(client, alice, f["id"], bob["email"]).json()["share"]["id"]

    r = client.delete(f"/api/shares/{f['id']}/shares/{share_id}", headers=auth(alice))
    assert r.status_code == 200
    assert client.get(f"/api/files/{f['id']}/download", headers=auth(bob)).status_code == 404
    assert client.delete(f"/api/shares/{f['id']}/shares/{share_id}", headers=auth(alice)).status_code == 404


def test_public_link(client, alice):
    f = upload(client, alice, content=b"public bytes").json()["file"]
    r = client.post(f"/api/shares/{f['id']}/public", headers=auth(alice))
    assert r.status_code == 200
    token = r.json()["token"]
    assert len(token) == 48

    r = client.get(f"/api/shares/public/{token}")
    assert r.status_code == 200
    body = r.json()
    assert body["file"]["name"] == "notes.txt"
    assert client.get(body["downloadUrl"]).content == b"public bytes"


def test_expired_public_link(client, alice):
    f = upload(client, alice).json()["file"]
    expires = (datetime.utcnow() - timedelta(seconds=1)).isoformat()
    r = client.post(f"/api/shares/{f['id']}/public", json={"expiresAt": expires}, headers=auth(alice))
    token = r.json()["token"]
    assert client.get(f"/api/shares/public/{token}").status_code == 410


def test_future_expiry_still_resolves(client, alice):
    f = upload(client, alice).json()["file"]
    expires = (datetime.utcnow() + timedelta(hours=1)).isoformat() + "Z"
    token = client.post(
        f"/api/shares/{f['id']}/public", json={"expiresAt": expires}, headers=auth(alice)
    ).json()["token"]
    assert client.get(f"/api/shares/public/{token}").status_code == 200


def test_unknown_public_link(client):
    assert client.get("/api/shares/public/deadbeef").status_code == 404


def test_public_link_of_trashed_file(client, alice):
    f = upload(client, alice).json()["file"]
    token = client.post(f"/api/shares/{f['id']}/public", headers=auth(alice)).json()["token"]
    client.delete(f"/api/files/{f['id']}", headers=auth(alice))
    assert client.get(f"/api/shares/public/{token}").status_code == 404


def test_revoke_public_link(client, alice, bob):
    f = upload(client, alice).json()["file"]
    token = client.post(f"/api/shares/{f['id']}/public", headers=auth(alice)).json()["token"]

    assert client.delete(f"/api/shares/public/{token}", headers=auth(bob)).status_code == 404
    assert client.get(f"/api/shares/public/{token}").status_code == 200

    assert client.delete(f"/api/shares/public/{token}", headers=auth(alice)).status_code == 200
    assert client.get(f"/api/shares/public/{token}").status_code == 404


def test_share_recipient_email_is_case_insensitive(client, alice, bob):
    f = upload(client, alice).json()["file"]
    r = share(client, alice, f["id"], bob["email"].upper())
    assert r.status_code == 200
    assert r.json()["share"]["shared_with_email"] == bob["email"]

    assert share(client, alice, f["id"], bob["email"]).status_code == 409
    assert client.get(f"/api/files/{f['id']}/download", headers=auth(bob)).status_code == 200
    assert client.get("/api/shares/shared-with-me", headers=auth(bob)).json()["total"] == 1
    assert share(client, alice, f["id"], alice["email"].upper()).status_code == 400
