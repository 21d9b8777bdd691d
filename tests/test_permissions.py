import pytest
from fastapi import HTTPException

from clouddrive.models import File, Share, User
from clouddrive.permissions import require, resolve


@pytest.fixture
def people(session):
    owner = User(email="owner@example.com", hashed_password="x")
    viewer = User(email="viewer@example.com", hashed_password="x")
    editor = User(email="editor@example.com", hashed_password="x")
    admin = User(email="admin@example.com", hashed_password="x")
    stranger = User(email="stranger@example.com", hashed_password="x")
    session.add_all([owner, viewer, editor, admin, stranger])
    session.commit()
    return {u.email.split("@")[0]: u for u in (owner, viewer, editor, admin, stranger)}


@pytest.fixture
def doc(session, people):
    f = File(owner_id=people["owner"].id, name="doc.txt", original_name="doc.txt", size=3, path="1/doc.txt")
    session.add(f)
    session.commit()
    session.refresh(f)
    for who, level in (("viewer", "view"), ("editor", "edit"), ("admin", "admin")):
        session.add(Share(
            file_id=f.id,
            owner_id=people["owner"].id,
            shared_with_email=people[who].email,
            permissions=level,
        ))
    # public links never grant access to signed-in users
    session.add(Share(
        file_id=f.id,
        owner_id=people["owner"].id,
        shared_with_email="",
        permissions="edit",
        share_type="public",
        public_token="tok",
    ))
    session.commit()
    return f


@pytest.mark.parametrize("needed", ["view", "edit", "owner"])
def test_owner_may_do_anything(session, people, doc, needed):
    decision = resolve(session, people["owner"].id, doc.id, needed)
    assert decision.allowed is True
    assert decision.level == "owner"
    assert decision.file.id == doc.id


@pytest.mark.parametrize("who,needed,allowed", [
    ("viewer", "view", True),
    ("viewer", "edit", False),
    ("viewer", "owner", False),
    ("editor", "view", True),
    ("editor", "edit", True),
    ("editor", "owner", False),
    ("admin", "edit", True),
    ("admin", "owner", False),
])
def test_share_levels(session, people, doc, who, needed, allowed):
    assert resolve(session, people[who].id, doc.id, needed).allowed is allowed


def test_admin_share_counts_as_edit(session, people, doc):
    assert resolve(session, people["admin"].id, doc.id, "view").level == "edit"


def test_no_relationship_means_no_level(session, people, doc):
    decision = resolve(session, people["stranger"].id, doc.id, "view")
    assert decision.allowed is False
    assert decision.level is None


def test_missing_file(session, people):
    decision = resolve(session, people["owner"].id, 9999, "view")
    assert decision.allowed is False
    assert decision.file is None


def test_require_hides_files_from_strangers(session, people, doc):
    with pytest.raises(HTTPException) as exc:
        require(session, people["stranger"].id, doc.id, "view")
    assert exc.value.status_code == 404


def test_require_forbids_weak_shares(session, people, doc):
    with pytest.raises(HTTPException) as exc:
        require(session, people["viewer"].id, doc.id, "edit")
    assert exc.value.status_code == 403


def test_require_returns_file(session, people, doc):
    assert require(session, people["editor"].id, doc.id, "edit").id == doc.id
