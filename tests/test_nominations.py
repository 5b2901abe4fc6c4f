import pytest

from models import db, MemberCode, Nomination
from workflow import WorkflowError, _consume_code


def full_nominations(ids, first=None, second=None):
    return [
        {"category_id": ids["cat_a"], "candidate_id": first or ids["x"]},
        {"category_id": ids["cat_b"], "candidate_id": second or ids["y"]},
    ]


def nomination_count(app):
    with app.app_context():
        return Nomination.query.count()


def test_nominate_all_categories_then_code_is_spent(app, client, seeded, set_stage):
    set_stage("NOMINATIONS")
    resp = client.post("/api/nominate", json={"code": "CONDOR001", "nominations": full_nominations(seeded)})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["success"] is True
    assert "2 nominations" in body["message"]
    assert nomination_count(app) == 2

    again = client.post("/api/nominate", json={"code": "CONDOR001", "nominations": full_nominations(seeded)})
    assert again.status_code == 400
    assert "already been used" in again.get_json()["message"]
    assert nomination_count(app) == 2

    with app.app_context():
        code = MemberCode.query.filter_by(code="CONDOR001").first()
        assert code.used_in_nomination is True
        assert code.used_in_voting is False


def test_nominate_wrong_stage(app, client, seeded, set_stage):
    set_stage("VOTING")
    resp = client.post("/api/nominate", json={"code": "CONDOR001", "nominations": full_nominations(seeded)})
    assert resp.status_code == 400
    assert "nomination stage" in resp.get_json()["message"]
    assert nomination_count(app) == 0


def test_nominate_invalid_code(app, client, seeded, set_stage):
    set_stage("NOMINATIONS")
    resp = client.post("/api/nominate", json={"code": "UNKNOWN", "nominations": full_nominations(seeded)})
    assert resp.status_code == 400
    assert "not valid" in resp.get_json()["message"]


def test_nominate_must_cover_every_active_category(app, client, seeded, set_stage):
    set_stage("NOMINATIONS")
    partial = full_nominations(seeded)[:1]
    resp = client.post("/api/nominate", json={"code": "CONDOR001", "nominations": partial})
    assert resp.status_code == 400
    assert "1 of 2" in resp.get_json()["message"]
    assert nomination_count(app) == 0

    with app.app_context():
        assert MemberCode.query.filter_by(code="CONDOR001").first().used_in_nomination is False


def test_nominate_duplicate_category_rejected(app, client, seeded, set_stage):
    set_stage("NOMINATIONS")
    entries = [
        {"category_id": seeded["cat_a"], "candidate_id": seeded["x"]},
        {"category_id": seeded["cat_a"], "candidate_id": seeded["y"]},
    ]
    resp = client.post("/api/nominate", json={"code": "CONDOR001", "nominations": entries})
    assert resp.status_code == 400
    assert nomination_count(app) == 0


def test_nominate_inactive_category_rejected(app, client, seeded, set_stage):
    set_stage("NOMINATIONS")
    entries = [
        {"category_id": seeded["cat_a"], "candidate_id": seeded["x"]},
        {"category_id": seeded["cat_inactive"], "candidate_id": seeded["y"]},
    ]
    resp = client.post("/api/nominate", json={"code": "CONDOR001", "nominations": entries})
    assert resp.status_code == 400
    assert nomination_count(app) == 0


def test_nominate_inactive_candidate_rejected(app, client, seeded, set_stage):
    set_stage("NOMINATIONS")
    entries = full_nominations(seeded, second=seeded["retired"])
    resp = client.post("/api/nominate", json={"code": "CONDOR001", "nominations": entries})
    assert resp.status_code == 400
    assert "candidates" in resp.get_json()["message"]
    assert nomination_count(app) == 0


def test_same_candidate_nominated_by_many_members(app, client, seeded, set_stage):
    set_stage("NOMINATIONS")
    for code in ("CONDOR001", "CONDOR002"):
        resp = client.post("/api/nominate", json={"code": code, "nominations": full_nominations(seeded)})
        assert resp.status_code == 200

    with app.app_context():
        assert Nomination.query.filter_by(category_id=seeded["cat_a"], candidate_id=seeded["x"]).count() == 2


def test_single_pair_nomination(app, client, seeded, set_stage):
    set_stage("NOMINATIONS")
    resp = client.post("/api/nominate", json={
        "code": "condor002", "category_id": seeded["cat_b"], "candidate_id": seeded["z"]
    })
    assert resp.status_code == 200
    assert resp.get_json()["message"] == "Nomination recorded successfully"
    assert nomination_count(app) == 1

    again = client.post("/api/nominate", json={
        "code": "CONDOR002", "category_id": seeded["cat_a"], "candidate_id": seeded["z"]
    })
    assert again.status_code == 400


def test_single_pair_missing_fields(client, seeded, set_stage):
    set_stage("NOMINATIONS")
    resp = client.post("/api/nominate", json={"code": "CONDOR001", "category_id": seeded["cat_a"]})
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Missing required data"


def test_code_flag_cannot_be_consumed_twice(app, seeded):
    """A second submission that passed the read check still loses the conditional update"""
    with app.app_context():
        code = MemberCode.query.filter_by(code="CONDOR001").first()
        _consume_code(code.id, "used_in_nomination", "used")
        db.session.commit()

        with pytest.raises(WorkflowError) as excinfo:
            _consume_code(code.id, "used_in_nomination", "used")
        assert excinfo.value.message == "used"
        db.session.rollback()
