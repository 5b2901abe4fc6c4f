import pytest

from models import MemberCode, Vote


@pytest.fixture
def voting(seeded, set_stage, add_finalists):
    add_finalists(seeded["cat_a"], [seeded["x"], seeded["y"]])
    add_finalists(seeded["cat_b"], [seeded["y"], seeded["z"]])
    set_stage("VOTING")
    return seeded


def vote_count(app):
    with app.app_context():
        return Vote.query.count()


def test_full_vote_then_code_is_spent(app, client, voting):
    ballot = [
        {"category_id": voting["cat_a"], "candidate_id": voting["x"]},
        {"category_id": voting["cat_b"], "candidate_id": voting["z"]},
    ]
    resp = client.post("/api/vote", json={"code": "CONDOR001", "votes": ballot})
    assert resp.status_code == 200
    assert resp.get_json() == {"success": True, "message": "Votes recorded successfully"}
    assert vote_count(app) == 2

    again = client.post("/api/vote", json={"code": "CONDOR001", "votes": ballot})
    assert again.status_code == 400
    assert "already been used to vote" in again.get_json()["message"]
    assert vote_count(app) == 2

    with app.app_context():
        assert MemberCode.query.filter_by(code="CONDOR001").first().used_in_voting is True


def test_vote_for_non_finalist_writes_nothing(app, client, voting):
    ballot = [
        {"category_id": voting["cat_a"], "candidate_id": voting["x"]},
        {"category_id": voting["cat_b"], "candidate_id": voting["x"]},
    ]
    resp = client.post("/api/vote", json={"code": "CONDOR001", "votes": ballot})
    assert resp.status_code == 400
    assert "preselected" in resp.get_json()["message"]
    assert vote_count(app) == 0

    with app.app_context():
        assert MemberCode.query.filter_by(code="CONDOR001").first().used_in_voting is False


def test_vote_must_cover_every_active_category(app, client, voting):
    ballot = [{"category_id": voting["cat_a"], "candidate_id": voting["y"]}]
    resp = client.post("/api/vote", json={"code": "CONDOR001", "votes": ballot})
    assert resp.status_code == 400
    assert "1 of 2" in resp.get_json()["message"]
    assert vote_count(app) == 0


def test_vote_wrong_stage(app, client, voting, set_stage):
    set_stage("NOMINATIONS")
    ballot = [
        {"category_id": voting["cat_a"], "candidate_id": voting["x"]},
        {"category_id": voting["cat_b"], "candidate_id": voting["y"]},
    ]
    resp = client.post("/api/vote", json={"code": "CONDOR001", "votes": ballot})
    assert resp.status_code == 400
    assert "voting stage" in resp.get_json()["message"]
    assert vote_count(app) == 0


def test_vote_missing_data(client, voting):
    resp = client.post("/api/vote", json={"code": "CONDOR001", "votes": []})
    assert resp.status_code == 400
    assert resp.get_json() == {
        "success": False, "message": "Missing required data", "error": "Missing required data"
    }


def test_nomination_does_not_spend_the_vote(app, client, seeded, set_stage, add_finalists):
    set_stage("NOMINATIONS")
    nominations = [
        {"category_id": seeded["cat_a"], "candidate_id": seeded["x"]},
        {"category_id": seeded["cat_b"], "candidate_id": seeded["y"]},
    ]
    assert client.post("/api/nominate", json={"code": "CONDOR002", "nominations": nominations}).status_code == 200

    add_finalists(seeded["cat_a"], [seeded["x"]])
    add_finalists(seeded["cat_b"], [seeded["y"]])
    set_stage("VOTING")
    resp = client.post("/api/vote", json={"code": "CONDOR002", "votes": nominations})
    assert resp.status_code == 200
    assert vote_count(app) == 2
