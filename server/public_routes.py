import logging

from flask import Blueprint, jsonify, request

from models import Category, Candidate
from results import published_winners
from workflow import (
    get_event_state, validate_code, submit_nominations, submit_votes, WorkflowError
)

logger = logging.getLogger(__name__)

public_bp = Blueprint('public', __name__, url_prefix='/api')


def json_body() -> dict:
    """JSON object body; arrays, scalars and malformed JSON are rejected"""
    data = request.get_json(silent=True)
    if data is None and not request.get_data():
        return {}
    if not isinstance(data, dict):
        raise WorkflowError("Missing required data")
    return data


def query_flag(name: str) -> bool:
    return (request.args.get(name) or '').strip().lower() in ('true', '1', 'yes')


@public_bp.get("/event-state")
def public_event_state():
    """Current stage so the public client knows which action is open"""
    event_state = get_event_state()
    return jsonify({
        "state": event_state.state,
        "winners_visible": event_state.winners_visible
    })


@public_bp.post("/validate-code")
def validate_code_endpoint():
    data = json_body()
    result = validate_code(data.get('code'))
    if not result['valid']:
        logger.info(f"Code rejected: {result['message']}")
    return jsonify(result)


@public_bp.post("/nominate")
def nominate():
    """Accepts a full nominations array, or a single category/candidate pair"""
    data = json_body()
    code = data.get('code')
    nominations = data.get('nominations')

    if isinstance(nominations, list):
        count = submit_nominations(code, nominations)
        return jsonify({
            "success": True,
            "message": f"{count} nominations recorded successfully"
        })

    if not code or not data.get('category_id') or not data.get('candidate_id'):
        raise WorkflowError("Missing required data")

    submit_nominations(
        code,
        [{"category_id": data.get('category_id'), "candidate_id": data.get('candidate_id')}],
        require_all=False
    )
    return jsonify({"success": True, "message": "Nomination recorded successfully"})


@public_bp.post("/vote")
def vote():
    data = json_body()
    votes = data.get('votes')
    if not data.get('code') or not isinstance(votes, list) or not votes:
        raise WorkflowError("Missing required data")

    submit_votes(data.get('code'), votes)
    return jsonify({"success": True, "message": "Votes recorded successfully"})


@public_bp.get("/categories")
def list_categories():
    query = Category.query
    if query_flag('active'):
        query = query.filter_by(is_active=True)
    categories = query.order_by(Category.order, Category.id).all()

    with_candidates = query_flag('withCandidates')
    payload = []
    for category in categories:
        item = category.to_dict()
        if with_candidates:
            item['candidates'] = [
                {
                    "id": cc.candidate.id,
                    "display_name": cc.candidate.display_name,
                    "profile_image_url": cc.candidate.profile_image_url
                }
                for cc in category.category_candidates
                if cc.candidate.is_active
            ]
        payload.append(item)
    return jsonify(payload)


@public_bp.get("/candidates")
def list_candidates():
    candidates = Candidate.query.filter_by(is_active=True).order_by(Candidate.display_name).all()
    return jsonify([
        {
            "id": c.id,
            "display_name": c.display_name,
            "profile_image_url": c.profile_image_url
        }
        for c in candidates
    ])


@public_bp.get("/winners")
def winners():
    """Announced winners only"""
    return jsonify(published_winners())
