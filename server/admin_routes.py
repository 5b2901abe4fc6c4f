import logging

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from auth import require_admin
from candidate_import import import_candidates, parse_bool
from codes import import_codes, censored_codes, code_stats
from models import db, Category, Candidate, CategoryCandidate, Nomination, Vote
from public_routes import json_body
from results import category_results, nomination_summary, vote_summary, presentation_data
from uploads import save_uploaded_image, remove_image
from workflow import (
    UNSET, WorkflowError, get_event_state, set_event_state, select_finalists, publish_winner
)

logger = logging.getLogger(__name__)

admin_bp = Blueprint('admin', __name__, url_prefix='/api/admin')
admin_bp.before_request(require_admin)


def request_data() -> dict:
    """JSON body, or form fields for multipart requests"""
    if request.mimetype == 'multipart/form-data':
        return request.form.to_dict()
    return json_body()


def optional_int(value, field: str):
    if value is None or value == '':
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise WorkflowError(f"Invalid {field}")


def text_field(data: dict, field: str) -> str:
    value = data.get(field)
    if value is None:
        return ''
    if not isinstance(value, str):
        raise WorkflowError(f"Invalid {field}")
    return value.strip()


def grouped_counts(column, key_column) -> dict:
    rows = db.session.query(key_column, func.count(column)).group_by(key_column).all()
    return {r[0]: r[1] for r in rows}


@admin_bp.post("/login")
def admin_login():
    """Credentials were already checked by the blueprint hook"""
    return jsonify({"success": True})


# --- Event state ---

@admin_bp.get("/event-state")
def admin_get_event_state():
    return jsonify(get_event_state().to_dict())


@admin_bp.put("/event-state")
def admin_set_event_state():
    data = json_body()
    state = data.get('state')
    winners_visible = data.get('winners_visible')
    if state is None and winners_visible is None:
        raise WorkflowError("Invalid event state")
    event_state = set_event_state(state, None if winners_visible is None else parse_bool(winners_visible))
    return jsonify(event_state.to_dict())


# --- Categories ---

@admin_bp.get("/categories")
def admin_list_categories():
    nominations = grouped_counts(Nomination.id, Nomination.category_id)
    finalists = grouped_counts(CategoryCandidate.id, CategoryCandidate.category_id)
    votes = grouped_counts(Vote.id, Vote.category_id)

    categories = Category.query.order_by(Category.order, Category.id).all()
    return jsonify([
        dict(category.to_dict(), _count={
            "nominations": nominations.get(category.id, 0),
            "category_candidates": finalists.get(category.id, 0),
            "votes": votes.get(category.id, 0)
        })
        for category in categories
    ])


@admin_bp.post("/categories")
def admin_create_category():
    data = json_body()
    name = text_field(data, 'name')
    short_description = text_field(data, 'short_description')
    if not name or not short_description:
        raise WorkflowError("Name and description are required")

    category = Category(
        name=name,
        short_description=short_description,
        order=optional_int(data.get('order'), 'order') or 0,
        is_active=parse_bool(data.get('is_active'))
    )
    db.session.add(category)
    db.session.commit()
    logger.info(f"✅ Category created: ID={category.id}, Name={category.name}")
    return jsonify(category.to_dict()), 201


@admin_bp.put("/categories")
def admin_update_category():
    data = json_body()
    category_id = optional_int(data.get('id'), 'id')
    if not category_id:
        raise WorkflowError("ID is required")

    category = db.session.get(Category, category_id)
    if category is None:
        raise WorkflowError("Category not found", 404)

    name = text_field(data, 'name')
    if name:
        category.name = name
    short_description = text_field(data, 'short_description')
    if short_description:
        category.short_description = short_description
    order = optional_int(data.get('order'), 'order')
    if order is not None:
        category.order = order
    if data.get('is_active') is not None:
        category.is_active = parse_bool(data.get('is_active'))

    db.session.commit()
    logger.info(f"✅ Category updated: ID={category.id}")
    return jsonify(category.to_dict())


@admin_bp.delete("/categories")
def admin_delete_category():
    """Deleting a category removes its nominations, votes and finalists"""
    category_id = optional_int(request.args.get('id'), 'id')
    if not category_id:
        raise WorkflowError("ID is required")

    category = db.session.get(Category, category_id)
    if category is None:
        raise WorkflowError("Category not found", 404)

    try:
        db.session.delete(category)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info(f"✅ Category {category_id} deleted")
    return jsonify({"success": True})


@admin_bp.get("/categories/selected-candidates")
def admin_selected_candidates():
    categories = Category.query.order_by(Category.order, Category.id).all()
    return jsonify([
        {
            "category_id": category.id,
            "category_name": category.name,
            "candidates": [
                {
                    "candidate_id": cc.candidate.id,
                    "candidate_name": cc.candidate.display_name,
                    "profile_image_url": cc.candidate.profile_image_url
                }
                for cc in category.category_candidates
            ]
        }
        for category in categories
    ])


@admin_bp.post("/categories/select-candidates")
def admin_select_candidates():
    data = json_body()
    max_candidates = optional_int(data.get('max_candidates'), 'max_candidates') \
        or current_app.config['MAX_FINALISTS']
    selected = select_finalists(data.get('category_id'), data.get('candidate_ids'), max_candidates)
    return jsonify({"success": True, "selected": len(selected)})


# --- Candidates ---

@admin_bp.get("/candidates")
def admin_list_candidates():
    votes = grouped_counts(Vote.id, Vote.candidate_id)
    nominations = grouped_counts(Nomination.id, Nomination.candidate_id)

    candidates = Candidate.query.order_by(Candidate.display_name).all()
    return jsonify([
        dict(
            candidate.to_dict(),
            _count={
                "votes": votes.get(candidate.id, 0),
                "nominations": nominations.get(candidate.id, 0)
            },
            category_candidates=[
                {"category": {"id": cc.category.id, "name": cc.category.name}}
                for cc in candidate.category_candidates
            ]
        )
        for candidate in candidates
    ])


@admin_bp.post("/candidates")
def admin_create_candidate():
    """JSON, or multipart with an optional `image` file"""
    data = request_data()
    display_name = text_field(data, 'display_name')
    if not display_name:
        raise WorkflowError("Name is required")
    if Candidate.query.filter_by(display_name=display_name).first():
        raise WorkflowError("A candidate with that name already exists")

    image = request.files.get('image')
    image_url = save_uploaded_image(image) if image and image.filename else None

    candidate = Candidate(
        display_name=display_name,
        is_active=parse_bool(data.get('is_active')),
        profile_image_url=image_url
    )
    db.session.add(candidate)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        remove_image(image_url)
        raise WorkflowError("A candidate with that name already exists")

    logger.info(f"✅ Candidate created: ID={candidate.id}, Name={candidate.display_name}")
    return jsonify(candidate.to_dict()), 201


@admin_bp.put("/candidates")
def admin_update_candidate():
    data = request_data()
    candidate_id = optional_int(data.get('id'), 'id')
    if not candidate_id:
        raise WorkflowError("ID is required")

    candidate = db.session.get(Candidate, candidate_id)
    if candidate is None:
        raise WorkflowError("The candidate does not exist or was already deleted", 404)

    display_name = text_field(data, 'display_name')
    if display_name and display_name != candidate.display_name:
        if Candidate.query.filter_by(display_name=display_name).first():
            raise WorkflowError("A candidate with that name already exists")
        candidate.display_name = display_name
    if data.get('is_active') is not None:
        candidate.is_active = parse_bool(data.get('is_active'))

    superseded = None
    saved_url = None
    image = request.files.get('image')
    if image and image.filename:
        superseded = candidate.profile_image_url
        saved_url = save_uploaded_image(image)
        candidate.profile_image_url = saved_url
    elif parse_bool(data.get('remove_image', False)):
        superseded = candidate.profile_image_url
        candidate.profile_image_url = None

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        remove_image(saved_url)
        raise WorkflowError("A candidate with that name already exists")

    remove_image(superseded)
    logger.info(f"✅ Candidate updated: ID={candidate.id}")
    return jsonify(candidate.to_dict())


@admin_bp.delete("/candidates")
def admin_delete_candidate():
    candidate_id = optional_int(request.args.get('id'), 'id')
    if not candidate_id:
        raise WorkflowError("ID is required")

    candidate = db.session.get(Candidate, candidate_id)
    if candidate is None:
        raise WorkflowError("The candidate does not exist or was already deleted", 404)

    image_url = candidate.profile_image_url
    try:
        Category.query.filter_by(winner_candidate_id=candidate_id).update(
            {"winner_candidate_id": None, "winner_announced": False}
        )
        db.session.delete(candidate)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    remove_image(image_url)
    logger.info(f"✅ Candidate {candidate_id} deleted")
    return jsonify({"success": True})


@admin_bp.post("/candidates/import")
def admin_import_candidates():
    """Spreadsheet (.xlsx/.csv) or a .zip with a spreadsheet and profile images"""
    upload = request.files.get('file')
    if upload is None or not upload.filename:
        raise WorkflowError("No file was provided")

    result = import_candidates(upload.filename, upload.read())
    return jsonify(result.to_dict())


# --- Nominations, votes and results ---

@admin_bp.get("/nominations")
def admin_nominations():
    category_id = optional_int(request.args.get('category_id'), 'category_id')
    return jsonify(nomination_summary(category_id))


@admin_bp.get("/votes")
def admin_votes():
    category_id = optional_int(request.args.get('category_id'), 'category_id')
    only_selected = (request.args.get('only_selected') or '').lower() == 'true'
    return jsonify(vote_summary(category_id, only_selected))


@admin_bp.get("/results")
def admin_results():
    return jsonify(category_results())


@admin_bp.post("/publish-winner")
def admin_publish_winner():
    data = json_body()
    announce = data.get('announce')
    category = publish_winner(
        data.get('category_id'),
        data['candidate_id'] if 'candidate_id' in data else UNSET,
        None if announce is None else parse_bool(announce)
    )
    return jsonify(category.to_dict())


@admin_bp.get("/presentation-data")
def admin_presentation_data():
    return jsonify(presentation_data())


# --- Member codes ---

@admin_bp.post("/import-codes")
def admin_import_codes():
    data = json_body()
    if 'codes' not in data:
        raise WorkflowError("Codes must be an array")
    return jsonify(import_codes(data['codes']))


@admin_bp.get("/codes")
def admin_codes():
    """Codes with the middle portion masked"""
    return jsonify(censored_codes())


@admin_bp.get("/codes/stats")
def admin_code_stats():
    return jsonify(code_stats())
