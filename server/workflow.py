"""
Event-stage gated workflow: code validation, nomination and vote submission,
finalist selection and winner publication.

All checks run before any write. Multi-row submissions are committed in a
single transaction together with the member code flag, so a code can only be
consumed once even when two requests race on it.
"""
import logging
from typing import List, Optional, Tuple

from sqlalchemy import update

from models import (
    db, EVENT_STATES, EventState, Category, Candidate, CategoryCandidate,
    Nomination, Vote, MemberCode
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_FINALISTS = 5

# Sentinel for "field not sent" where None is a meaningful value
UNSET = object()

CODE_INVALID = "The code entered is not valid. Check that it is written correctly."
CODE_USED_NOMINATION = "This code has already been used to nominate. Each code can only be used once."
CODE_USED_VOTING = "This code has already been used to vote. Each code can only be used once."


def error_body(message: str, details: Optional[list] = None) -> dict:
    """Error payload; clients read either `message` or `error`"""
    payload = {"success": False, "message": message, "error": message}
    if details:
        payload["errors"] = details
    return payload


class WorkflowError(Exception):
    """A domain rule was violated; rendered as a JSON error response"""

    def __init__(self, message: str, status_code: int = 400, details: Optional[list] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details

    def to_dict(self) -> dict:
        return error_body(self.message, self.details)


def normalize_code(code) -> str:
    return str(code or '').strip().upper()


# --- Event state -----------------------------------------------------------

def get_event_state() -> EventState:
    """Return the singleton event state row, creating it on first use"""
    state = db.session.get(EventState, 1) or EventState.query.order_by(EventState.id).first()
    if state is None:
        state = EventState(id=1, state='SETUP', winners_visible=False)
        db.session.add(state)
        db.session.commit()
        logger.info("✅ Event state initialized: SETUP")
    return state


def set_event_state(state: Optional[str] = None, winners_visible: Optional[bool] = None) -> EventState:
    if state is not None and state not in EVENT_STATES:
        raise WorkflowError("Invalid event state")

    event_state = get_event_state()
    if state is not None:
        event_state.state = state
    if winners_visible is not None:
        event_state.winners_visible = bool(winners_visible)
    db.session.commit()
    logger.info(f"✅ Event state set to {event_state.state} (winners_visible={event_state.winners_visible})")
    return event_state


# --- Code validation -------------------------------------------------------

def _rejected(message: str) -> dict:
    return {"valid": False, "message": message, "error": message}


def validate_code(code) -> dict:
    """Tell the public client whether a code can act in the current stage. Never mutates."""
    normalized = normalize_code(code)
    if not normalized:
        raise WorkflowError("Code is required")

    member_code = MemberCode.query.filter_by(code=normalized).first()
    if member_code is None:
        return _rejected("The code entered does not exist. Check that it is written correctly.")

    stage = get_event_state().state
    if stage == 'NOMINATIONS' and member_code.used_in_nomination:
        return _rejected(CODE_USED_NOMINATION)
    if stage == 'VOTING' and member_code.used_in_voting:
        return _rejected(CODE_USED_VOTING)
    if stage == 'SETUP':
        return _rejected("The event has not started yet. Please wait for the nomination stage to open.")
    if stage == 'CLOSED':
        return _rejected("The event has finished. Nominations and votes are no longer accepted.")

    return {"valid": True, "state": stage}


# --- Submissions -----------------------------------------------------------

def _parse_pairs(entries) -> List[Tuple[int, int]]:
    if not isinstance(entries, list) or not entries:
        raise WorkflowError("Missing required data")

    pairs = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise WorkflowError("Invalid selection entries")
        try:
            category_id = int(entry.get('category_id'))
            candidate_id = int(entry.get('candidate_id'))
        except (TypeError, ValueError):
            raise WorkflowError("Invalid selection entries")
        pairs.append((category_id, candidate_id))
    return pairs


def _load_unused_code(code, flag: str) -> MemberCode:
    member_code = MemberCode.query.filter_by(code=normalize_code(code)).first()
    if member_code is None:
        raise WorkflowError(CODE_INVALID)
    if getattr(member_code, flag):
        raise WorkflowError(CODE_USED_NOMINATION if flag == 'used_in_nomination' else CODE_USED_VOTING)
    return member_code


def _check_covers_active_categories(pairs: List[Tuple[int, int]], action: str, past: str) -> None:
    active_ids = [row.id for row in Category.query.filter_by(is_active=True).all()]

    if len(pairs) != len(active_ids):
        raise WorkflowError(
            f"You must complete every category. You {past} in {len(pairs)} of {len(active_ids)} categories."
        )

    submitted = [category_id for category_id, _ in pairs]
    if len(set(submitted)) != len(submitted):
        raise WorkflowError("Each category can only be included once.")

    missing = set(active_ids) - set(submitted)
    if missing:
        plural = "categories are" if len(missing) > 1 else "category is"
        raise WorkflowError(
            f"{len(missing)} {plural} still missing. You must {action} in every active category."
        )


def _check_categories_and_candidates(pairs: List[Tuple[int, int]]) -> None:
    for category_id, candidate_id in pairs:
        category = db.session.get(Category, category_id)
        if category is None or not category.is_active:
            raise WorkflowError("One of the selected categories is not valid or is inactive.")

        candidate = db.session.get(Candidate, candidate_id)
        if candidate is None or not candidate.is_active:
            raise WorkflowError("One of the selected candidates is not valid or is inactive.")


def _consume_code(member_code_id: int, flag: str, message: str) -> None:
    """Flip the code flag with a conditional update; only one transaction can win"""
    column = getattr(MemberCode, flag)
    result = db.session.execute(
        update(MemberCode)
        .where(MemberCode.id == member_code_id, column.is_(False))
        .values({flag: True})
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise WorkflowError(message)


def _commit_submission(member_code: MemberCode, flag: str, message: str, rows: list) -> None:
    try:
        _consume_code(member_code.id, flag, message)
        db.session.add_all(rows)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def submit_nominations(code, entries, require_all: bool = True) -> int:
    """Record nominations for a code. Returns the number of rows written."""
    if not normalize_code(code):
        raise WorkflowError("Missing required data")
    pairs = _parse_pairs(entries)

    if get_event_state().state != 'NOMINATIONS':
        raise WorkflowError("Nominations cannot be made at this time. The event is not in the nomination stage.")

    member_code = _load_unused_code(code, 'used_in_nomination')
    if require_all:
        _check_covers_active_categories(pairs, 'nominate', 'nominated')
    _check_categories_and_candidates(pairs)

    rows = [Nomination(category_id=category_id, candidate_id=candidate_id) for category_id, candidate_id in pairs]
    _commit_submission(member_code, 'used_in_nomination', CODE_USED_NOMINATION, rows)
    logger.info(f"✅ {len(rows)} nominations recorded for code {member_code.id}")
    return len(rows)


def submit_votes(code, entries) -> int:
    """Record one vote per active category for a code. All or nothing."""
    if not normalize_code(code):
        raise WorkflowError("Missing required data")
    pairs = _parse_pairs(entries)

    if get_event_state().state != 'VOTING':
        raise WorkflowError("Votes cannot be cast at this time. The event is not in the voting stage.")

    member_code = _load_unused_code(code, 'used_in_voting')
    _check_covers_active_categories(pairs, 'vote', 'voted')
    _check_categories_and_candidates(pairs)

    for category_id, candidate_id in pairs:
        finalist = CategoryCandidate.query.filter_by(
            category_id=category_id, candidate_id=candidate_id
        ).first()
        if finalist is None:
            raise WorkflowError(
                "The selected candidate is not available for this category. "
                "You can only vote for the preselected candidates."
            )

    rows = [Vote(category_id=category_id, candidate_id=candidate_id) for category_id, candidate_id in pairs]
    _commit_submission(member_code, 'used_in_voting', CODE_USED_VOTING, rows)
    logger.info(f"✅ {len(rows)} votes recorded for code {member_code.id}")
    return len(rows)


# --- Admin operations ------------------------------------------------------

def select_finalists(category_id, candidate_ids, max_candidates: Optional[int] = None) -> List[int]:
    """Replace the finalist set of a category. Last write wins."""
    if not category_id or not isinstance(candidate_ids, list):
        raise WorkflowError("Invalid required data")

    try:
        category_id = int(category_id)
        requested = [int(candidate_id) for candidate_id in candidate_ids]
    except (TypeError, ValueError):
        raise WorkflowError("Invalid required data")

    unique_ids = list(dict.fromkeys(requested))
    limit = max_candidates or DEFAULT_MAX_FINALISTS
    if len(unique_ids) > limit:
        raise WorkflowError(f"Only up to {limit} candidates can be selected per category")

    category = db.session.get(Category, category_id)
    if category is None:
        raise WorkflowError("Category not found", 404)

    if unique_ids:
        found = {c.id for c in Candidate.query.filter(Candidate.id.in_(unique_ids)).all()}
        unknown = [candidate_id for candidate_id in unique_ids if candidate_id not in found]
        if unknown:
            raise WorkflowError(f"Unknown candidates: {', '.join(str(u) for u in unknown)}")

    try:
        CategoryCandidate.query.filter_by(category_id=category_id).delete()
        db.session.add_all([
            CategoryCandidate(category_id=category_id, candidate_id=candidate_id)
            for candidate_id in unique_ids
        ])
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(f"✅ Category {category_id} finalists set to {unique_ids}")
    return unique_ids


def publish_winner(category_id, candidate_id=UNSET, announce: Optional[bool] = None) -> Category:
    """Set or clear a category winner and toggle its announcement"""
    if not category_id:
        raise WorkflowError("Category is required")

    try:
        category_id = int(category_id)
        if candidate_id is not UNSET and candidate_id is not None:
            candidate_id = int(candidate_id)
    except (TypeError, ValueError):
        raise WorkflowError("Invalid identifiers")

    category = db.session.get(Category, category_id)
    if category is None:
        raise WorkflowError("Category not found", 404)

    if candidate_id is None:
        category.winner_candidate_id = None
        category.winner_announced = False
    elif candidate_id is not UNSET:
        candidate = db.session.get(Candidate, candidate_id)
        if candidate is None:
            raise WorkflowError("Candidate not found")
        category.winner_candidate_id = candidate.id

    if announce is not None and candidate_id is not None:
        if announce and category.winner_candidate_id is None:
            db.session.rollback()
            raise WorkflowError("A winner must be set before it can be announced")
        category.winner_announced = bool(announce)

    db.session.commit()
    logger.info(
        f"✅ Category {category.id} winner={category.winner_candidate_id} announced={category.winner_announced}"
    )
    return category
