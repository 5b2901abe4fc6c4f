"""Read-only aggregation of nominations and votes for the admin and public views"""
import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func

from models import db, Category, Candidate, CategoryCandidate, Nomination, Vote

logger = logging.getLogger(__name__)


def vote_counts() -> Dict[Tuple[int, int], int]:
    rows = db.session.query(
        Vote.category_id,
        Vote.candidate_id,
        func.count(Vote.id)
    ).group_by(Vote.category_id, Vote.candidate_id).all()
    return {(r[0], r[1]): r[2] for r in rows}


def active_categories() -> List[Category]:
    return Category.query.filter_by(is_active=True).order_by(Category.order, Category.id).all()


def finalists(category: Category) -> List[Candidate]:
    return [cc.candidate for cc in category.category_candidates]


def implicit_winner(candidates: List[dict]) -> Optional[dict]:
    """Highest vote count wins; ties go to the lowest candidate id. No votes, no winner."""
    best = None
    for entry in candidates:
        if entry['votes'] <= 0:
            continue
        if best is None or (entry['votes'], -entry['candidate_id']) > (best['votes'], -best['candidate_id']):
            best = entry
    return best


def category_results() -> List[dict]:
    counts = vote_counts()
    results = []
    for category in active_categories():
        candidates = [
            {
                "candidate_id": candidate.id,
                "candidate_name": candidate.display_name,
                "profile_image_url": candidate.profile_image_url,
                "votes": counts.get((category.id, candidate.id), 0)
            }
            for candidate in finalists(category)
        ]
        candidates.sort(key=lambda c: (-c['votes'], c['candidate_id']))
        leader = implicit_winner(candidates)
        results.append({
            "category_id": category.id,
            "category_name": category.name,
            "category_description": category.short_description,
            "candidates": candidates,
            "leading_candidate_id": leader['candidate_id'] if leader else None,
            "winner_candidate_id": category.winner_candidate_id,
            "winner_announced": category.winner_announced
        })
    return results


def _announced_categories() -> List[Category]:
    return [
        category for category in active_categories()
        if category.winner_candidate_id is not None and category.winner_announced
    ]


def published_winners() -> List[dict]:
    """Winners visible to the public: a winner is set and announced"""
    counts = vote_counts()
    winners = []
    for category in _announced_categories():
        winner = category.winner_candidate
        winners.append({
            "category_id": category.id,
            "category_name": category.name,
            "category_description": category.short_description,
            "candidate_id": winner.id,
            "candidate_name": winner.display_name,
            "profile_image_url": winner.profile_image_url,
            "votes": counts.get((category.id, winner.id), 0),
            "announced": True
        })
    return winners


def presentation_data() -> List[dict]:
    slides = []
    for category in _announced_categories():
        winner = category.winner_candidate
        slides.append({
            "category_id": category.id,
            "category_name": category.name,
            "category_description": category.short_description,
            "nominees": [
                {
                    "candidate_id": candidate.id,
                    "candidate_name": candidate.display_name,
                    "profile_image_url": candidate.profile_image_url
                }
                for candidate in finalists(category)
            ],
            "winner": {
                "candidate_id": winner.id,
                "candidate_name": winner.display_name,
                "profile_image_url": winner.profile_image_url
            }
        })
    return slides


def nomination_summary(category_id: Optional[int] = None) -> List[dict]:
    """Nominations grouped by (category, candidate), most nominated first"""
    count = func.count(Nomination.id).label('count')
    first = func.min(Nomination.created_at).label('first_nomination')
    query = db.session.query(
        Nomination.category_id,
        Category.name,
        Nomination.candidate_id,
        Candidate.display_name,
        Candidate.profile_image_url,
        count,
        first
    ).join(Category, Category.id == Nomination.category_id) \
     .join(Candidate, Candidate.id == Nomination.candidate_id)

    if category_id is not None:
        query = query.filter(Nomination.category_id == category_id)

    rows = query.group_by(
        Nomination.category_id, Category.name, Nomination.candidate_id,
        Candidate.display_name, Candidate.profile_image_url
    ).order_by(count.desc(), first.asc()).all()

    return [
        {
            "category_id": r[0],
            "category_name": r[1],
            "candidate_id": r[2],
            "candidate_name": r[3],
            "profile_image_url": r[4],
            "count": r[5],
            "first_nomination": r[6].isoformat() if r[6] else None
        }
        for r in rows
    ]


def vote_summary(category_id: Optional[int] = None, only_selected: bool = False) -> List[dict]:
    """Votes grouped by (category, candidate) with the category's winner fields"""
    count = func.count(Vote.id).label('count')
    first = func.min(Vote.created_at).label('first_vote')
    query = db.session.query(
        Vote.category_id,
        Category.name,
        Category.short_description,
        Category.winner_candidate_id,
        Category.winner_announced,
        Vote.candidate_id,
        Candidate.display_name,
        Candidate.profile_image_url,
        count,
        first
    ).join(Category, Category.id == Vote.category_id) \
     .join(Candidate, Candidate.id == Vote.candidate_id)

    if only_selected:
        query = query.join(
            CategoryCandidate,
            (CategoryCandidate.category_id == Vote.category_id)
            & (CategoryCandidate.candidate_id == Vote.candidate_id)
        )
    if category_id is not None:
        query = query.filter(Vote.category_id == category_id)

    rows = query.group_by(
        Vote.category_id, Category.name, Category.short_description,
        Category.winner_candidate_id, Category.winner_announced,
        Vote.candidate_id, Candidate.display_name, Candidate.profile_image_url
    ).order_by(count.desc(), first.asc()).all()

    return [
        {
            "category_id": r[0],
            "category_name": r[1],
            "category_description": r[2],
            "category_winner_candidate_id": r[3],
            "category_winner_announced": r[4],
            "candidate_id": r[5],
            "candidate_name": r[6],
            "profile_image_url": r[7],
            "count": r[8],
            "first_vote": r[9].isoformat() if r[9] else None
        }
        for r in rows
    ]
