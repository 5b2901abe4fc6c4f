"""Member code import, censored listing and usage statistics"""
import logging
import math
import re
from typing import List

from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError

from models import db, MemberCode
from workflow import WorkflowError, normalize_code

logger = logging.getLogger(__name__)

MAX_CODE_LENGTH = MemberCode.__table__.c.code.type.length

INSERT_BUILDERS = {
    'postgresql': postgresql_insert,
    'sqlite': sqlite_insert,
}

VISIBLE_START_RATIO = 0.3
VISIBLE_END_RATIO = 0.2


def parse_codes(raw) -> List[str]:
    """Accept a list of codes or a newline/comma separated block of text"""
    if isinstance(raw, str):
        raw = re.split(r'[\s,;]+', raw)
    if not isinstance(raw, list):
        raise WorkflowError("Codes must be an array")

    codes = []
    for value in raw:
        if not isinstance(value, (str, int)):
            continue
        code = normalize_code(value)
        if code and len(code) <= MAX_CODE_LENGTH:
            codes.append(code)
    return list(dict.fromkeys(codes))


def import_codes(raw) -> dict:
    """Insert new codes, skipping any that already exist"""
    codes = parse_codes(raw)
    if not codes:
        raise WorkflowError("There are no valid codes")

    existing = set()
    for start in range(0, len(codes), 500):
        chunk = codes[start:start + 500]
        existing.update(
            row.code for row in MemberCode.query.filter(MemberCode.code.in_(chunk)).all()
        )

    imported = 0
    try:
        for code in codes:
            if code not in existing:
                imported += _insert_if_absent(code)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(f"✅ Imported {imported} of {len(codes)} member codes")
    return {"success": True, "imported": imported, "total": len(codes)}


def _insert_if_absent(code: str) -> int:
    """Insert one code; a code added concurrently by another import is skipped"""
    build_insert = INSERT_BUILDERS.get(db.engine.dialect.name)
    if build_insert is not None:
        result = db.session.execute(
            build_insert(MemberCode)
            .values(code=code, used_in_nomination=False, used_in_voting=False)
            .on_conflict_do_nothing(index_elements=['code'])
        )
        return result.rowcount

    try:
        with db.session.begin_nested():
            db.session.add(MemberCode(code=code))
        return 1
    except IntegrityError:
        return 0


def censor_code(code: str) -> str:
    """Show the first 30% and the last 20% of a code, mask the rest"""
    length = len(code)
    visible_start = math.floor(length * VISIBLE_START_RATIO)
    visible_end = math.floor(length * VISIBLE_END_RATIO)
    hidden = length - visible_start - visible_end
    return code[:visible_start] + '*' * hidden + code[length - visible_end:]


def censored_codes() -> List[dict]:
    rows = MemberCode.query.order_by(MemberCode.code).all()
    return [dict(row.to_dict(), code=censor_code(row.code)) for row in rows]


def code_stats() -> dict:
    total = MemberCode.query.count()
    used_in_nomination = MemberCode.query.filter_by(used_in_nomination=True).count()
    used_in_voting = MemberCode.query.filter_by(used_in_voting=True).count()
    unused = MemberCode.query.filter_by(used_in_nomination=False, used_in_voting=False).count()
    return {
        "total": total,
        "used_in_nomination": used_in_nomination,
        "used_in_voting": used_in_voting,
        "unused": unused
    }
