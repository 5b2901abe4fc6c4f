"""
Candidate import from a spreadsheet (.xlsx / .csv) or from a .zip archive
holding one spreadsheet plus profile images.

Images are matched to rows by base filename (case-insensitive) against the
candidate display name, with an optional "<marker> | " prefix stripped.
Row failures are collected and never abort the batch.
"""
import csv
import io
import os
import re
import logging
import zipfile
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from openpyxl import load_workbook
from sqlalchemy.exc import SQLAlchemyError

from models import db, Candidate
from uploads import IMAGE_EXTENSIONS, save_image, remove_image
from workflow import WorkflowError

logger = logging.getLogger(__name__)

SPREADSHEET_EXTENSIONS = {'.xlsx', '.csv'}

# Uncompressed size cap per archive entry
MAX_ARCHIVE_ENTRY_BYTES = 20 * 1024 * 1024

# Accepted header synonyms per canonical field, in priority order
HEADER_ALIASES = {
    'display_name': ('display_name', 'Nombre', 'Nombre del Candidato', 'Miembro'),
    'is_active': ('is_active', 'Activo'),
}

FALSE_VALUES = {'false', '0', 'no', 'n', 'inactive', 'inactivo', 'f'}

PREFIX_PATTERN = re.compile(r'^[^|]*\|\s*')


@dataclass
class CandidateRow:
    row_number: int
    display_name: str
    is_active: bool


@dataclass
class ImportResult:
    imported: List[Candidate] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    unmatched_images: List[str] = field(default_factory=list)
    total: int = 0
    images_linked: int = 0

    def to_dict(self) -> dict:
        payload = {
            "success": True,
            "imported": len(self.imported),
            "total": self.total,
            "images_linked": self.images_linked,
        }
        if self.errors:
            payload["errors"] = self.errors
        if self.unmatched_images:
            payload["unmatched_images"] = self.unmatched_images
        return payload


def _extension(filename: str) -> str:
    return os.path.splitext(filename or '')[1].lower()


def read_rows(filename: str, data: bytes) -> List[Dict[str, object]]:
    """Return spreadsheet data rows as header -> value dicts, skipping blank rows"""
    ext = _extension(filename)
    if ext == '.csv':
        text = data.decode('utf-8-sig', errors='replace')
        reader = csv.reader(io.StringIO(text))
        table = [row for row in reader]
    elif ext == '.xlsx':
        try:
            workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
        except Exception as e:
            logger.warning(f"⚠ Could not open workbook {filename}: {e}")
            raise WorkflowError("The file is empty or not valid")
        try:
            table = [list(row) for row in workbook.active.iter_rows(values_only=True)]
        finally:
            workbook.close()
    else:
        raise WorkflowError("Unsupported file type. Upload an .xlsx, .csv or .zip file")

    if not table:
        return []

    headers = [str(h).strip() if h is not None else '' for h in table[0]]
    rows = []
    for values in table[1:]:
        if all(v is None or str(v).strip() == '' for v in values):
            continue
        rows.append({headers[i]: values[i] for i in range(min(len(headers), len(values))) if headers[i]})
    return rows


def _lookup(row: Dict[str, object], field_name: str):
    lowered = {key.lower(): value for key, value in row.items()}
    for alias in HEADER_ALIASES[field_name]:
        value = lowered.get(alias.lower())
        if value is not None and str(value).strip() != '':
            return value
    return None


def parse_bool(value) -> bool:
    if value is None:
        return True
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return str(value).strip().lower() not in FALSE_VALUES


def parse_candidate_rows(rows: List[Dict[str, object]]) -> Tuple[List[CandidateRow], List[str]]:
    candidates = []
    errors = []
    for index, row in enumerate(rows):
        row_number = index + 2
        name = _lookup(row, 'display_name')
        if name is None:
            errors.append(f"Row {row_number}: missing candidate name")
            continue
        candidates.append(CandidateRow(
            row_number=row_number,
            display_name=str(name).strip(),
            is_active=parse_bool(_lookup(row, 'is_active'))
        ))
    return candidates, errors


def match_key(display_name: str) -> str:
    """Lower-cased display name without an optional "<marker> | " prefix"""
    return PREFIX_PATTERN.sub('', display_name, count=1).strip().lower()


def extract_archive(data: bytes) -> Tuple[str, bytes, Dict[str, Tuple[str, bytes]]]:
    """Pull the spreadsheet and loose images out of a zip archive"""
    try:
        archive = zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile:
        raise WorkflowError("The archive is not a valid zip file")

    spreadsheet = None
    images = {}
    with archive:
        for info in archive.infolist():
            if info.is_dir():
                continue
            basename = os.path.basename(info.filename)
            if not basename or basename.startswith('.') or '__MACOSX' in info.filename:
                continue
            if info.file_size > MAX_ARCHIVE_ENTRY_BYTES:
                raise WorkflowError(f"The archive entry {basename} is too large")
            ext = _extension(basename)
            if ext in SPREADSHEET_EXTENSIONS and spreadsheet is None:
                spreadsheet = (basename, archive.read(info))
            elif ext in IMAGE_EXTENSIONS:
                key = os.path.splitext(basename)[0].strip().lower()
                images.setdefault(key, (basename, archive.read(info)))

    if spreadsheet is None:
        raise WorkflowError("The archive does not contain an .xlsx or .csv spreadsheet")
    return spreadsheet[0], spreadsheet[1], images


def _find_image(display_name: str, images: Dict[str, Tuple[str, bytes]]) -> Optional[Tuple[str, bytes]]:
    return images.get(match_key(display_name)) or images.get(display_name.strip().lower())


def _upsert(row: CandidateRow, image_url: Optional[str]) -> Tuple[Candidate, Optional[str]]:
    """Create or update a candidate; returns it with the image URL it replaced"""
    candidate = Candidate.query.filter_by(display_name=row.display_name).first()
    if candidate is None:
        candidate = Candidate(display_name=row.display_name, is_active=row.is_active)
        db.session.add(candidate)
    else:
        candidate.is_active = row.is_active

    superseded = None
    if image_url is not None:
        superseded = candidate.profile_image_url
        candidate.profile_image_url = image_url
    return candidate, superseded


def import_candidates(filename: str, data: bytes) -> ImportResult:
    """Upsert candidates by display name from an uploaded spreadsheet or archive"""
    images = {}
    if _extension(filename) == '.zip':
        filename, data, images = extract_archive(data)
        logger.info(f"📦 Archive holds spreadsheet {filename} and {len(images)} images")

    rows = read_rows(filename, data)
    if not rows:
        raise WorkflowError("The file is empty or not valid")

    parsed, errors = parse_candidate_rows(rows)
    result = ImportResult(errors=errors, total=len(parsed))
    if not parsed:
        raise WorkflowError("No candidates could be processed", details=errors)

    for row in parsed:
        image = _find_image(row.display_name, images) if images else None
        if images and image is None:
            result.unmatched_images.append(f"Row {row.row_number}: no image found for {row.display_name}")

        image_url = save_image(image[1], image[0]) if image else None
        try:
            candidate, superseded = _upsert(row, image_url)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            remove_image(image_url)
            logger.warning(f"⚠ Could not import candidate {row.display_name}: {e}")
            result.errors.append(f"Row {row.row_number}: could not create candidate {row.display_name}")
            continue

        if superseded and superseded != image_url:
            remove_image(superseded)
        result.imported.append(candidate)
        if image_url:
            result.images_linked += 1

    logger.info(
        f"✅ Imported {len(result.imported)} of {result.total} candidates "
        f"({result.images_linked} images, {len(result.errors)} errors)"
    )
    return result
