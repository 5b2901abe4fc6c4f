"""
Export member codes to a text file.

Usage (from the server directory):
    python -m tools.export_member_codes
"""
import os
from datetime import datetime

from models import MemberCode

SERVER_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def ensure_directory(path: str) -> None:
    if path:
        os.makedirs(path, exist_ok=True)


def yes_no(value) -> str:
    return "yes" if value else "no"


def export_member_codes(output_file: str) -> int:
    """Write the full, uncensored member code list with usage flags for distribution.

    Reads whichever database the app is configured for; needs an app context.
    """
    rows = MemberCode.query.order_by(MemberCode.code).all()

    ensure_directory(os.path.dirname(output_file))

    timestamp = datetime.utcnow().strftime("%Y-%m-%d %H:%M:%S UTC")
    lines = []
    lines.append(f"Exported: {timestamp}")
    lines.append("Columns: ID | Code | Nominated | Voted")
    lines.append("-" * 48)

    for r in rows:
        line = f"{r.id:>4} | {r.code:<20} | {yes_no(r.used_in_nomination):<9} | {yes_no(r.used_in_voting)}"
        lines.append(line)

    content = "\n".join(lines) + "\n"
    with open(output_file, "w", encoding="utf-8") as f:
        f.write(content)

    return len(rows)


if __name__ == "__main__":
    from app import create_app

    project_root = os.path.dirname(SERVER_DIR)
    output_file = os.path.join(project_root, "admin", "member_codes.txt")

    app = create_app()
    with app.app_context():
        count = export_member_codes(output_file)
    print(f"Exported {count} member codes to {output_file}")
