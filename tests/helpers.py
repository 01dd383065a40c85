from __future__ import annotations

import pathlib

SAMPLE_PDF = b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\ntrailer\n<< /Root 1 0 R >>\n%%EOF\n"


def stored_files(path: pathlib.Path) -> list[str]:
    """Names in a local upload directory, temp files included."""
    if not path.exists():
        return []
    return sorted(entry.name for entry in path.iterdir())
