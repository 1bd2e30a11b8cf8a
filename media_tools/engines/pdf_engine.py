from __future__ import annotations

from pathlib import Path

import pymupdf


def merge_pdfs(sources: list[Path], output: Path) -> int:
    """Append every page of ``sources`` in order into ``output``. Returns the page count."""
    merged = pymupdf.open()
    try:
        for source in sources:
            with pymupdf.open(source, filetype="pdf") as document:
                merged.insert_pdf(document)
        merged.save(output)
        return merged.page_count
    finally:
        merged.close()
