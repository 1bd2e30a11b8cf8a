from pathlib import Path

import pymupdf
import pytest

from helpers import pdf_bytes
from media_tools.engines.pdf_engine import merge_pdfs


def test_merge_keeps_every_page_in_order(tmp_path: Path):
    first = tmp_path / "a.pdf"
    second = tmp_path / "b.pdf"
    first.write_bytes(pdf_bytes((100, 100), (200, 200)))
    second.write_bytes(pdf_bytes((300, 300)))
    output = tmp_path / "merged.pdf"

    count = merge_pdfs([first, second], output)

    assert count == 3
    with pymupdf.open(output) as merged:
        widths = [round(page.rect.width) for page in merged]
    assert widths == [100, 200, 300]


def test_merge_rejects_non_pdf(tmp_path: Path):
    bogus = tmp_path / "bogus.pdf"
    bogus.write_bytes(b"definitely not a pdf")

    with pytest.raises(Exception):
        merge_pdfs([bogus], tmp_path / "merged.pdf")
