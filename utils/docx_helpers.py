# utils/docx_helpers.py
from typing import Dict, Iterable

from docx.document import Document
from docx.text.paragraph import Paragraph


def _replace_in_paragraphs(paragraphs: Iterable[Paragraph], mapping: Dict[str, str]) -> None:
    for p in paragraphs:
        for key, val in mapping.items():
            if key in p.text:
                for run in p.runs:
                    run.text = run.text.replace(key, val)


def replace_placeholders_in_document(doc: Document, mapping: Dict[str, str]) -> None:
    """
    Replace all occurrences of keys in `mapping` with their values
    across paragraphs, tables and section headers of a python-docx Document.

    A placeholder must sit inside a single run to be replaced.
    """
    _replace_in_paragraphs(doc.paragraphs, mapping)

    for table in doc.tables:
        for row in table.rows:
            for cell in row.cells:
                _replace_in_paragraphs(cell.paragraphs, mapping)

    for section in doc.sections:
        _replace_in_paragraphs(section.header.paragraphs, mapping)


def remaining_placeholders(doc: Document) -> list[str]:
    """
    Text of every paragraph still containing a "{{...}}" placeholder.
    """
    found = [p.text for p in doc.paragraphs if "{{" in p.text]
    for table in doc.tables:
        for row in table.rows:
            for cell in row.cells:
                found.extend(p.text for p in cell.paragraphs if "{{" in p.text)
    return found
