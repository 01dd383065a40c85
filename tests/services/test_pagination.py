from __future__ import annotations

import pytest

from annotator.services.pagination import Page, offset_for, page_count


@pytest.mark.parametrize(
    "total, limit, expected",
    [(0, 10, 0), (1, 10, 1), (10, 10, 1), (21, 10, 3), (5, 1, 5)],
)
def test_page_count(total, limit, expected):
    assert page_count(total, limit) == expected


def test_offset_for_clamps_to_first_page():
    assert offset_for(1, 10) == 0
    assert offset_for(3, 10) == 20
    assert offset_for(0, 10) == 0


def test_page_envelope_counts():
    page = Page(items=["a", "b"], total=12, page=2, limit=5)
    assert page.count == 2
    assert page.pages == 3
