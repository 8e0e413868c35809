"""
Tests for page request clamping and page metadata
"""
from tesoreria.utils.pagination import Page, PageRequest


class TestPagination:
    def test_clamps(self):
        req = PageRequest.build(page=0, limit=500, max_limit=200)
        assert req.page == 1
        assert req.limit == 200
        assert req.offset == 0

    def test_pages(self):
        page = Page(items=[], total=101, page=2, limit=50)
        assert page.pagination() == {"total": 101, "page": 2, "limit": 50, "pages": 3}
