"""Tests for the JSON result store."""

import json

import pytest

from siteaudit.exceptions import PersistenceError
from siteaudit.protocols import Mark, MarkUsage, PageScanResult
from siteaudit.storage import JsonResultStore
from siteaudit.utils import slugify_url


def make_result(url="http://www.test.com/about?x=1", scan_id="scan-1"):
    mark = Mark(machine_name="broken-link", name="Broken link")
    return PageScanResult(
        url=url,
        scan_id=scan_id,
        title="About",
        usages=[MarkUsage("broken-link", 2, ("http://a.test/ (404)", "http://b.test/ (500)"), mark)],
    )


@pytest.mark.unit
class TestJsonResultStore:
    @pytest.mark.asyncio
    async def test_save_writes_result(self, tmp_path):
        store = JsonResultStore(output_dir=tmp_path)
        result = make_result()

        await store.save(result)

        path = store.path_for(result)
        assert path.parent == tmp_path / "scan-1"
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["url"] == "http://www.test.com/about?x=1"
        assert data["marks"] == [
            {
                "machine_name": "broken-link",
                "name": "Broken link",
                "count": 2,
                "details": ["http://a.test/ (404)", "http://b.test/ (500)"],
            }
        ]
        assert list(path.parent.glob("*.tmp")) == []

    @pytest.mark.asyncio
    async def test_save_overwrites_previous_result(self, tmp_path):
        store = JsonResultStore(output_dir=tmp_path)
        await store.save(make_result())
        updated = make_result()
        updated.usages.clear()
        await store.save(updated)

        assert json.loads(store.path_for(updated).read_text())["marks"] == []

    @pytest.mark.asyncio
    async def test_unwritable_location_raises_persistence_error(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("file in the way")
        store = JsonResultStore(output_dir=blocker)

        with pytest.raises(PersistenceError):
            await store.save(make_result())

    def test_distinct_urls_get_distinct_files(self, tmp_path):
        store = JsonResultStore(output_dir=tmp_path)
        first = store.path_for(make_result(url="http://www.test.com/a?b"))
        second = store.path_for(make_result(url="http://www.test.com/a-b"))
        assert first != second

    def test_slugify_url(self):
        assert slugify_url("http://www.test.com/").startswith("www-test-com-")
        assert slugify_url("https://x.test/") != slugify_url("http://x.test/")
