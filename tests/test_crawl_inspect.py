"""Tests for crawl folder inspection."""

import pytest

from site_spider.crawl import Crawler
from site_spider.crawl_inspect import inspect_crawl
from site_spider.manifest import artifact_paths
from site_spider.urls import url_hash

from conftest import FakeFetcher


def test_inspect_complete_crawl(make_config, small_site):
    result = Crawler(make_config(), fetcher=FakeFetcher(small_site)).crawl()

    inspected = inspect_crawl(result.output_path)

    assert inspected.crawl_id == result.crawl_id
    assert inspected.complete is True
    assert inspected.has_state is False
    assert inspected.pages == 5
    assert inspected.errors == 0
    assert inspected.referenced_files == 15
    assert inspected.missing_files == 0
    assert inspected.pages_by_type["product"] == 2
    assert list(inspected.pages_by_type)[0] == "product"


def test_inspect_reports_missing_artifacts(make_config, small_site):
    result = Crawler(make_config(), fetcher=FakeFetcher(small_site)).crawl()
    paths = artifact_paths(
        result.output_path / "pages", url_hash("https://example.com/about")
    )
    paths.text.unlink()

    inspected = inspect_crawl(result.output_path)

    assert inspected.missing_files == 1
    assert inspected.missing_by_kind == {"txt": 1}
    assert inspected.missing_paths_sample == [f"pages/{paths.text.name}"]
    assert inspected.to_dict()["missing_files"] == 1


def test_inspect_requires_manifest(tmp_path):
    with pytest.raises(FileNotFoundError):
        inspect_crawl(tmp_path)
