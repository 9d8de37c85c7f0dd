"""
数据模型单元测试
"""
import unittest

from core.exceptions import ValidationError
from core.models import (
    CatalogImage,
    CrawlRequest,
    CrawlResult,
    CrawlTarget,
    Image,
    Source,
    SyncResult,
    derive_source_name,
    substitute_page,
    validate_http_url,
)


class TestHelpers(unittest.TestCase):
    def test_substitute_page_replaces_every_placeholder(self):
        self.assertEqual(
            substitute_page("https://a.test/{page}/?p={page}", 3),
            "https://a.test/3/?p=3",
        )

    def test_validate_http_url(self):
        self.assertEqual(validate_http_url("https://a.test/x"), "https://a.test/x")
        for bad in ["", "ftp://a.test", "a.test/page", "http://"]:
            with self.assertRaises(ValidationError):
                validate_http_url(bad)

    def test_derive_source_name_is_hostname(self):
        self.assertEqual(derive_source_name("https://www.site.test:8080/a?b=1"), "www.site.test")


class TestCrawlTarget(unittest.TestCase):
    def test_single(self):
        target = CrawlTarget.single("https://site.test/gallery")
        self.assertFalse(target.is_multi_page)
        self.assertEqual(target.fingerprint, "https://site.test/gallery")
        self.assertEqual(target.source_url, "https://site.test/gallery")
        self.assertEqual(target.page_urls(), ["https://site.test/gallery"])

    def test_paged(self):
        target = CrawlTarget.paged("https://site.test/list?page={page}", 1, 3)
        self.assertTrue(target.is_multi_page)
        self.assertEqual(target.fingerprint, "https://site.test/list?page={page}-1-3")
        self.assertEqual(target.source_url, "https://site.test/list?page={page}")
        self.assertEqual(target.page_urls(), [
            "https://site.test/list?page=1",
            "https://site.test/list?page=2",
            "https://site.test/list?page=3",
        ])

    def test_paged_single_page_range(self):
        target = CrawlTarget.paged("https://site.test/p/{page}", 4, 4)
        self.assertEqual(target.page_urls(), ["https://site.test/p/4"])

    def test_first_url_uses_page_one(self):
        target = CrawlTarget.paged("https://site.test/p/{page}", 3, 5)
        self.assertEqual(target.first_url, "https://site.test/p/1")

    def test_paged_validation(self):
        with self.assertRaises(ValidationError):
            CrawlTarget.paged("https://site.test/p/{page}", 5, 2)
        with self.assertRaises(ValidationError):
            CrawlTarget.paged("https://site.test/p/{page}", -1, 2)
        with self.assertRaises(ValidationError):
            CrawlTarget.paged("not-a-url/{page}", 1, 2)


class TestCrawlRequest(unittest.TestCase):
    def test_camel_case_fields(self):
        request = CrawlRequest(**{"urlPattern": "https://s.test/{page}", "startPage": 1, "endPage": 2})
        self.assertTrue(request.is_multi_page)
        self.assertEqual(request.to_target().fingerprint, "https://s.test/{page}-1-2")

    def test_multi_page_wins_over_url(self):
        request = CrawlRequest(url="https://other.test", url_pattern="https://s.test/{page}", start_page=1, end_page=1)
        self.assertTrue(request.to_target().is_multi_page)

    def test_incomplete_pattern_falls_back_to_url(self):
        request = CrawlRequest(url="https://s.test", url_pattern="https://s.test/{page}", start_page=1)
        self.assertEqual(request.to_target().fingerprint, "https://s.test")

    def test_missing_everything(self):
        with self.assertRaises(ValidationError):
            CrawlRequest().to_target()


class TestImageAndSource(unittest.TestCase):
    def setUp(self):
        self.source = Source.for_target(CrawlTarget.paged("https://pics.test/g/{page}", 1, 2))

    def test_source_for_target(self):
        self.assertEqual(self.source.url, "https://pics.test/g/{page}")
        self.assertEqual(self.source.name, "pics.test")
        self.assertEqual(len(self.source.id), 36)

    def test_harvested_image(self):
        image = Image.harvested("https://pics.test/a.jpg", self.source)
        self.assertTrue(image.id.startswith("scrape_"))
        self.assertEqual(image.alt, "Image from pics.test")
        self.assertEqual(image.source, "pics.test")
        self.assertEqual(image.author, "WebScraper")
        self.assertEqual(image.source_id, self.source.id)

    def test_image_ids_are_unique(self):
        ids = {Image.harvested("https://pics.test/a.jpg", self.source).id for _ in range(50)}
        self.assertEqual(len(ids), 50)

    def test_archived(self):
        image = Image.harvested("https://pics.test/a.jpg", self.source)
        archived = image.archived()
        self.assertIsNone(archived.source_id)
        self.assertEqual(archived.source, "(Archived) pics.test")
        self.assertEqual(archived.id, image.id)
        self.assertEqual(image.source_id, self.source.id)

    def test_to_dict_uses_camel_case(self):
        image = CatalogImage(**Image.harvested("https://pics.test/a.jpg", self.source).model_dump(), is_favorited=True)
        data = image.to_dict()
        self.assertIn("sourceId", data)
        self.assertTrue(data["isFavorited"])

        result = CrawlResult(new_source=self.source, new_images=[image])
        self.assertEqual(set(result.to_dict()), {"newSource", "newImages"})
        self.assertEqual(SyncResult().to_dict(), {"newImages": []})


if __name__ == "__main__":
    unittest.main()
