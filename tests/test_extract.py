"""Tests for HTML extraction: text, metadata, page type, links, JSON-LD."""

from site_spider.extract import (
    classify_page,
    extract_json_ld,
    extract_links,
    extract_metadata,
    extract_page,
    extract_text,
    render_markdown,
)
from site_spider.models import PageMetadata, PageType


class TestExtractText:
    def test_removes_navigation_and_decodes_entities(self):
        text = extract_text(
            "<html><body><nav>skip</nav><p>Hello &amp; welcome</p></body></html>"
        )
        assert "Hello & welcome" in text
        assert "skip" not in text

    def test_drops_scripts_styles_and_comments(self):
        html = """
        <html><head><style>body { color: red; }</style>
        <script>var tracking = true;</script></head>
        <body><!-- hidden note --><header>Site header</header>
        <p>Visible</p><footer>Copyright</footer></body></html>
        """
        text = extract_text(html)
        assert text == "Visible"

    def test_block_tags_and_breaks_become_lines(self):
        text = extract_text("<div><h1>Title</h1><p>a<br>b</p><ul><li>one</li><li>two</li></ul></div>")
        assert text.split("\n") == ["Title", "a", "b", "one", "two"]

    def test_inline_tags_keep_words_apart_and_whitespace_collapses(self):
        text = extract_text("<p>Hello   <b>bold</b>\t\tworld</p>")
        assert text == "Hello bold world"

    def test_numeric_entities(self):
        assert extract_text("<p>&#169; &#x41;</p>") == "© A"

    def test_empty_and_broken_input(self):
        assert extract_text("") == ""
        text = extract_text("<p>unclosed <div>tags")
        assert "unclosed" in text
        assert "tags" in text


class TestExtractMetadata:
    def test_open_graph_preferred(self):
        html = """
        <html lang="en-GB"><head>
          <title>Plain title</title>
          <meta property="og:title" content="OG title">
          <meta name="description" content="Plain description">
          <meta property="og:description" content="OG description">
          <meta property="og:image" content="https://example.com/img.png">
          <meta property="og:type" content="article">
          <meta name="author" content="Jane Doe">
          <meta property="article:published_time" content="2024-01-02">
          <meta itemprop="datePublished" content="2023-12-31">
          <meta itemprop="dateModified" content="2024-02-03">
        </head><body></body></html>
        """
        meta = extract_metadata(html, "https://example.com/post")
        assert meta.title == "OG title"
        assert meta.description == "OG description"
        assert meta.og_image == "https://example.com/img.png"
        assert meta.og_type == "article"
        assert meta.language == "en-GB"
        assert meta.author == "Jane Doe"
        assert meta.published_date == "2024-01-02"
        assert meta.modified_date == "2024-02-03"

    def test_falls_back_to_title_and_meta_description(self):
        html = (
            "<html><head><title> Acme Corp </title>"
            '<meta name="description" content="We make anvils"></head></html>'
        )
        meta = extract_metadata(html, "https://example.com/")
        assert meta.title == "Acme Corp"
        assert meta.description == "We make anvils"
        assert meta.language is None
        assert meta.canonical_url is None

    def test_canonical_attribute_order_does_not_matter(self):
        rel_first = '<link rel="canonical" href="https://example.com/a">'
        href_first = '<link href="https://example.com/b" rel="canonical">'
        assert extract_metadata(rel_first, "").canonical_url == "https://example.com/a"
        assert extract_metadata(href_first, "").canonical_url == "https://example.com/b"

    def test_empty_document(self):
        assert extract_metadata("", "https://example.com/") == PageMetadata()


class TestClassifyPage:
    def test_about_path(self):
        assert classify_page("https://example.com/about-us", "", PageMetadata()) is (
            PageType.ABOUT
        )

    def test_homepage(self):
        assert classify_page("https://example.com/", "", PageMetadata()) is (
            PageType.HOMEPAGE
        )
        assert classify_page("https://example.com", "", PageMetadata()) is (
            PageType.HOMEPAGE
        )

    def test_other(self):
        meta = PageMetadata(title="Hello")
        assert classify_page("https://example.com/random", "", meta) is PageType.OTHER

    def test_title_keyword(self):
        meta = PageMetadata(title="Get in touch with us")
        assert classify_page("https://example.com/x", "", meta) is PageType.CONTACT

    def test_fixed_order_resolves_ambiguity(self):
        """Earlier categories win when several match."""
        meta = PageMetadata(title="About Us and Our Products")
        assert classify_page("https://example.com/x", "", meta) is PageType.ABOUT
        assert classify_page(
            "https://example.com/team/products", "", PageMetadata()
        ) is PageType.TEAM
        assert classify_page(
            "https://example.com/blog/contact", "", PageMetadata()
        ) is PageType.NEWS

    def test_article_og_type_is_news(self):
        meta = PageMetadata(title="Quarterly results", og_type="article")
        assert classify_page("https://example.com/x", "", meta) is PageType.NEWS

    def test_legal(self):
        assert classify_page(
            "https://example.com/privacy", "", PageMetadata()
        ) is PageType.LEGAL


class TestExtractLinks:
    def test_internal_and_external(self):
        html = (
            '<a href="/b">b</a>'
            '<a href="https://example.com/c">c</a>'
            '<a href="https://other.com/d">d</a>'
        )
        links = extract_links(html, "https://example.com/a")
        assert set(links.internal) == {"https://example.com/b", "https://example.com/c"}
        assert links.external == ["https://other.com/d"]

    def test_skips_non_navigable_links(self):
        html = (
            '<a href="#top">top</a>'
            '<a href="javascript:void(0)">js</a>'
            '<a href="mailto:hi@example.com">mail</a>'
            '<a href="tel:+15551234">call</a>'
            '<a href="data:text/plain,hi">data</a>'
            '<a href="ftp://example.com/file">ftp</a>'
            "<a>no href</a>"
        )
        links = extract_links(html, "https://example.com/")
        assert links.internal == []
        assert links.external == []

    def test_www_is_same_site_and_internal_links_are_normalized(self):
        html = (
            '<a href="https://www.example.com/x/?b=2&a=1#frag">x</a>'
            '<a href="/x?a=1&b=2">x again</a>'
        )
        links = extract_links(html, "https://example.com/")
        assert links.internal == ["https://www.example.com/x?a=1&b=2", "https://example.com/x?a=1&b=2"]

    def test_deduplicates_in_order(self):
        html = '<a href="/b">1</a><a href="/a">2</a><a href="/b#again">3</a>'
        links = extract_links(html, "https://example.com/")
        assert links.internal == ["https://example.com/b", "https://example.com/a"]

    def test_base_href_is_honoured(self):
        html = '<head><base href="/docs/"></head><a href="intro">intro</a>'
        links = extract_links(html, "https://example.com/index")
        assert links.internal == ["https://example.com/docs/intro"]


class TestExtractJsonLd:
    def test_none_when_absent(self):
        assert extract_json_ld("<html><body></body></html>") is None

    def test_single_block(self):
        html = '<script type="application/ld+json">{"@type": "Organization"}</script>'
        assert extract_json_ld(html) == {"@type": "Organization"}

    def test_multiple_blocks_and_malformed_skipped(self):
        html = (
            '<script type="application/ld+json">{"@type": "Organization"}</script>'
            '<script type="application/ld+json">{not json</script>'
            '<script type="application/ld+json">{"@type": "WebSite"}</script>'
        )
        assert extract_json_ld(html) == [{"@type": "Organization"}, {"@type": "WebSite"}]

    def test_only_malformed_is_none(self):
        html = '<script type="application/ld+json">{broken</script>'
        assert extract_json_ld(html) is None


class TestExtractPage:
    def test_combines_all_extractors(self):
        html = (
            '<html lang="en"><head><title>About Acme</title>'
            '<script type="application/ld+json">{"@type": "Organization"}</script>'
            '</head><body><nav><a href="/">Home</a></nav>'
            '<main><h1>About us</h1><p>Founded 1999.</p><a href="/team">Team</a></main>'
            "</body></html>"
        )
        page = extract_page(html, "https://example.com/about")
        assert page.page_type is PageType.ABOUT
        assert page.metadata.title == "About Acme"
        assert "Founded 1999." in page.text
        assert "Home" not in page.text
        assert page.links.internal == ["https://example.com/", "https://example.com/team"]
        assert page.json_ld == {"@type": "Organization"}

    def test_render_markdown(self):
        html = "<html><body><nav>Menu</nav><main><h1>Title</h1><p>Body text</p></main></body></html>"
        out = render_markdown(html, source_url="https://example.com/")
        assert out.startswith("Source: https://example.com/\n\n")
        assert "# Title" in out
        assert "Body text" in out
        assert "Menu" not in out
