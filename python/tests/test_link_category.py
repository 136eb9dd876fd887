"""Tests for link category resolution, provider enrichers and JSON-LD facts."""

import json

import pytest

from teak.pipeline.link_category import resolve_link_category
from teak.pipeline.providers import (
    PROVIDER_REGISTRY,
    detect_provider,
    enrich_provider,
    get_provider_enricher,
)
from teak.pipeline.providers.common import (
    format_count,
    format_date,
    format_rating,
    merge_facts,
    parse_count,
)
from teak.pipeline.structured_data import (
    enrich_with_structured_data,
    format_duration,
    parse_structured_data,
)


class TestResolveLinkCategory:
    def test_github_domain_rule(self):
        """github.com resolves through its domain rule with high confidence."""
        result = resolve_link_category("https://github.com/org/repo")

        assert result.category == "software"
        assert result.provider == "github"
        assert result.reason == "domain_rule"
        assert result.confidence > 0.9

    def test_recipe_path_rule(self):
        result = resolve_link_category("https://example.com/recipes/best-lasagna")

        assert result.category == "recipe"
        assert result.reason == "path_rule"

    def test_unknown_host_falls_back(self):
        result = resolve_link_category("https://unknown.example.com/path/to/resource")

        assert result.category == "other"
        assert result.reason == "fallback"
        assert result.provider is None

    def test_www_prefix_and_subdomain(self):
        assert resolve_link_category("https://www.goodreads.com/book/show/1").category == "book"
        assert resolve_link_category("https://gist.github.com/x").category == "software"

    def test_spotify_episode_is_podcast(self):
        result = resolve_link_category("https://open.spotify.com/episode/abc")

        assert result.category == "podcast"
        assert result.provider == "spotify"

    def test_spotify_track_is_music(self):
        assert resolve_link_category("https://open.spotify.com/track/abc").category == "music"

    def test_provider_mapping(self):
        result = resolve_link_category("https://vimeo.com/12345")

        assert result.category == "tv"
        assert result.reason == "provider_mapping"
        assert result.provider == "vimeo"

    def test_path_rule_beats_provider_mapping(self):
        result = resolve_link_category("https://coursera.org/news/launch")

        assert result.category == "news"
        assert result.provider == "coursera"

    @pytest.mark.parametrize("url", [None, "", "not a url"])
    def test_unparsable_falls_back(self, url):
        assert resolve_link_category(url).reason == "fallback"

    def test_to_dict(self):
        data = resolve_link_category("https://github.com/a/b").to_dict()

        assert data == {
            "category": "software",
            "confidence": 0.98,
            "provider": "github",
            "reason": "domain_rule",
            "rule": "github.com",
        }


class TestProviderRegistry:
    def test_registry_keys(self):
        assert set(PROVIDER_REGISTRY) == {"github", "goodreads", "imdb", "amazon", "dribbble"}

    def test_hint_wins_over_hostname(self):
        assert detect_provider("www.amazon.com", "goodreads") == "goodreads"

    def test_detect_by_host_fragment(self):
        assert detect_provider("smile.amazon.de") == "amazon"
        assert detect_provider("example.org") is None

    def test_enricher_requires_applicable_category(self):
        """The amazon enricher applies to products and books, not movies."""
        assert get_provider_enricher("amazon", "book") is not None
        assert get_provider_enricher("amazon", "movie") is None
        assert get_provider_enricher("unknown", "book") is None

    def test_github_facts(self):
        raw_map = {
            "a[href$='/stargazers']": {"text": "12.3k stars", "attributes": {}},
            "a[href$='/network/members']": {"text": "1,024", "attributes": {}},
            "span[itemprop='programmingLanguage']": {"text": "Python", "attributes": {}},
            "relative-time": {"text": "on Dec 1, 2023", "attributes": {}},
        }

        enrichment = enrich_provider("github", "software", raw_map)

        assert enrichment.facts == [
            {"label": "Stars", "value": "12,300"},
            {"label": "Forks", "value": "1,024"},
            {"label": "Language", "value": "Python"},
            {"label": "Updated", "value": "Dec 1, 2023"},
        ]

    def test_goodreads_facts(self):
        raw_map = {
            "meta[property='books:rating:average']": {
                "text": None,
                "attributes": {"property": "books:rating:average", "content": "4.271"},
            },
            "meta[property='books:rating:count']": {
                "text": None,
                "attributes": {"content": "98765"},
            },
        }

        enrichment = enrich_provider("goodreads", "book", raw_map)

        assert {"label": "Average rating", "value": "4.27 / 5"} in enrichment.facts
        assert {"label": "Ratings", "value": "98,765"} in enrichment.facts

    def test_amazon_price_with_currency(self):
        raw_map = {
            "meta[property='og:price:amount']": {"text": None, "attributes": {"content": "19.99"}},
            "meta[property='og:price:currency']": {"text": None, "attributes": {"content": "USD"}},
        }

        enrichment = enrich_provider("amazon", "product", raw_map)

        assert enrichment.facts == [{"label": "Price", "value": "19.99 USD"}]

    def test_empty_map_yields_nothing(self):
        assert enrich_provider("github", "software", {}) is None


class TestFormatting:
    @pytest.mark.parametrize(
        "value,expected", [("1.5k", 1500), ("2M", 2_000_000), ("12,345", 12345), ("n/a", None)]
    )
    def test_parse_count(self, value, expected):
        assert parse_count(value) == expected

    def test_format_count_keeps_text(self):
        assert format_count("lots") == "lots"

    def test_format_rating(self):
        assert format_rating("4.5 out of 5") == "4.50"

    def test_format_date(self):
        assert format_date("2023-12-25") == "Dec 25, 2023"
        assert format_date("2023-12-25T10:00:00Z") == "Dec 25, 2023"
        assert format_date("someday") is None

    def test_merge_facts_dedupes(self):
        facts = [{"label": "Price", "value": "$5"}]

        merge_facts(facts, [{"label": "Price", "value": "$5"}, {"label": "Brand", "value": "X"}])

        assert facts == [{"label": "Price", "value": "$5"}, {"label": "Brand", "value": "X"}]


def ld_json(*blocks) -> str:
    scripts = "".join(
        f'<script type="application/ld+json">{json.dumps(block)}</script>' for block in blocks
    )
    return f"<html><head>{scripts}</head><body></body></html>"


class TestStructuredData:
    def test_graph_is_expanded(self):
        html = ld_json(
            {
                "@context": "https://schema.org",
                "@graph": [
                    {"@type": "WebSite", "name": "Site"},
                    {"@type": "Recipe", "name": "Lasagna"},
                ],
            }
        )

        entities = parse_structured_data(html)

        assert [entity["@type"] for entity in entities] == ["WebSite", "Recipe"]

    def test_invalid_json_skipped_and_duplicates_dropped(self):
        html = (
            '<html><head><script type="application/ld+json">{oops</script></head></html>'
        )
        assert parse_structured_data(html) == []

        dup = {"@type": "Product", "name": "Lamp"}
        assert len(parse_structured_data(ld_json(dup, dup))) == 1

    def test_at_most_eight_entities(self):
        html = ld_json([{"@type": "Thing", "name": f"n{i}"} for i in range(12)])

        assert len(parse_structured_data(html)) == 8

    def test_recipe_facts(self):
        entities = [
            {
                "@type": "Recipe",
                "recipeYield": "4 servings",
                "prepTime": "PT15M",
                "cookTime": "PT1H",
                "recipeIngredient": [f"item {i}" for i in range(8)],
                "image": [{"url": "https://img.test/lasagna.jpg"}],
            }
        ]

        enrichment = enrich_with_structured_data("recipe", entities)

        assert enrichment.facts == [
            {"label": "Servings", "value": "4 servings"},
            {"label": "Timing", "value": "Prep 15m · Cook 1h"},
            {"label": "Ingredients", "value": "item 0, item 1, item 2, item 3, item 4, item 5"},
        ]
        assert enrichment.image_url == "https://img.test/lasagna.jpg"

    def test_book_facts(self):
        entities = [
            {
                "@type": "Book",
                "author": [{"name": "Ursula K. Le Guin"}],
                "aggregateRating": {"ratingValue": 4.2, "ratingCount": 1200},
                "numberOfPages": 320,
                "datePublished": "1969-03-01",
            }
        ]

        facts = enrich_with_structured_data("book", entities).facts

        assert facts == [
            {"label": "Authors", "value": "Ursula K. Le Guin"},
            {"label": "Rating", "value": "4.2"},
            {"label": "Reviews", "value": "1200"},
            {"label": "Length", "value": "320"},
            {"label": "Published", "value": "Mar 1, 1969"},
        ]

    def test_product_price(self):
        entities = [
            {
                "@type": "Product",
                "offers": [{"price": "49.00", "priceCurrency": "EUR"}],
                "brand": {"name": "Acme"},
            }
        ]

        facts = enrich_with_structured_data("product", entities).facts

        assert facts == [
            {"label": "Price", "value": "49.00 EUR"},
            {"label": "Brand", "value": "Acme"},
        ]

    def test_no_matching_entity(self):
        assert enrich_with_structured_data("recipe", [{"@type": "Book"}]) is None
        assert enrich_with_structured_data("other", [{"@type": "Recipe"}]) is None

    def test_format_duration(self):
        assert format_duration("PT1H2M") == "1h 2m"
        assert format_duration("PT30S") == "30s"
        assert format_duration("P1D") is None
