"""
Tests for the inflector and resource name handling.
"""

from unittest import TestCase

from scaffold_forge.domain import ResourceName, pluralize, singularize, to_snake_case, variants, with_article
from scaffold_forge.exceptions import InvalidResourceName, ValidationError
from scaffold_forge.constants import ExitCodes


REGULAR_NOUNS = [
    "category", "box", "church", "dish", "invoice", "user", "status",
    "key", "day", "bus", "class", "buzz", "house", "address", "comment",
    "size", "prize", "breeze", "waltz", "niche", "headache", "canvas", "bias", "abuse",
]


class TestPluralize(TestCase):
    """Test cases for pluralize/singularize"""

    def test_suffix_rules(self):
        assert pluralize("category") == "categories"
        assert pluralize("box") == "boxes"
        assert pluralize("church") == "churches"
        assert pluralize("key") == "keys"
        assert pluralize("invoice") == "invoices"

    def test_irregular_nouns_checked_first(self):
        assert pluralize("person") == "people"
        assert singularize("people") == "person"
        assert pluralize("child") == "children"
        assert singularize("mice") == "mouse"

    def test_irregular_match_keeps_leading_capital(self):
        assert pluralize("Person") == "People"
        assert singularize("Categories") == "Category"

    def test_uncountable_nouns_unchanged(self):
        for word in ("sheep", "news", "equipment", "series"):
            assert pluralize(word) == word
            assert singularize(word) == word

    def test_already_singular_words(self):
        assert singularize("status") == "status"
        assert singularize("address") == "address"
        assert singularize("analysis") == "analysis"

    def test_round_trip_for_regular_nouns(self):
        for noun in REGULAR_NOUNS:
            with self.subTest(noun=noun):
                assert singularize(pluralize(noun)) == noun
                assert pluralize(singularize(pluralize(noun))) == pluralize(noun)

    def test_e_ending_plurals_keep_their_e(self):
        assert singularize("sizes") == "size"
        assert singularize("buzzes") == "buzz"
        assert singularize("niches") == "niche"
        assert singularize("churches") == "church"
        assert singularize("canvases") == "canvas"
        assert singularize("canvas") == "canvas"

    def test_total_on_odd_input(self):
        """Neither direction raises for strings no rule handles."""
        assert pluralize("") == ""
        assert singularize("") == ""
        assert singularize("xyz") == "xyz"


class TestResourceName(TestCase):
    """Test cases for ResourceName validation and normalization"""

    def test_camel_and_snake_forms_are_equal(self):
        assert ResourceName("InvoiceItem") == ResourceName("invoice_item")
        assert ResourceName("InvoiceItem").tokens == ("invoice", "item")
        assert str(ResourceName("InvoiceItem")) == "invoice_item"

    def test_invalid_names_rejected(self):
        for raw in ("", "   ", "1invoice", "invoice-item", "invoice item", "café"):
            with self.subTest(raw=raw):
                with self.assertRaises(InvalidResourceName) as ctx:
                    ResourceName(raw)
                assert isinstance(ctx.exception, ValidationError)
                assert ctx.exception.exit_code == ExitCodes.VALIDATION


class TestVariants(TestCase):
    """Test cases for variants()"""

    def test_multi_token_name(self):
        names = variants(ResourceName("invoice_item"))

        assert names.singular_lower == "invoiceitem"
        assert names.singular_capitalized == "InvoiceItem"
        assert names.plural_lower == "invoiceitems"
        assert names.plural_capitalized == "InvoiceItems"
        assert names.storage_identifier == "invoice_items"
        assert names.singular_camel == "invoiceItem"
        assert names.human_plural == "invoice items"

    def test_plural_input_normalizes_to_singular(self):
        assert variants(ResourceName("invoice_items")) == variants(ResourceName("InvoiceItem"))

    def test_irregular_resource(self):
        names = variants(ResourceName("Person"))

        assert names.singular_capitalized == "Person"
        assert names.plural_capitalized == "People"
        assert names.storage_identifier == "people"

    def test_ze_resource(self):
        names = variants(ResourceName("prizes"))

        assert names.singular_capitalized == "Prize"
        assert names.storage_identifier == "prizes"

    def test_results_are_cached(self):
        assert variants(ResourceName("category")) is variants(ResourceName("Category"))

    def test_as_variables_contains_every_variant(self):
        variables = variants(ResourceName("category")).as_variables()

        assert variables["singular_capitalized"] == "Category"
        assert variables["storage_identifier"] == "categories"
        assert all(isinstance(value, str) for value in variables.values())


class TestHelpers(TestCase):

    def test_to_snake_case(self):
        assert to_snake_case("InvoiceItem") == "invoice_item"
        assert to_snake_case("authorId") == "author_id"
        assert to_snake_case("XMLHttpRequest") == "xml_http_request"

    def test_with_article(self):
        assert with_article("invoice item") == "an invoice item"
        assert with_article("category") == "a category"
