"""
Tests for template rendering, marker merging and the template catalogue.
"""

from unittest import TestCase

import pytest

from scaffold_forge.constants import TemplateIds
from scaffold_forge.exceptions import (
    DuplicateMarker,
    MarkerNotFound,
    RenderError,
    TemplateNotFound,
    UnresolvedVariable,
)
from scaffold_forge.generation import (
    TemplateCatalogue,
    TemplateRenderer,
    merge_at_marker,
    remove_at_marker,
)


ROUTES_HOST = "ROUTES = [\n    # [scaffold-forge:routes]\n]\n"
POSTS_ROUTE = '    ("/posts", "app.handlers.posts", "PostsHandler"),'
TAGS_ROUTE = '    ("/tags", "app.handlers.tags", "TagsHandler"),'


class TestRender(TestCase):
    """Test cases for TemplateRenderer.render"""

    def setUp(self):
        self.renderer = TemplateRenderer(TemplateCatalogue.from_mapping({}))

    def test_substitutes_placeholders(self):
        result = self.renderer.render("class {{ singular_capitalized }}:\n    pass\n", {"singular_capitalized": "Category"})

        assert result == "class Category:\n    pass\n"

    def test_keeps_trailing_newline(self):
        assert self.renderer.render("{{ a }}\n", {"a": "x"}) == "x\n"
        assert self.renderer.render("{{ a }}", {"a": "x"}) == "x"

    def test_missing_placeholders_reported_sorted(self):
        with self.assertRaises(UnresolvedVariable) as ctx:
            self.renderer.render("{{ zeta }} {{ alpha }} {{ known }}", {"known": "k"}, template_id="t.j2")

        assert ctx.exception.context["missing"] == ["alpha", "zeta"]
        assert ctx.exception.context["template_id"] == "t.j2"

    def test_missing_attribute_is_unresolved(self):
        with self.assertRaises(UnresolvedVariable):
            self.renderer.render("{{ resource.title }}", {"resource": {}})

    def test_syntax_error_is_render_error(self):
        with self.assertRaises(RenderError) as ctx:
            self.renderer.render("{% if %}broken", {})

        assert not isinstance(ctx.exception, UnresolvedVariable)

    def test_filters_and_globals(self):
        result = self.renderer.render(
            "{{ name | pluralize }} {{ p.a('item') }} {{ 'box' | with_article }}", {"name": "category"}
        )

        assert result == "categories an item a box"

    def test_render_template_by_id(self):
        renderer = TemplateRenderer(TemplateCatalogue.from_mapping({"hello.j2": "Hello {{ who }}!\n"}))

        assert renderer.render_template("hello.j2", {"who": "world"}) == "Hello world!\n"

    def test_render_template_unknown_id(self):
        with self.assertRaises(TemplateNotFound):
            self.renderer.render_template("nope.j2", {})


class TestMergeAtMarker(TestCase):
    """Test cases for merge_at_marker"""

    def test_inserts_directly_before_marker(self):
        merged = merge_at_marker(ROUTES_HOST, "routes", POSTS_ROUTE)

        assert merged == f"ROUTES = [\n{POSTS_ROUTE}\n    # [scaffold-forge:routes]\n]\n"

    def test_merge_is_idempotent(self):
        once = merge_at_marker(ROUTES_HOST, "routes", POSTS_ROUTE)
        twice = merge_at_marker(once, "routes", POSTS_ROUTE)

        assert twice == once

    def test_fragments_accumulate_in_order(self):
        merged = merge_at_marker(ROUTES_HOST, "routes", POSTS_ROUTE)
        merged = merge_at_marker(merged, "routes", TAGS_ROUTE)

        assert merged == f"ROUTES = [\n{POSTS_ROUTE}\n{TAGS_ROUTE}\n    # [scaffold-forge:routes]\n]\n"
        # Re-merging the first fragment does not duplicate it
        assert merge_at_marker(merged, "routes", POSTS_ROUTE) == merged

    def test_marker_on_first_line(self):
        host = "# [scaffold-forge:models]\n"
        merged = merge_at_marker(host, "models", "from app.models.tag import Tag")

        assert merged == "from app.models.tag import Tag\n# [scaffold-forge:models]\n"
        assert merge_at_marker(merged, "models", "from app.models.tag import Tag") == merged

    def test_marker_without_trailing_newline(self):
        merged = merge_at_marker("a\n# [scaffold-forge:models]", "models", "b\n")

        assert merged == "a\nb\n# [scaffold-forge:models]"

    def test_missing_marker(self):
        with self.assertRaises(MarkerNotFound) as ctx:
            merge_at_marker("ROUTES = []\n", "routes", POSTS_ROUTE)

        assert ctx.exception.context["marker_id"] == "routes"

    def test_duplicate_marker(self):
        host = "# [scaffold-forge:routes]\n# [scaffold-forge:routes]\n"

        with self.assertRaises(DuplicateMarker) as ctx:
            merge_at_marker(host, "routes", POSTS_ROUTE)

        assert ctx.exception.context["lines"] == [1, 2]

    def test_other_markers_are_ignored(self):
        host = "# [scaffold-forge:models]\n# [scaffold-forge:routes]\n"
        merged = merge_at_marker(host, "routes", "x")

        assert merged == "# [scaffold-forge:models]\nx\n# [scaffold-forge:routes]\n"


class TestRemoveAtMarker(TestCase):
    """Test cases for remove_at_marker"""

    def test_removes_one_fragment(self):
        merged = merge_at_marker(ROUTES_HOST, "routes", POSTS_ROUTE)
        merged = merge_at_marker(merged, "routes", TAGS_ROUTE)

        result = remove_at_marker(merged, "routes", POSTS_ROUTE)

        assert result == f"ROUTES = [\n{TAGS_ROUTE}\n    # [scaffold-forge:routes]\n]\n"

    def test_restores_host(self):
        merged = merge_at_marker(ROUTES_HOST, "routes", POSTS_ROUTE)

        assert remove_at_marker(merged, "routes", POSTS_ROUTE) == ROUTES_HOST

    def test_fragment_at_start_of_file(self):
        merged = merge_at_marker("# [scaffold-forge:models]\n", "models", "import x")

        assert remove_at_marker(merged, "models", "import x") == "# [scaffold-forge:models]\n"

    def test_absent_fragment_is_noop(self):
        assert remove_at_marker(ROUTES_HOST, "routes", POSTS_ROUTE) == ROUTES_HOST

    def test_missing_marker(self):
        with self.assertRaises(MarkerNotFound):
            remove_at_marker("ROUTES = []\n", "routes", POSTS_ROUTE)


class TestTemplateCatalogue(TestCase):
    """Test cases for TemplateCatalogue"""

    def test_from_mapping(self):
        catalogue = TemplateCatalogue.from_mapping({"a.j2": "A", "b.j2": "B"})

        assert catalogue.get("a.j2") == "A"
        assert catalogue.has("b.j2")
        assert not catalogue.has("c.j2")
        assert catalogue.names() == ["a.j2", "b.j2"]

    def test_unknown_template(self):
        with self.assertRaises(TemplateNotFound) as ctx:
            TemplateCatalogue.from_mapping({}).get("missing.j2")

        assert ctx.exception.context["template_id"] == "missing.j2"

    def test_embedded_catalogue_has_every_template(self):
        catalogue = TemplateCatalogue()
        template_ids = [value for key, value in vars(TemplateIds).items() if key.isupper()]

        for template_id in template_ids:
            assert template_id in catalogue.names()


def test_override_directory_takes_precedence(tmp_path):
    """A project template shadows the embedded one with the same name."""
    (tmp_path / TemplateIds.MODEL).write_text("# custom model\n")
    catalogue = TemplateCatalogue(tmp_path)

    assert catalogue.get(TemplateIds.MODEL) == "# custom model\n"
    # Templates the project does not override still come from the package
    assert "{{ handler_class }}" in catalogue.get(TemplateIds.HANDLER)
