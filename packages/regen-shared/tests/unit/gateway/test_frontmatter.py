"""Tests for markdown frontmatter parsing."""

from regen_shared.gateway.validator.frontmatter import (
    count_unbalanced_fences,
    parse_markdown_frontmatter,
)


class TestParseMarkdownFrontmatter:
    """Tests for parse_markdown_frontmatter function."""

    def test_valid_frontmatter(self) -> None:
        """Mapping frontmatter is returned with the body separated."""
        result = parse_markdown_frontmatter("---\ndescription: Plan a feature\n---\n\n# Plan\n")

        assert result.is_valid
        assert result.metadata == {"description": "Plan a feature"}
        assert result.body.strip() == "# Plan"

    def test_missing_frontmatter(self) -> None:
        """Plain markdown is reported as lacking frontmatter."""
        result = parse_markdown_frontmatter("# Just a heading\n")

        assert result.metadata is None
        assert result.error == "No frontmatter found"

    def test_invalid_yaml(self) -> None:
        """Broken YAML yields an error rather than raising."""
        result = parse_markdown_frontmatter("---\ndescription: [unclosed\n---\nbody\n")

        assert result.metadata is None
        assert result.error is not None
        assert result.error.startswith("Invalid YAML")

    def test_non_mapping_frontmatter(self) -> None:
        """A YAML list between the delimiters is not accepted."""
        result = parse_markdown_frontmatter("---\n- a\n- b\n---\nbody\n")

        assert result.metadata is None
        assert result.error == "Frontmatter is not a valid YAML mapping"

    def test_empty_frontmatter_block(self) -> None:
        result = parse_markdown_frontmatter("---\n---\nbody\n")

        assert result.metadata is None
        assert result.error == "Frontmatter is not a valid YAML mapping"


class TestCountUnbalancedFences:
    """Tests for count_unbalanced_fences function."""

    def test_balanced(self) -> None:
        assert count_unbalanced_fences("```bash\nls\n```\n") == 0

    def test_open_fence(self) -> None:
        assert count_unbalanced_fences("text\n```python\nprint(1)\n") == 1

    def test_other_marker_inside_fence_is_content(self) -> None:
        """A ~~~ line inside a ``` block does not close it."""
        assert count_unbalanced_fences("```\n~~~\n```\n") == 0


class TestDescription:
    """Tests for FrontmatterParseResult.description."""

    def test_stripped_value(self) -> None:
        result = parse_markdown_frontmatter("---\ndescription: '  Review a PR  '\n---\nbody\n")

        assert result.description == "Review a PR"

    def test_blank_or_non_string_is_none(self) -> None:
        """Blank strings and non-string values do not count as a description."""
        assert parse_markdown_frontmatter("---\ndescription: ''\n---\nbody\n").description is None
        assert parse_markdown_frontmatter("---\ndescription: 3\n---\nbody\n").description is None
