"""Frontmatter and code-fence checks for staged markdown artifacts."""

from dataclasses import dataclass

import frontmatter
import yaml

NOT_A_MAPPING = "Frontmatter is not a valid YAML mapping"
NO_FRONTMATTER = "No frontmatter found"
FENCE_MARKERS = ("```", "~~~")


@dataclass(frozen=True)
class FrontmatterParseResult:
    """Outcome of reading the frontmatter block of one markdown artifact.

    metadata is None exactly when error is set. body is the markdown after
    the closing delimiter, or the whole content when nothing was parsed.
    """

    metadata: dict[str, object] | None
    body: str
    error: str | None

    @property
    def is_valid(self) -> bool:
        return self.metadata is not None

    @property
    def description(self) -> str | None:
        """Stripped 'description' value, or None when absent, blank or not a string."""
        if self.metadata is None:
            return None
        value = self.metadata.get("description")
        if not isinstance(value, str) or not value.strip():
            return None
        return value.strip()


def _rejected(body: str, error: str) -> FrontmatterParseResult:
    return FrontmatterParseResult(metadata=None, body=body, error=error)


def parse_markdown_frontmatter(content: str) -> FrontmatterParseResult:
    """Split content into a metadata mapping and a markdown body.

    Never raises; problems come back in the result's error field.
    """
    try:
        post = frontmatter.loads(content)
    except yaml.YAMLError as e:
        return _rejected(content, f"Invalid YAML: {e}")

    # python-frontmatter drops YAML that is not a mapping, leaving {}
    if post.metadata:
        return FrontmatterParseResult(metadata=dict(post.metadata), body=post.content, error=None)
    if content.startswith("---"):
        return _rejected(post.content, NOT_A_MAPPING)
    return _rejected(content, NO_FRONTMATTER)


def count_unbalanced_fences(body: str) -> int:
    """Return 1 if a ``` or ~~~ code fence is left open, else 0."""
    open_fence: str | None = None
    for line in body.splitlines():
        marker = next((m for m in FENCE_MARKERS if line.lstrip().startswith(m)), None)
        if marker is None:
            continue
        if open_fence is None:
            open_fence = marker
        elif open_fence == marker:
            open_fence = None
    return 0 if open_fence is None else 1
