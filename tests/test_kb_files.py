"""
Knowledge-base browser: listing, reading, tree and fuzzy search.
"""

import pytest

from lib import kb_files
from lib.errors import BadRequestError, KnowledgeBaseNotConfigured, NotFoundError
from tests.fixtures import write_kb_file


@pytest.fixture
def kb(kb_root):
    write_kb_file(
        kb_root,
        "acme-corp/projects/website/README.md",
        """\
        ---
        title: Website
        status: active
        ---
        # Website
        """,
    )
    write_kb_file(kb_root, "acme-corp/projects/website/notes.txt", "plain text\n")
    write_kb_file(kb_root, "acme-corp/.secret.md", "hidden\n")
    write_kb_file(kb_root, "acme-corp/node_modules/pkg.md", "vendored\n")
    return kb_root


class TestFuzzyMatch:
    def test_exact(self):
        """Exact (case-insensitive) matches score 100."""
        assert kb_files.fuzzy_match("readme.md", "README.md")["score"] == 100

    def test_substring(self):
        """Substrings score 80 minus their position."""
        assert kb_files.fuzzy_match("me", "README.md") == {"score": 76, "matches": [{"start": 4, "end": 6}]}

    def test_subsequence(self):
        """In-order characters score 1 each plus 2 per consecutive hit."""
        match = kb_files.fuzzy_match("rdm", "readme.md")
        assert match == {"score": 5, "matches": [{"start": 0, "end": 1}, {"start": 3, "end": 5}]}

    def test_no_match(self):
        """Missing characters mean no match."""
        assert kb_files.fuzzy_match("xyz", "readme.md") is None


class TestBrowse:
    def test_requires_kb(self):
        """Without a knowledge base nothing can be listed."""
        with pytest.raises(KnowledgeBaseNotConfigured):
            kb_files.list_dir("")

    def test_list_folders_first_and_hidden_skipped(self, kb):
        """Folders sort first; dot-files and excluded names are hidden."""
        names = [e["name"] for e in kb_files.list_dir("acme-corp")["entries"]]
        assert names == ["projects"]
        with_hidden = [e["name"] for e in kb_files.list_dir("acme-corp", include_hidden=True)["entries"]]
        assert with_hidden == ["projects", ".secret.md"]

    def test_entry_shape(self, kb):
        """Markdown entries expose their frontmatter title."""
        entries = kb_files.list_dir("acme-corp/projects/website")["entries"]
        readme = next(e for e in entries if e["name"] == "README.md")
        assert readme["path"] == "acme-corp/projects/website/README.md"
        assert readme["frontmatter_title"] == "Website"
        assert readme["extension"] == ".md"

    def test_path_escape_rejected(self, kb):
        """Paths may not leave the knowledge base."""
        with pytest.raises(BadRequestError):
            kb_files.list_dir("../")

    def test_missing_directory(self, kb):
        """Unknown directories are 404s."""
        with pytest.raises(NotFoundError):
            kb_files.list_dir("globex")

    def test_get_markdown_splits_frontmatter(self, kb):
        """Markdown content comes back without its frontmatter."""
        result = kb_files.get_file("acme-corp/projects/website/README.md")
        assert result["frontmatter"] == {"title": "Website", "status": "active"}
        assert result["content"].strip() == "# Website"
        assert result["metadata"]["is_markdown"] is True

    def test_get_directory_is_bad_request(self, kb):
        """Directories cannot be read as files."""
        with pytest.raises(BadRequestError):
            kb_files.get_file("acme-corp")

    def test_tree_depth(self, kb):
        """Depth limits how far children are expanded."""
        nodes = kb_files.tree("acme-corp", depth=2)["nodes"]
        projects = nodes[0]
        assert projects["name"] == "projects"
        assert [c["name"] for c in projects["children"]] == ["website"]
        assert "children" not in projects["children"][0]

    def test_search(self, kb):
        """Search walks the tree and ranks by score."""
        result = kb_files.search("readme")
        assert [r["entry"]["path"] for r in result["results"]] == ["acme-corp/projects/website/README.md"]

    def test_search_extension_filter(self, kb):
        """Extensions narrow the search with or without a dot."""
        assert kb_files.search("notes", extensions=["md"])["total"] == 0
        assert kb_files.search("notes", extensions=[".txt"])["total"] == 1

    def test_search_requires_query(self, kb):
        """An empty query is rejected."""
        with pytest.raises(BadRequestError):
            kb_files.search("")
