"""Tests for merged body and subagent rendering."""

from datetime import datetime

import yaml

from rule_squash.compose.markdown import (
    anchor_for,
    command_description,
    command_name,
    file_prefix,
    render_agent,
    render_body,
    render_toc,
)
from rule_squash.core.models import (
    Category,
    CompiledOutput,
    ResolvedSource,
    SourceReference,
    SubagentArtifact,
)


def _body(locator, content, category=Category.BODY):
    return ResolvedSource(
        reference=SourceReference.local(locator),
        key=f"/corpus/{locator}",
        category=category,
        content=content,
    )


class TestRenderBody:
    """Test render_body()."""

    def test_joins_with_blank_line(self):
        output = CompiledOutput(body=[_body("b.md", "# B\n"), _body("a.md", "# A\n\n")])
        assert render_body(output) == "# B\n\n# A\n"

    def test_skips_empty_documents(self):
        output = CompiledOutput(
            body=[_body("a.md", "# A\n"), _body("empty.md", "\n\n"), _body("c.md", "# C")]
        )
        assert render_body(output) == "# A\n\n# C\n"

    def test_empty(self):
        assert render_body(CompiledOutput()) == ""

    def test_rewrites_script_references(self):
        output = CompiledOutput(body=[_body("a.md", "Run /corpus/tools/check.sh first\n")])

        scripts = {"/corpus/tools/check.sh": ".claude/scripts/check.sh"}
        text = render_body(output, script_paths=scripts)

        assert text == "Run .claude/scripts/check.sh first\n"


class TestTableOfContents:
    """Test table of contents rendering."""

    def test_file_prefix(self):
        assert file_prefix("rules/git/Pull Request.md") == "rules-git-pullrequest"
        assert file_prefix("https://github.com/o/r/blob/main/docs/a.md") == "docs-a"
        assert file_prefix("https://example.com/x/b.md") == "b"

    def test_anchor_for(self):
        assert anchor_for("Setup & Usage -- Notes!") == "setup-usage-notes"
        assert anchor_for("Intro", "rules-a") == "rules-a-intro"

    def test_command_name(self):
        assert command_name("rules/commands/git-open_pr.md") == "git:open:pr"

    def test_command_description_fallback(self):
        deploy = _body("commands/deploy.md", "# Deploy\n\nDeploys the **service** now\n")
        short = _body("commands/x.md", "# X\n\nshort\n")

        assert command_description(deploy) == "Deploys the service now"
        assert command_description(short) == "Command description not available"

    def test_render_body_with_toc(self):
        output = CompiledOutput(
            body=[_body("rules/a.md", "# Alpha\n\n## Setup Steps\ntext\n")],
            commands=[
                _body(
                    "commands/git-pr.md",
                    "---\ndescription: Open a PR\n---\n# PR\n",
                    Category.COMMAND,
                )
            ],
        )

        text = render_body(output, toc=True)

        assert text == (
            "## Table of Contents\n"
            "\n"
            "- [Alpha](#rules-a-alpha)\n"
            "  - [Setup Steps](#rules-a-setup-steps)\n"
            "\n"
            "### Available Slash Commands\n"
            "\n"
            "- `/git:pr` - Open a PR\n"
            "\n"
            '<a id="rules-a-alpha"></a>\n'
            "\n"
            "# Alpha\n"
            "\n"
            '<a id="rules-a-setup-steps"></a>\n'
            "\n"
            "## Setup Steps\n"
            "text\n"
        )

    def test_toc_without_commands(self):
        output = CompiledOutput(body=[_body("a.md", "# A\n")])

        assert render_toc(output) == "## Table of Contents\n\n- [A](#a-a)"


class TestRenderAgent:
    """Test render_agent()."""

    def _artifact(self, **overrides):
        output = CompiledOutput(
            recipe="review",
            body=[_body("review.md", "# Review\n"), _body("blank.md", "")],
            skills=[_body("skills/lint.md", "# Lint\n", Category.SKILL)],
        )
        values = {
            "name": "code_reviewer",
            "recipe": "review",
            "model": "opus",
            "output": output,
            "description": "Reviews code",
            "capabilities": ["linear"],
        }
        values.update(overrides)
        return SubagentArtifact(**values)

    def test_header(self):
        text = render_agent(self._artifact(), "main", generated_at=datetime(2024, 1, 2, 3, 4, 5))

        header = yaml.safe_load(text.split("---\n")[1])
        assert header == {
            "name": "code_reviewer",
            "description": "Reviews code",
            "tools": "Bash, Read, Write, Edit, Glob, Grep",
            "model": "opus",
            "skills": ["lint"],
            "mcpServers": ["linear"],
            "permissionMode": "bypassPermissions",
        }
        assert "# Auto-generated from recipe: review\n" in text
        assert "regenerate using 'rule-squash squash main'" in text

    def test_body_and_footer(self):
        text = render_agent(self._artifact(), "main", generated_at=datetime(2024, 1, 2, 3, 4, 5))

        assert "# Code Reviewer\n\nReviews code\n\n## Recipe Content\n\n# Review\n\n---\n" in text
        assert text.endswith(
            "*Last generated: 2024-01-02 03:04:05*\n*Source recipe: review*\n"
        )
        assert text.count("# Review") == 1

    def test_optional_keys_omitted(self):
        artifact = self._artifact(capabilities=[], description=None)
        artifact.output.skills = []

        text = render_agent(artifact, "main")

        header = yaml.safe_load(text.split("---\n")[1])
        assert "skills" not in header
        assert "mcpServers" not in header
        assert header["description"] == "Subagent for review"
