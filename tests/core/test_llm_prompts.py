"""Tests for prompt assembly, roles, and templates."""

import base64

import pytest

from aipipe.core.exceptions import AttachmentError, EmptyPrompt
from aipipe.core.llm.prompts import PromptInput, assemble_user_content, image_mime_type, read_images
from aipipe.core.llm.templates import (
    apply_template,
    list_roles,
    list_templates,
    load_role,
    load_template,
)


class TestAssembleUserContent:
    def test_args_only(self):
        assert assemble_user_content(PromptInput(args=("what", "is", "2+2?"))) == "what is 2+2?"

    def test_stdin_before_args(self):
        content = assemble_user_content(PromptInput(args=("summarize",), stdin="long text"))
        assert content == "long text\n\nsummarize"

    @pytest.mark.smoke
    def test_attachments_first_in_order(self, tmp_path):
        a = tmp_path / "a.py"
        b = tmp_path / "b.txt"
        a.write_text("print('a')")
        b.write_text("bee")
        content = assemble_user_content(PromptInput(args=("explain",), files=(str(a), str(b))))
        assert content == f"# {a}\n```\nprint('a')\n```\n\n# {b}\n```\nbee\n```\n\nexplain"

    def test_missing_attachment(self, tmp_path):
        with pytest.raises(AttachmentError, match="File not found"):
            assemble_user_content(PromptInput(args=("x",), files=(str(tmp_path / "nope.txt"),)))

    def test_empty(self):
        with pytest.raises(EmptyPrompt):
            assemble_user_content(PromptInput(args=("  ",), stdin="\n"))

    def test_attachment_alone_is_empty(self, tmp_path):
        f = tmp_path / "a.txt"
        f.write_text("content")
        with pytest.raises(EmptyPrompt):
            assemble_user_content(PromptInput(files=(str(f),)))

    def test_template_with_input(self):
        content = assemble_user_content(
            PromptInput(args=("fix it",), stdin="diff", template="Review:\n{{input}}\nThanks.")
        )
        assert content == "Review:\ndiff\n\nfix it\nThanks."

    def test_template_without_placeholder_is_prepended(self):
        content = assemble_user_content(PromptInput(args=("hello",), template="You are a pirate.\n"))
        assert content == "You are a pirate.\n\nhello"

    def test_template_alone(self):
        assert assemble_user_content(PromptInput(template="Tell me a joke.")) == "Tell me a joke."


class TestImages:
    def test_data_url(self, tmp_path):
        image = tmp_path / "pic.jpg"
        image.write_bytes(b"\xff\xd8\xff")
        (part,) = read_images([str(image)])
        assert part.data_url == "data:image/jpeg;base64," + base64.b64encode(b"\xff\xd8\xff").decode()

    def test_missing(self, tmp_path):
        with pytest.raises(AttachmentError, match="Image not found"):
            read_images([str(tmp_path / "gone.png")])

    def test_mime_fallback(self):
        assert image_mime_type("photo.webp") == "image/webp"
        assert image_mime_type("mystery.bin") == "image/png"


class TestRoles:
    def test_load_txt_and_bare(self, tmp_path):
        (tmp_path / "reviewer.txt").write_text("You review code.\n")
        (tmp_path / "poet").write_text("You write verse.")
        assert load_role(tmp_path, "reviewer") == "You review code."
        assert load_role(tmp_path, "poet") == "You write verse."
        assert load_role(tmp_path, "missing") is None

    def test_name_cannot_escape(self, tmp_path):
        roles = tmp_path / "roles"
        roles.mkdir()
        (tmp_path / "secret.txt").write_text("nope")
        assert load_role(roles, "../secret") is None

    def test_list(self, tmp_path):
        (tmp_path / "a.txt").write_text("x")
        (tmp_path / "b").write_text("x")
        (tmp_path / ".hidden").write_text("x")
        assert list_roles(tmp_path) == ["a", "b"]
        assert list_roles(tmp_path / "absent") == []


class TestTemplates:
    def test_load_with_or_without_extension(self, tmp_path):
        (tmp_path / "review.md").write_text("Review {{input}}")
        assert load_template(tmp_path, "review") == "Review {{input}}"
        assert load_template(tmp_path, "review.md") == "Review {{input}}"
        assert load_template(tmp_path, "other") is None

    def test_list(self, tmp_path):
        (tmp_path / "z.md").write_text("")
        (tmp_path / "a.md").write_text("")
        (tmp_path / "notes.txt").write_text("")
        assert list_templates(tmp_path) == ["a", "z"]

    def test_unknown_placeholders_kept(self):
        assert apply_template("{{input}} and {{other}}", {"input": "x"}) == "x and {{other}}"
