from __future__ import annotations

from chronolist.logging_utils import LogBlock, render_fields_block, render_section_block


class TestRenderFieldsBlock:
    def test_aligns_labels(self) -> None:
        block = render_fields_block("Index", {"Items": 3, "Providers": ["tmdb", "imdb"]}, pad_top=False)

        assert block.splitlines() == [
            "Index",
            "-----",
            "    Items    : 3",
            "    Providers: tmdb, imdb",
        ]

    def test_pad_top_adds_leading_blank_line(self) -> None:
        block = render_fields_block("Index", {"Items": 3})

        assert block.startswith("\nIndex\n")

    def test_formats_none_and_floats(self) -> None:
        block = render_fields_block("Run", [("Owner", None), ("Seconds", 2.5)], pad_top=False)

        lines = block.splitlines()
        assert lines[2].rstrip() == "    Owner   :"
        assert lines[3] == "    Seconds : 2.5"

    def test_wraps_long_values(self) -> None:
        value = " ".join(["word"] * 60)

        lines = render_fields_block("Run", {"Detail": value}, pad_top=False).splitlines()

        assert len(lines) > 3
        assert all(len(line) <= 100 for line in lines)
        assert lines[3].startswith(" " * 14)


class TestRenderSectionBlock:
    def test_sections_with_bullets_and_empty_label(self) -> None:
        block = render_section_block(
            "Summary",
            [("Missing", ["movie - tmdb:1", None, "episode - tmdb:2"]), ("Errors", [])],
            pad_top=False,
        )

        assert block.splitlines() == [
            "Summary",
            "-------",
            "",
            "Missing:",
            "    - movie - tmdb:1",
            "    - episode - tmdb:2",
            "",
            "Errors:",
            "    (none)",
        ]

    def test_fields_precede_sections(self) -> None:
        block = render_section_block("Summary", [("Notes", ["a"])], fields={"Total": 1}, pad_top=False)

        lines = block.splitlines()
        assert lines[2] == "    Total   : 1"
        assert lines[-1] == "    - a"


def test_log_block_chaining() -> None:
    block = LogBlock("Batch", pad_top=False).fields(None).section("Items", ["x"], empty_label="-").render()

    assert block == "Batch\n-----\n\nItems:\n    - x"
