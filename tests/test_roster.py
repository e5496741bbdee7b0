import json

from idenawl.sources.roster import load_roster

from tests.fakes import addr


def test_text_roster_skips_comments_and_invalid(tmp_path):
    p = tmp_path / "roster.txt"
    p.write_text(
        "\n".join(
            [
                "# ceremony participants",
                addr(2).upper().replace("0X", "0x"),
                "",
                f"{addr(1)}  # operator",
                "nonsense",
                addr(2),
            ]
        ),
        encoding="utf-8",
    )
    assert load_roster(p) == [addr(1), addr(2)]


def test_json_roster(tmp_path):
    p = tmp_path / "roster.json"
    p.write_text(json.dumps([addr(3), addr(1), 5, "0x12"]), encoding="utf-8")
    assert load_roster(str(p)) == [addr(1), addr(3)]
