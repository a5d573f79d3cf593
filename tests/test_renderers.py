"""Tests for the text, embed and PNG renderers."""

from domain.enums import TournamentStage
from renderers.bracket_diagram import BracketDiagramRenderer, DiagramStyle
from renderers.bracket_view import BracketView, round_title
from renderers.embeds import Embeds
from renderers.standings_view import StandingsView
from services.advancement import AdvancementEngine, Placement
from services.mutation import BracketUpdate
from services.participant_stats import recompute_participant_stats
from services.result_editor import apply_result
from tests.conftest import FIXED_NOW, at, make_snapshot


def _played_five():
    b = make_snapshot(5)
    m = at(b, "R1M1")
    apply_result(m, participant1_score=1, participant2_score=3, winner_id="p5", completed_at=FIXED_NOW)
    AdvancementEngine().advance(b, m.match_id)
    recompute_participant_stats(b)
    return b


def test_round_titles():
    b = make_snapshot(5)
    assert round_title(b, 1) == "Pre-Round"
    assert round_title(b, 2) == "Semi Finals"
    assert round_title(b, 3) == "Final"


def test_bracket_view_lists_every_match():
    text = BracketView().render(_played_five())

    assert text.startswith("```text\n=== 5 players ===")
    assert text.endswith("\n```")
    assert "Round 1 - Pre-Round:" in text
    assert "Round 3 - Final:" in text
    for pos in ("R1M1", "R2M1", "R2M2", "R3M1"):
        assert pos in text
    assert "✅ 1-3 W:P5" in text
    assert "[2] P2" in text and "[5] P5" in text
    assert "TBD" in text


def test_bracket_view_without_matches():
    b = make_snapshot(4)
    b.matches = []
    assert "(no matches yet)" in BracketView().render(b, title="Empty")


def test_bracket_view_trims_long_brackets():
    text = BracketView().render(make_snapshot(40), max_lines=20)
    assert "..." in text
    assert "Round 6 - Final:" in text


def test_standings_order_alive_first():
    text = StandingsView().render(_played_five().participants)
    lines = text.splitlines()
    assert lines[1] == "=== Standings ==="
    # p4 lost the play-in and sits last
    assert lines[-2].startswith("4")
    assert "R1" in lines[-2]


def test_standings_empty():
    assert "(no participants)" in StandingsView().render([])


def test_update_embed():
    b = make_snapshot(5)
    dest = at(b, "R2M2")
    update = BracketUpdate(
        tournament_id="t1",
        version=3,
        stage=TournamentStage.ELIMINATION_STAGE,
        changed_match_ids=(at(b, "R1M1").match_id, dest.match_id),
        placement=Placement(match_id=dest.match_id, slot=2, participant_id="p5"),
    )
    e = Embeds(footer="test").update(
        title="R1M1 reported",
        update=update,
        positions={m.match_id: m.bracket_position for m in b.matches},
    )

    fields = {f.name: f.value for f in e.fields}
    assert fields["Stage"] == "elimination_stage"
    assert fields["Matches changed"] == "2"
    assert fields["Advanced to"] == "`R2M2` slot 2"
    assert "Reset" not in fields
    assert e.footer.text == "test"


def test_diagram_renders_png():
    b = _played_five()
    png = BracketDiagramRenderer(DiagramStyle(scale=0.5)).render_png(b, title="Five")
    assert png[:8] == b"\x89PNG\r\n\x1a\n"


def test_diagram_layout_centres_on_feeders():
    b = make_snapshot(8)
    r = BracketDiagramRenderer()
    xy = r.layout(b)
    r1 = b.round(1)
    semi = at(b, "R2M1")
    assert xy[semi.match_id][1] == (xy[r1[0].match_id][1] + xy[r1[1].match_id][1]) // 2
    assert xy[semi.match_id][0] > xy[r1[0].match_id][0]
