import pytest

from cover_crop_tool.models import NaturalSize, Point
from cover_crop_tool.session import CropSession, SessionPhase, SessionStateError, apply_zoom

V = 400
EPS = 1e-9


def _in_bounds(session: CropSession) -> bool:
    state = session.state
    sw, sh = state.scaled_size
    return (
        V - sw - EPS <= state.offset.x <= 0
        and V - sh - EPS <= state.offset.y <= 0
    )


def test_load_computes_base_scale_and_centered_offset(make_source):
    session = CropSession(V)
    state = session.load(make_source(800, 600))
    assert session.phase is SessionPhase.LOADED
    assert state.base_scale == pytest.approx(400 / 600)
    assert state.zoom == 1.0
    assert state.offset.x == pytest.approx((400 - 800 * state.base_scale) / 2)
    assert state.offset.y == 0.0
    assert state.drag_anchor is None


def test_loading_new_source_replaces_state(make_source):
    session = CropSession(V)
    first = session.load(make_source(800, 600))
    session.set_zoom(2.5)
    second = session.load(make_source(300, 900))
    assert second is not first
    assert second.zoom == 1.0
    assert second.natural == NaturalSize(300, 900)
    assert first.natural == NaturalSize(800, 600)


def test_drag_follows_pointer_from_anchor(make_source):
    session = CropSession(V)
    session.load(make_source(800, 800))  # base scale 0.5, no drag room at zoom 1
    session.set_zoom(2.0)
    start = session.state.offset
    session.begin_drag(Point(200, 200))
    assert session.state.dragging
    assert session.phase is SessionPhase.INTERACTING
    new = session.update_drag(Point(180, 170))
    assert new == Point(start.x - 20, start.y - 30)
    assert session.state.offset == new


def test_drag_replay_matches_direct_update(make_source):
    path = [Point(210, 190), Point(100, 50), Point(-900, 700), Point(350, -20), Point(150, 120)]

    replayed = CropSession(V)
    replayed.load(make_source(1600, 1200))
    replayed.set_zoom(2.3)
    replayed.begin_drag(Point(200, 200))
    for p in path:
        replayed.update_drag(p)

    direct = CropSession(V)
    direct.load(make_source(1600, 1200))
    direct.set_zoom(2.3)
    direct.begin_drag(Point(200, 200))
    direct.update_drag(path[-1])

    assert replayed.state.offset == direct.state.offset


def test_drag_is_clamped(make_source):
    session = CropSession(V)
    session.load(make_source(800, 600))
    session.set_zoom(2.0)
    session.begin_drag(Point(0, 0))
    assert session.update_drag(Point(5000, 5000)) == Point(0.0, 0.0)
    scale = session.state.effective_scale
    far = session.update_drag(Point(-5000, -5000))
    assert far == Point(V - 800 * scale, V - 600 * scale)


def test_update_without_drag_returns_current_offset(make_source):
    session = CropSession(V)
    session.load(make_source(800, 600))
    before = session.state.offset
    assert session.update_drag(Point(10, 10)) == before
    assert session.state.offset == before


def test_end_drag_is_idempotent(make_source):
    session = CropSession(V)
    session.end_drag()
    session.load(make_source(800, 600))
    session.begin_drag(Point(1, 1))
    session.end_drag()
    session.end_drag()
    assert session.state.drag_anchor is None
    before = session.state.offset
    assert session.update_drag(Point(300, 300)) == before


def test_input_on_unloaded_session_is_ignored():
    session = CropSession(V)
    session.begin_drag(Point(1, 1))
    assert session.update_drag(Point(2, 2)) is None
    assert session.set_zoom(2.0) is None
    assert session.nudge(5, 5) is None
    session.recenter()
    assert session.phase is SessionPhase.IDLE
    assert session.state is None


def test_zoom_out_reclamps_offset(make_source):
    session = CropSession(V)
    session.load(make_source(800, 600))
    session.set_zoom(3.0)
    session.begin_drag(Point(0, 0))
    session.update_drag(Point(-10_000, -10_000))
    session.end_drag()
    assert _in_bounds(session)

    zoom, offset = session.set_zoom(1.0)
    assert zoom == 1.0
    assert offset == session.state.offset
    assert _in_bounds(session)
    assert session.state.offset.y == 0.0


def test_zoom_is_clamped(make_source):
    session = CropSession(V)
    session.load(make_source(500, 500))
    assert session.set_zoom(10)[0] == 3.0
    assert session.set_zoom(-1)[0] == 1.0
    session.set_zoom(2.95)
    assert session.zoom_by(0.5)[0] == 3.0


def test_apply_zoom_matches_session():
    natural = NaturalSize(800, 600)
    zoom, offset = apply_zoom(5.0, natural, V, Point(-1e6, 20))
    assert zoom == 3.0
    scale = (400 / 600) * 3.0
    assert offset.x == pytest.approx(V - 800 * scale)
    assert offset.y == 0.0


def test_nudge_and_recenter(make_source):
    session = CropSession(V)
    session.load(make_source(800, 600))
    centered = session.state.offset
    moved = session.nudge(-10, 0)
    assert moved.x == pytest.approx(centered.x - 10)
    assert session.nudge(0, 50).y == 0.0  # no vertical room at zoom 1
    session.set_zoom(2.0)
    session.recenter()
    assert session.state.zoom == 1.0
    assert session.state.offset == centered


def test_restore_clamps_cached_values(make_source):
    session = CropSession(V)
    session.load(make_source(800, 600))
    session.restore(7.0, Point(100, -99999))
    assert session.state.zoom == 3.0
    assert _in_bounds(session)
    assert session.state.offset.x == 0.0


def test_commit_is_terminal(make_source):
    session = CropSession(V)
    session.load(make_source(800, 600))
    session.begin_drag(Point(0, 0))
    result = session.commit()
    assert result.mime_type == "image/jpeg"
    assert result.data[:2] == b"\xff\xd8"
    assert session.phase is SessionPhase.COMMITTED
    assert session.state.drag_anchor is None
    assert session.set_zoom(2.0) is None
    with pytest.raises(SessionStateError):
        session.commit()
    with pytest.raises(SessionStateError):
        session.load(make_source(10, 10))


def test_commit_requires_loaded_session():
    with pytest.raises(SessionStateError):
        CropSession(V).commit()


def test_cancel_discards_state(make_source):
    session = CropSession(V)
    session.load(make_source(800, 600))
    session.cancel()
    assert session.phase is SessionPhase.CANCELLED
    assert session.state is None
    assert session.source is None
    assert session.update_drag(Point(1, 1)) is None
    with pytest.raises(SessionStateError):
        session.commit()


def test_commit_uses_settings(make_source):
    session = CropSession(V)
    session.load(make_source(500, 500))
    result = session.commit({"format": "WEBP", "max_bytes": 50_000})
    assert result.mime_type == "image/webp"
    assert result.data[:4] == b"RIFF"


def test_recenter_during_drag_drops_anchor(make_source):
    session = CropSession(V)
    session.load(make_source(800, 600))
    centered = session.state.offset
    session.begin_drag(Point(200, 200))
    session.update_drag(Point(150, 200))
    session.recenter()
    assert session.phase is SessionPhase.INTERACTING
    assert not session.state.dragging
    # A stray move after recenter must not pull the image back to the old drag
    assert session.update_drag(Point(100, 200)) == centered
    assert session.state.offset == centered
