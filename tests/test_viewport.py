import logging

import pytest

from familytree.layout import Bounds
from familytree.viewport import (
    MAX_SCALE, MIN_SCALE, DebouncedFlusher, Transform, ViewportTransform, member_set_key,
)


def viewport(**kwargs):
    return ViewportTransform(width=800, height=600, **kwargs)


# ==================== TRANSFORM ====================

def test_transform_apply_and_invert():
    transform = Transform(100, 50, 2)
    assert transform.apply(10, 20) == (120, 90)
    assert transform.invert(120, 90) == (10, 20)


# ==================== ZOOM / PAN ====================

def test_zoom_in_then_out_restores_transform():
    view = viewport(tree=Transform(37, -12, 1.5))
    view.zoom(1.2, anchor=(300, 200))
    view.zoom(1 / 1.2, anchor=(300, 200))
    assert view.tree.scale == pytest.approx(1.5)
    assert view.tree.offset_x == pytest.approx(37)
    assert view.tree.offset_y == pytest.approx(-12)


def test_zoom_keeps_anchor_fixed():
    view = viewport(tree=Transform(20, 30, 1))
    before = view.screen_to_tree(250, 120)
    view.zoom(2.5, anchor=(250, 120))
    after = view.screen_to_tree(250, 120)
    assert after == pytest.approx(before)


def test_zoom_defaults_to_viewport_center():
    view = viewport()
    view.zoom_in()
    assert view.screen_to_tree(400, 300) == pytest.approx((400, 300))
    assert view.tree.scale == pytest.approx(1.2)


def test_zoom_is_clamped():
    view = viewport()
    before = view.screen_to_tree(100, 100)
    view.zoom(1000, anchor=(100, 100))
    assert view.tree.scale == MAX_SCALE
    assert view.screen_to_tree(100, 100) == pytest.approx(before)
    view.zoom(0.0000001)
    assert view.tree.scale == MIN_SCALE


@pytest.mark.parametrize('factor', [0, -1, float('nan'), float('inf')])
def test_zoom_rejects_bad_factor(factor):
    with pytest.raises(ValueError):
        viewport().zoom(factor)


def test_wheel_direction():
    view = viewport()
    view.wheel(-120, anchor=(0, 0))
    assert view.tree.scale == pytest.approx(1.1)
    view.wheel(120, anchor=(0, 0))
    view.wheel(120, anchor=(0, 0))
    assert view.tree.scale == pytest.approx(1 / 1.1)


def test_zoom_out_step():
    view = viewport()
    view.zoom_out()
    assert view.tree.scale == pytest.approx(0.8)


def test_pan_targets_are_independent():
    view = viewport()
    assert view.pan_by(10, -5) == {'tree_x': 10, 'tree_y': -5, 'tree_scale': 1.0}
    assert view.pan_by(3, 4, target='title') == {'title_x': 403, 'title_y': 84}
    assert view.tree.offset_x == 10
    with pytest.raises(ValueError):
        view.pan_by(1, 1, target='background')
    with pytest.raises(ValueError):
        view.pan_by(1, 1, target=['tree'])


# ==================== AUTO-FIT ====================

def test_auto_fit_scales_and_centers():
    view = viewport()
    patch = view.auto_fit(Bounds(0, 1000, 0, 500), padding=120)
    assert view.tree.scale == pytest.approx(0.56)
    assert view.tree.offset_x == pytest.approx(400 - 500 * 0.56)
    assert view.tree.offset_y == pytest.approx(300 - 250 * 0.56)
    assert set(patch) == {'tree_x', 'tree_y', 'tree_scale'}


def test_auto_fit_never_enlarges():
    view = viewport()
    view.auto_fit(Bounds(-50, 50, 0, 100))
    assert view.tree.scale == 1
    assert view.tree_to_screen(0, 50) == pytest.approx((400, 300))


@pytest.mark.parametrize('bounds', [None, Bounds(0, 0, 0, 100), Bounds(0, 100, 5, 5)])
def test_auto_fit_skips_degenerate_bounds(bounds):
    view = viewport(tree=Transform(7, 8, 2))
    assert view.auto_fit(bounds) is None
    assert view.tree == Transform(7, 8, 2)


def test_auto_fit_once_per_member_set():
    view = viewport()
    bounds = Bounds(0, 1000, 0, 500)
    assert view.ensure_fitted(bounds, member_set_key([{'id': 1}])) is not None
    view.pan_by(-500, 0)
    view.tree.offset_x = 0
    view.tree.offset_y = 0
    assert view.ensure_fitted(bounds, member_set_key([{'id': 1}])) is None
    assert view.ensure_fitted(bounds, member_set_key([{'id': 1}, {'id': 2}])) is not None


def test_persisted_offset_prevents_auto_fit():
    view = ViewportTransform.from_config({'tree_x': 15, 'tree_y': 0, 'tree_scale': 0.5}, 800, 600)
    assert view.ensure_fitted(Bounds(0, 1000, 0, 500), (1, (1,))) is None
    assert view.tree == Transform(15, 0, 0.5)


def test_no_auto_fit_before_viewport_is_measured():
    view = ViewportTransform()
    assert view.ensure_fitted(Bounds(0, 1000, 0, 500), (1, (1,))) is None
    view.resize(800, 600)
    assert view.ensure_fitted(Bounds(0, 1000, 0, 500), (1, (1,))) is not None


def test_reset_rearms_auto_fit():
    view = viewport()
    key = (1, (1,))
    view.ensure_fitted(Bounds(0, 1000, 0, 500), key)
    assert view.reset() == {'tree_x': None, 'tree_y': None, 'tree_scale': None}
    assert view.tree == Transform()
    assert view.ensure_fitted(Bounds(0, 1000, 0, 500), key) is not None


def test_member_set_key_ignores_order():
    assert member_set_key([{'id': 2}, {'id': 1}]) == member_set_key([{'id': 1}, {'id': 2}])


# ==================== CONFIG ====================

def test_from_config_defaults():
    view = ViewportTransform.from_config({}, width=1000, height=700)
    assert view.tree == Transform()
    assert view.title == Transform(500, 80)
    assert view.overlay == Transform()


def test_from_config_reads_transforms():
    config = {'tree_x': '12.5', 'tree_y': -4, 'tree_scale': 0.75,
              'title_x': 60, 'title_y': 70, 'overlay_x': 1, 'overlay_y': 2, 'overlay_scale': 3}
    view = ViewportTransform.from_config(config)
    assert view.tree == Transform(12.5, -4, 0.75)
    assert view.title == Transform(60, 70)
    assert view.overlay == Transform(1, 2, 3)


def test_malformed_transform_falls_back(caplog):
    with caplog.at_level(logging.WARNING):
        view = ViewportTransform.from_config({'tree_x': 'left', 'tree_y': 5, 'overlay_scale': 0})
    assert view.tree == Transform()
    assert view.overlay == Transform()
    assert 'tree_x' in caplog.text


# ==================== DEBOUNCED FLUSH ====================

def test_flusher_coalesces_changes(timers):
    written = []
    flusher = DebouncedFlusher(written.append, timer_factory=timers)
    flusher.schedule({'tree_x': 1})
    flusher.schedule({'tree_x': 2, 'tree_y': 3})
    assert timers.created[0].cancelled
    assert timers.created[1].started
    assert timers.created[1].delay == 0.5
    assert written == []

    timers.created[1].fire()
    assert written == [{'tree_x': 2, 'tree_y': 3}]
    assert flusher.pending == {}


def test_flush_without_pending_is_noop(timers):
    written = []
    flusher = DebouncedFlusher(written.append, timer_factory=timers)
    assert flusher.flush() is None
    assert written == []


def test_cancel_drops_pending(timers):
    written = []
    flusher = DebouncedFlusher(written.append, timer_factory=timers)
    flusher.schedule({'tree_x': 1})
    flusher.cancel()
    assert flusher.flush() is None
    assert written == []


def test_sink_errors_are_logged(timers, caplog):
    def broken_sink(patch):
        raise IOError('disk full')

    flusher = DebouncedFlusher(broken_sink, timer_factory=timers)
    flusher.schedule({'tree_x': 1})
    with caplog.at_level(logging.ERROR):
        assert flusher.flush() == {'tree_x': 1}
    assert 'Config write failed' in caplog.text


def test_viewport_schedules_and_drag_flushes(timers):
    written = []
    view = viewport(flusher=DebouncedFlusher(written.append, timer_factory=timers))
    view.zoom_in()
    view.pan_by(5, 5)
    assert written == []

    view.drag_end('overlay', 40, 50)
    assert len(written) == 1
    assert written[0]['overlay_x'] == 40
    assert written[0]['overlay_y'] == 50
    assert set(written[0]) == {'tree_x', 'tree_y', 'tree_scale', 'overlay_x', 'overlay_y'}


def test_reset_flushes_immediately(timers):
    written = []
    view = viewport(flusher=DebouncedFlusher(written.append, timer_factory=timers))
    view.reset()
    assert written == [{'tree_x': None, 'tree_y': None, 'tree_scale': None}]


def test_overlay_scale(timers):
    written = []
    view = viewport(flusher=DebouncedFlusher(written.append, timer_factory=timers))
    assert view.set_overlay_scale(1.5) == {'overlay_scale': 1.5}
    timers.created[-1].fire()
    assert written == [{'overlay_scale': 1.5}]
    with pytest.raises(ValueError):
        view.set_overlay_scale(0)
