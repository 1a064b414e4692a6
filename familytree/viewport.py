"""
Viewport transform model: pan, zoom, drag and auto-fit state of a tree view.

Three independent transforms are kept: the tree group, the title block and
the overlay image. Every change produces a partial config patch (only the
changed keys) that goes to a DebouncedFlusher; the flusher coalesces rapid
updates into one write.
"""

import logging
import math
import threading
from dataclasses import dataclass

from familytree.errors import DegenerateBoundsError, MalformedConfigError
from familytree.view_config import has_persisted_offset, parse_number

logger = logging.getLogger(__name__)

MIN_SCALE = 0.05
MAX_SCALE = 8.0

ZOOM_IN_STEP = 1.2
ZOOM_OUT_STEP = 0.8
WHEEL_STEP = 1.1

DEFAULT_PADDING = 120
FLUSH_DELAY = 0.5
TITLE_DEFAULT_Y = 80

# target -> (x key, y key, scale key)
CONFIG_FIELDS = {
    'tree': ('tree_x', 'tree_y', 'tree_scale'),
    'title': ('title_x', 'title_y', None),
    'overlay': ('overlay_x', 'overlay_y', 'overlay_scale'),
}


def clamp_scale(scale):
    return max(MIN_SCALE, min(MAX_SCALE, scale))


@dataclass
class Transform:
    offset_x: float = 0.0
    offset_y: float = 0.0
    scale: float = 1.0

    def apply(self, x, y):
        """Local (tree) coordinates -> screen coordinates"""
        return (x * self.scale + self.offset_x, y * self.scale + self.offset_y)

    def invert(self, sx, sy):
        """Screen coordinates -> local (tree) coordinates"""
        return ((sx - self.offset_x) / self.scale, (sy - self.offset_y) / self.scale)

    def to_dict(self):
        return {'x': self.offset_x, 'y': self.offset_y, 'scale': self.scale}


class DebouncedFlusher:
    """
    Coalesces config patches into one write after a quiet period.

    schedule() merges the patch into the pending one and restarts the timer,
    so only the last of a burst of changes starts a write. flush() writes
    immediately (drag release, reset). Write errors are logged; the caller
    never waits for, or sees, the write.
    """

    def __init__(self, sink, delay=FLUSH_DELAY, timer_factory=threading.Timer):
        self.sink = sink
        self.delay = delay
        self.timer_factory = timer_factory
        self._pending = {}
        self._timer = None
        self._lock = threading.Lock()

    @property
    def pending(self):
        with self._lock:
            return dict(self._pending)

    def schedule(self, patch):
        with self._lock:
            self._pending.update(patch)
            if self._timer is not None:
                self._timer.cancel()
            self._timer = self.timer_factory(self.delay, self.flush)
            self._timer.daemon = True
            self._timer.start()

    def cancel(self):
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._pending = {}

    def flush(self):
        """Write the pending patch now. Returns the written patch (or None)."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            patch, self._pending = self._pending, {}
        if not patch:
            return None
        try:
            self.sink(patch)
        except Exception:
            logger.exception('Config write failed for keys: %s', ', '.join(sorted(patch)))
        return patch


def _transform_from_config(config, target, default):
    """Transform of one target from stored config; identity-like default when malformed"""
    x_key, y_key, scale_key = CONFIG_FIELDS[target]
    try:
        offset_x = parse_number(config, x_key, default.offset_x)
        offset_y = parse_number(config, y_key, default.offset_y)
        scale = parse_number(config, scale_key, default.scale) if scale_key else default.scale
        if scale <= 0:
            raise MalformedConfigError(scale_key, scale, 'scale must be positive')
    except MalformedConfigError as exc:
        logger.warning('%s - using default %s transform', exc, target)
        return Transform(default.offset_x, default.offset_y, default.scale)
    return Transform(offset_x, offset_y, scale)


class ViewportTransform:
    """Pan/zoom/drag state of one view session"""

    def __init__(self, width=0, height=0, tree=None, title=None, overlay=None, flusher=None):
        self.width = width
        self.height = height
        self.tree = tree or Transform()
        self.title = title or Transform(width / 2, TITLE_DEFAULT_Y)
        self.overlay = overlay or Transform()
        self.flusher = flusher
        self._fitted_key = None

    @classmethod
    def from_config(cls, config, width=0, height=0, flusher=None):
        config = config or {}
        return cls(
            width=width,
            height=height,
            tree=_transform_from_config(config, 'tree', Transform()),
            title=_transform_from_config(config, 'title', Transform(width / 2, TITLE_DEFAULT_Y)),
            overlay=_transform_from_config(config, 'overlay', Transform()),
            flusher=flusher,
        )

    # ==================== STATE ====================

    @property
    def center(self):
        return (self.width / 2, self.height / 2)

    def resize(self, width, height):
        self.width = width
        self.height = height

    def transform_of(self, target):
        if not isinstance(target, str) or target not in CONFIG_FIELDS:
            raise ValueError(f'Unknown transform target: {target!r}')
        return getattr(self, target)

    def has_offset(self):
        return has_persisted_offset({'tree_x': self.tree.offset_x, 'tree_y': self.tree.offset_y})

    def patch_for(self, target):
        """Config keys of one target with their current values"""
        transform = self.transform_of(target)
        x_key, y_key, scale_key = CONFIG_FIELDS[target]
        patch = {x_key: transform.offset_x, y_key: transform.offset_y}
        if scale_key:
            patch[scale_key] = transform.scale
        return patch

    def to_dict(self):
        return {target: self.transform_of(target).to_dict() for target in CONFIG_FIELDS}

    def _changed(self, patch, immediate=False):
        if self.flusher is None:
            return patch
        self.flusher.schedule(patch)
        if immediate:
            self.flusher.flush()
        return patch

    # ==================== COORDINATES ====================

    def screen_to_tree(self, sx, sy):
        return self.tree.invert(sx, sy)

    def tree_to_screen(self, x, y):
        return self.tree.apply(x, y)

    # ==================== INTERACTION ====================

    def zoom(self, factor, anchor=None):
        """
        Scale the tree by factor, keeping the screen point under anchor fixed.

        anchor defaults to the viewport centre.
        """
        if not isinstance(factor, (int, float)) or not math.isfinite(factor) or factor <= 0:
            raise ValueError(f'Zoom factor must be a positive number, got {factor!r}')
        anchor_x, anchor_y = anchor if anchor is not None else self.center
        old = self.tree
        new_scale = clamp_scale(old.scale * factor)
        applied = new_scale / old.scale
        self.tree = Transform(
            anchor_x - (anchor_x - old.offset_x) * applied,
            anchor_y - (anchor_y - old.offset_y) * applied,
            new_scale,
        )
        return self._changed(self.patch_for('tree'))

    def zoom_in(self, anchor=None):
        return self.zoom(ZOOM_IN_STEP, anchor)

    def zoom_out(self, anchor=None):
        return self.zoom(ZOOM_OUT_STEP, anchor)

    def wheel(self, delta_y, anchor):
        """Mouse wheel: scrolling up (negative delta) zooms in around the pointer"""
        factor = WHEEL_STEP if delta_y < 0 else 1 / WHEEL_STEP
        return self.zoom(factor, anchor)

    def pan_by(self, dx, dy, target='tree'):
        transform = self.transform_of(target)
        transform.offset_x += dx
        transform.offset_y += dy
        return self._changed(self.patch_for(target))

    def drag_end(self, target, x, y):
        """Drag released at (x, y): store the new offset and write it now"""
        transform = self.transform_of(target)
        transform.offset_x = x
        transform.offset_y = y
        x_key, y_key, _ = CONFIG_FIELDS[target]
        return self._changed({x_key: x, y_key: y}, immediate=True)

    def set_overlay_scale(self, scale):
        if scale <= 0:
            raise ValueError(f'Overlay scale must be positive, got {scale!r}')
        self.overlay.scale = scale
        return self._changed({'overlay_scale': scale})

    def auto_fit(self, bounds, padding=DEFAULT_PADDING):
        """
        Fit bounds into the viewport, centred, never scaled above 1.

        Returns the config patch, or None when there is nothing to fit.
        """
        try:
            if bounds is None or bounds.width <= 0 or bounds.height <= 0:
                raise DegenerateBoundsError(f'Cannot fit bounds {bounds!r}')
        except DegenerateBoundsError as exc:
            logger.debug('%s - auto-fit skipped', exc)
            return None

        scale = min(
            (self.width - padding * 2) / bounds.width,
            (self.height - padding * 2) / bounds.height,
            1,
        )
        scale = clamp_scale(scale)
        center_x, center_y = self.center
        tree_cx, tree_cy = bounds.center
        self.tree = Transform(center_x - tree_cx * scale, center_y - tree_cy * scale, scale)
        return self._changed(self.patch_for('tree'))

    def ensure_fitted(self, bounds, member_key, padding=DEFAULT_PADDING):
        """
        Auto-fit once per distinct member set, and only when the tree has no
        stored offset. Returns the patch when a fit happened.
        """
        if self.width <= 0 or self.height <= 0:
            return None
        if member_key == self._fitted_key:
            return None
        self._fitted_key = member_key
        if self.has_offset():
            return None
        return self.auto_fit(bounds, padding)

    def reset(self):
        """Forget the stored tree position; the next ensure_fitted() fits again"""
        self.tree = Transform()
        self._fitted_key = None
        return self._changed({'tree_x': None, 'tree_y': None, 'tree_scale': None}, immediate=True)


def member_set_key(members):
    """Identity of a member list for the once-per-load auto-fit"""
    ids = []
    for member in members or []:
        member_id = member.get('id') if isinstance(member, dict) else getattr(member, 'id', None)
        if member_id is not None:
            ids.append(member_id)
    return (len(ids), tuple(sorted(ids, key=str)))
