"""
View configuration: the keys a client may store, title lines, transforms.

Stored values come back from the database or from the client as-is, so every
parser here falls back to a default instead of failing the render.
"""

import json
import logging
import math
from dataclasses import dataclass

from familytree.errors import MalformedConfigError

logger = logging.getLogger(__name__)

CONFIG_KEYS = (
    'title', 'title_lines', 'title_font_size', 'title_font_family',
    'background_url', 'overlay_url',
    'overlay_x', 'overlay_y', 'overlay_scale',
    'tree_x', 'tree_y', 'tree_scale',
    'title_x', 'title_y',
)

NUMERIC_KEYS = (
    'title_font_size',
    'overlay_x', 'overlay_y', 'overlay_scale',
    'tree_x', 'tree_y', 'tree_scale',
    'title_x', 'title_y',
)

DEFAULT_TITLE = 'Gia Phả Gia Đình'
DEFAULT_FONT_SIZE = 48
DEFAULT_FONT_FAMILY = 'Cormorant Garamond'
LINE_HEIGHT = 1.2

DEFAULT_CONFIG = {
    'title': DEFAULT_TITLE,
    'title_lines': None,
    'title_font_size': DEFAULT_FONT_SIZE,
    'title_font_family': DEFAULT_FONT_FAMILY,
    'background_url': None,
    'overlay_url': None,
    'overlay_x': 0,
    'overlay_y': 0,
    'overlay_scale': 1.0,
    'tree_x': 0,
    'tree_y': 0,
    'tree_scale': 1.0,
    'title_x': 50,
    'title_y': 50,
}


def filter_config_patch(data):
    """
    Keep only the accepted config keys of a partial update.

    Unknown keys (including 'id') are dropped, not rejected.
    """
    if not isinstance(data, dict):
        return {}
    patch = {key: data[key] for key in CONFIG_KEYS if key in data}
    ignored = sorted(set(data) - set(patch))
    if ignored:
        logger.debug('Ignored config keys: %s', ', '.join(map(str, ignored)))
    return patch


@dataclass(frozen=True)
class TitleLine:
    text: str
    font_size: float = DEFAULT_FONT_SIZE

    def to_dict(self):
        return {'text': self.text, 'fontSize': self.font_size}


def _default_font_size(config):
    size = config.get('title_font_size')
    try:
        size = float(size)
    except (TypeError, ValueError):
        return DEFAULT_FONT_SIZE
    return size if size > 0 else DEFAULT_FONT_SIZE


def decode_title_lines(config):
    """
    Strict decoding of the title_lines JSON string.

    Raises:
        MalformedConfigError: not JSON, not a list, or an entry without text
    """
    raw = config.get('title_lines')
    default_size = _default_font_size(config)
    try:
        entries = json.loads(raw) if isinstance(raw, str) else raw
    except ValueError as exc:
        raise MalformedConfigError('title_lines', raw, str(exc)) from exc
    if not isinstance(entries, list) or not entries:
        raise MalformedConfigError('title_lines', raw, 'expected a non-empty list')

    lines = []
    for entry in entries:
        if not isinstance(entry, dict) or not isinstance(entry.get('text', ''), str):
            raise MalformedConfigError('title_lines', raw, f'bad entry {entry!r}')
        size = entry.get('fontSize') or default_size
        try:
            size = float(size)
        except (TypeError, ValueError) as exc:
            raise MalformedConfigError('title_lines', raw, f'bad fontSize {size!r}') from exc
        lines.append(TitleLine(text=entry.get('text', ''), font_size=size))
    return lines


def parse_title_lines(config):
    """Title lines, or the single-line title when title_lines is missing or broken"""
    config = config or {}
    fallback = [TitleLine(text=config.get('title') or DEFAULT_TITLE, font_size=_default_font_size(config))]
    if not config.get('title_lines'):
        return fallback
    try:
        return decode_title_lines(config)
    except MalformedConfigError as exc:
        logger.warning('%s - falling back to single-line title', exc)
        return fallback


def title_block_layout(lines):
    """[(line, y offset)] with each line 1.2 x its font size below the previous"""
    placed = []
    current_y = 0.0
    for line in lines:
        placed.append((line, current_y))
        current_y += line.font_size * LINE_HEIGHT
    return placed


def parse_number(config, key, default):
    """
    Numeric config value; unset (None or '') gives the default.

    Raises:
        MalformedConfigError: a value that is not a finite number
    """
    value = config.get(key)
    if value is None or value == '':
        return default
    if isinstance(value, bool):
        raise MalformedConfigError(key, value, 'boolean')
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise MalformedConfigError(key, value, 'not a number') from exc
    if not math.isfinite(number):
        raise MalformedConfigError(key, value, 'not finite')
    return number


def validate_config_patch(patch):
    """
    Numeric keys as floats (None kept, it clears the value).

    Raises:
        MalformedConfigError: a numeric key holding something else
    """
    checked = dict(patch)
    for key in NUMERIC_KEYS:
        if key in checked and checked[key] is not None:
            checked[key] = parse_number(checked, key, None)
    return checked


def has_persisted_offset(config):
    """True when the tree was moved before (tree_x or tree_y set and non-zero)"""
    config = config or {}
    for key in ('tree_x', 'tree_y'):
        try:
            if parse_number(config, key, 0.0):
                return True
        except MalformedConfigError:
            continue
    return False
