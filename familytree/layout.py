"""
Family tree layout engine.

Turns a flat member list into node positions (top-left corner of a fixed-size
box) and an overall bounding box. Two strategies are available:

- ``subtree`` (default): every unit (a member, or a member plus same-generation
  spouse) reserves the width of its whole descendant subtree, children sit
  centred under their parents, and the result is a true tree shape.
- ``generation``: members are grouped into one row per generation and ordered
  by a parent/spouse heuristic; parent x positions are ignored, so children are
  not aligned under their parents, but rows stay compact.

Both are pure: no state survives a call, and the output only depends on member
ids and relationship fields, never on the input order.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from familytree.errors import DegenerateBoundsError
from familytree.relationships import build_index, child_sort_key

logger = logging.getLogger(__name__)

NODE_WIDTH = 180
NODE_HEIGHT = 140
HORIZONTAL_GAP = 60
VERTICAL_GAP = 120
SPOUSE_GAP = 10
BASE_Y = 250


@dataclass(frozen=True)
class LayoutMetrics:
    node_width: float = NODE_WIDTH
    node_height: float = NODE_HEIGHT
    horizontal_gap: float = HORIZONTAL_GAP
    vertical_gap: float = VERTICAL_GAP
    spouse_gap: float = SPOUSE_GAP
    base_y: float = BASE_Y

    @property
    def pair_width(self):
        """Member and spouse side by side"""
        return self.node_width * 2 + self.spouse_gap

    @property
    def row_height(self):
        return self.node_height + self.vertical_gap

    def row_y(self, generation):
        return self.base_y + (generation - 1) * self.row_height


DEFAULT_METRICS = LayoutMetrics()


@dataclass(frozen=True)
class Position:
    x: float
    y: float

    def shifted(self, dx=0.0, dy=0.0):
        return Position(self.x + dx, self.y + dy)

    def to_dict(self):
        return {'x': self.x, 'y': self.y}


@dataclass(frozen=True)
class Bounds:
    min_x: float
    max_x: float
    min_y: float
    max_y: float

    @property
    def width(self):
        return self.max_x - self.min_x

    @property
    def height(self):
        return self.max_y - self.min_y

    @property
    def center(self):
        return ((self.min_x + self.max_x) / 2, (self.min_y + self.max_y) / 2)

    def to_dict(self):
        return {
            'minX': self.min_x,
            'maxX': self.max_x,
            'minY': self.min_y,
            'maxY': self.max_y,
        }


@dataclass(frozen=True)
class LayoutResult:
    """Positions of one layout run. Replaced as a whole, never edited."""
    positions: Dict[int, Position] = field(default_factory=dict)
    bounds: Optional[Bounds] = None
    strategy: str = 'subtree'
    metrics: LayoutMetrics = DEFAULT_METRICS

    def __contains__(self, member_id):
        return member_id in self.positions

    def __len__(self):
        return len(self.positions)

    def get(self, member_id):
        if member_id is None:
            return None
        return self.positions.get(member_id)

    def to_dict(self):
        return {
            'strategy': self.strategy,
            'positions': {str(mid): pos.to_dict() for mid, pos in sorted(self.positions.items())},
            'bounds': self.bounds.to_dict() if self.bounds else None,
            'node': {'width': self.metrics.node_width, 'height': self.metrics.node_height},
        }


def compute_bounds(positions, metrics=DEFAULT_METRICS):
    """
    Bounding box around every node box.

    Raises:
        DegenerateBoundsError: positions is empty
    """
    if not positions:
        raise DegenerateBoundsError('No placed members to measure')
    xs = [p.x for p in positions.values()]
    ys = [p.y for p in positions.values()]
    return Bounds(
        min_x=min(xs),
        max_x=max(xs) + metrics.node_width,
        min_y=min(ys),
        max_y=max(ys) + metrics.node_height,
    )


def _shift_x(positions, dx):
    return {mid: pos.shifted(dx=dx) for mid, pos in positions.items()}


# ==================== SUBTREE STRATEGY ====================

class SubtreeLayout:
    """Recursive subtree-width layout, run with explicit stacks"""

    name = 'subtree'

    def __init__(self, index, metrics=DEFAULT_METRICS):
        self.index = index
        self.metrics = metrics

    def unit_candidates(self, head_id):
        """
        Children of a unit: children of the member and of its paired spouse,
        in sibling order, without the two unit members themselves.
        """
        spouse_id = self.index.paired_spouse(head_id)
        children = self.index.children_of(head_id)
        if spouse_id is not None:
            seen = {c.id for c in children}
            children.extend(c for c in self.index.children_of(spouse_id) if c.id not in seen)
            children.sort(key=child_sort_key)
        return [c.id for c in children if c.id not in (head_id, spouse_id)]

    def unit_width(self, head_id, child_widths):
        own = self.metrics.pair_width if self.index.paired_spouse(head_id) is not None else self.metrics.node_width
        if not child_widths:
            return own
        children = sum(child_widths) + self.metrics.horizontal_gap * (len(child_widths) - 1)
        return max(own, children)

    def measure(self):
        """
        Subtree width of every member, computed once per id.

        Returns (widths, unit_children). A child that would close a cycle is
        left out of its parent's unit_children, so the parent measures and
        lays out as if that child did not exist.
        """
        widths = {}
        unit_children = {}
        on_stack = set()

        for start in self.index.members:
            if start.id in widths:
                continue
            stack = [(start.id, False)]
            while stack:
                head_id, expanded = stack.pop()
                if head_id in widths:
                    continue
                candidates = self.unit_candidates(head_id)
                if not expanded:
                    if head_id in on_stack:
                        continue
                    on_stack.add(head_id)
                    stack.append((head_id, True))
                    for child_id in reversed(candidates):
                        if child_id not in widths and child_id not in on_stack:
                            stack.append((child_id, False))
                    continue

                kids = [c for c in candidates if c in widths]
                if len(kids) != len(candidates):
                    logger.warning('Cycle below member %s: %s treated as no further children',
                                   head_id, [c for c in candidates if c not in widths])
                unit_children[head_id] = kids
                widths[head_id] = self.unit_width(head_id, [widths[c] for c in kids])
                on_stack.discard(head_id)

        return widths, unit_children

    def place(self):
        widths, unit_children = self.measure()
        positions = {}
        metrics = self.metrics

        def place_unit(root_id, start_x, y):
            stack = [(root_id, start_x, y)]
            while stack:
                head_id, left, top = stack.pop()
                if head_id in positions:
                    continue
                width = widths[head_id]
                spouse_id = self.index.paired_spouse(head_id)
                if spouse_id is not None and spouse_id not in positions:
                    pair_left = left + (width - metrics.pair_width) / 2
                    positions[head_id] = Position(pair_left, top)
                    positions[spouse_id] = Position(pair_left + metrics.node_width + metrics.spouse_gap, top)
                else:
                    positions[head_id] = Position(left + (width - metrics.node_width) / 2, top)

                kids = unit_children[head_id]
                block = sum(widths[c] for c in kids) + metrics.horizontal_gap * max(len(kids) - 1, 0)
                # Children block is centred under the unit when the unit is wider
                child_x = left + max(width - block, 0) / 2
                child_y = top + metrics.row_height
                pending = []
                for child_id in kids:
                    pending.append((child_id, child_x, child_y))
                    child_x += widths[child_id] + metrics.horizontal_gap
                stack.extend(reversed(pending))

        def generation_order(member):
            return (member.generation, member.id)

        current_x = 0.0
        roots = sorted((m for m in self.index.members if self.index.is_root(m.id)), key=generation_order)
        for root in roots:
            if root.id in positions:
                continue
            place_unit(root.id, current_x, metrics.row_y(root.generation))
            current_x += widths[root.id] + metrics.horizontal_gap

        # Members without a root path (parent cycles) go to the right, on their own row
        orphans = sorted((m for m in self.index.members if m.id not in positions), key=generation_order)
        if orphans:
            logger.info('%d member(s) have no root path, appended to the right', len(orphans))
        for member in orphans:
            if member.id in positions:
                continue
            place_unit(member.id, current_x, metrics.row_y(member.generation))
            current_x += widths[member.id] + metrics.horizontal_gap

        if not positions:
            return positions
        bounds = compute_bounds(positions, metrics)
        return _shift_x(positions, -(bounds.min_x + bounds.max_x) / 2)


# ==================== GENERATION-ROW STRATEGY ====================

class GenerationRowLayout:
    """One row per generation, ordered by parent and spouse heuristics"""

    name = 'generation'

    def __init__(self, index, metrics=DEFAULT_METRICS):
        self.index = index
        self.metrics = metrics

    def row_order(self, row):
        """
        Left-to-right order of one generation row.

        Returns a list of (member_id, follows_partner) pairs; follows_partner
        is True for a spouse placed right after its partner.
        """
        index = self.index
        row_ids = [m.id for m in row]

        def has_spouse_in_row(member_id):
            return bool(index.spouses_in(member_id, row_ids))

        descendants = [m for m in row if not index.is_root(m.id) or not has_spouse_in_row(m.id)]
        descendants.sort(key=lambda m: (index.father_of(m.id) or index.mother_of(m.id) or 0,
                                        m.child_order or 0, m.id))

        row_set = set(row_ids)

        def married_elsewhere(candidate_id, member_id):
            # Mutual spouse of the candidate is another member of this row
            partner_id = index.spouse_of(candidate_id)
            return (partner_id not in (None, member_id) and partner_id in row_set
                    and index.are_spouses(candidate_id, partner_id))

        order = []
        placed = set()

        def place_with_spouses(member_id):
            if member_id in placed:
                return
            placed.add(member_id)
            order.append((member_id, False))
            remaining = [mid for mid in row_ids
                         if mid not in placed and not married_elsewhere(mid, member_id)]
            for spouse_id in index.spouses_in(member_id, remaining):
                placed.add(spouse_id)
                order.append((spouse_id, True))

        for member in descendants:
            place_with_spouses(member.id)
        # Disconnected members and spouses of spouses
        for member_id in row_ids:
            place_with_spouses(member_id)
        return order

    def place(self):
        metrics = self.metrics
        rows = {}
        for member in self.index.members:
            rows.setdefault(member.generation, []).append(member)

        positions = {}
        for generation in sorted(rows):
            y = metrics.row_y(generation)
            x = 0.0
            row_positions = {}
            for i, (member_id, follows_partner) in enumerate(self.row_order(rows[generation])):
                if i > 0:
                    x += metrics.spouse_gap if follows_partner else metrics.horizontal_gap
                row_positions[member_id] = Position(x, y)
                x += metrics.node_width
            positions.update(_shift_x(row_positions, -x / 2))
        return positions


STRATEGIES = {
    SubtreeLayout.name: SubtreeLayout,
    GenerationRowLayout.name: GenerationRowLayout,
}


def compute_layout(members, strategy='subtree', metrics=DEFAULT_METRICS):
    """
    Compute node positions and bounds for a member list.

    Args:
        members: member dicts, ORM rows, MemberRecords or a RelationshipIndex
        strategy: 'subtree' or 'generation'
        metrics: node size and gap constants

    Returns:
        LayoutResult: bounds is None when there is nothing to place

    Raises:
        ValueError: unknown strategy name
    """
    try:
        strategy_cls = STRATEGIES[strategy]
    except KeyError:
        raise ValueError(f'Unknown layout strategy: {strategy!r}') from None

    index = build_index(members)
    positions = strategy_cls(index, metrics).place()

    try:
        bounds = compute_bounds(positions, metrics)
    except DegenerateBoundsError:
        logger.debug('Empty member list, layout has no bounds')
        bounds = None

    logger.info('Layout (%s) placed %d member(s)', strategy, len(positions))
    return LayoutResult(positions=positions, bounds=bounds, strategy=strategy, metrics=metrics)
