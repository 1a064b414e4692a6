"""
Connector builder: orthogonal parent-child elbows and spousal lines.

Connectors are derived from a LayoutResult on demand and hold no state.
"""

import logging
from dataclasses import dataclass
from typing import Tuple

from familytree.relationships import build_index

logger = logging.getLogger(__name__)

PARENT_CHILD = 'parentChild'
SPOUSAL = 'spousal'


@dataclass(frozen=True)
class Connector:
    kind: str
    points: Tuple[Tuple[float, float], ...]
    member_ids: Tuple[int, ...] = ()

    @property
    def dashed(self):
        return self.kind == SPOUSAL

    def flat_points(self):
        """[x0, y0, x1, y1, ...] as canvas polylines expect"""
        return [coord for point in self.points for coord in point]

    def to_dict(self):
        return {
            'kind': self.kind,
            'points': self.flat_points(),
            'dashed': self.dashed,
            'member_ids': list(self.member_ids),
        }


def _elbow(start_x, start_y, child_pos, metrics):
    """Down from start, across at half the vertical gap, down into the child's top"""
    mid_y = start_y + metrics.vertical_gap / 2
    child_x = child_pos.x + metrics.node_width / 2
    return (
        (start_x, start_y),
        (start_x, mid_y),
        (child_x, mid_y),
        (child_x, child_pos.y),
    )


def parent_connector(index, layout, member_id):
    """
    Connector from the parents of member_id, or None.

    Mutual spouse parents share one line from the midpoint between them;
    otherwise a single line comes from the father, or from the mother when
    the father cannot be resolved.
    """
    metrics = layout.metrics
    position = layout.get(member_id)
    if position is None:
        return None

    father_id = index.father_of(member_id)
    mother_id = index.mother_of(member_id)
    father_pos = layout.get(father_id)
    mother_pos = layout.get(mother_id)

    if father_pos is not None and mother_pos is not None and index.are_spouses(father_id, mother_id):
        couple_x = (father_pos.x + mother_pos.x + metrics.node_width) / 2
        couple_bottom = max(father_pos.y, mother_pos.y) + metrics.node_height
        points = _elbow(couple_x, couple_bottom, position, metrics)
        return Connector(PARENT_CHILD, points, (father_id, mother_id, member_id))

    for parent_id, parent_pos in ((father_id, father_pos), (mother_id, mother_pos)):
        if parent_pos is None:
            continue
        points = _elbow(parent_pos.x + metrics.node_width / 2,
                        parent_pos.y + metrics.node_height,
                        position, metrics)
        return Connector(PARENT_CHILD, points, (parent_id, member_id))
    return None


def spousal_connector(layout, first_id, second_id):
    """Straight line between the facing edges of two boxes, at mid-height"""
    metrics = layout.metrics
    first = layout.get(first_id)
    second = layout.get(second_id)
    if first is None or second is None:
        return None
    if first.x > second.x:
        first_id, second_id = second_id, first_id
        first, second = second, first
    half = metrics.node_height / 2
    points = (
        (first.x + metrics.node_width, first.y + half),
        (second.x, second.y + half),
    )
    return Connector(SPOUSAL, points, (first_id, second_id))


def compute_connectors(members, layout):
    """
    All connectors of a layout: parent-child elbows first, then one spousal
    line per spouse pair (a one-directional spouse link counts as a pair).
    """
    index = build_index(members)
    connectors = []
    pairs = set()

    for member in index.members:
        if member.id not in layout:
            continue
        connector = parent_connector(index, layout, member.id)
        if connector is not None:
            connectors.append(connector)

    for member in index.members:
        spouse_id = index.spouse_of(member.id)
        if spouse_id is None:
            continue
        pair = frozenset((member.id, spouse_id))
        if pair in pairs:
            continue
        pairs.add(pair)
        connector = spousal_connector(layout, member.id, spouse_id)
        if connector is not None:
            connectors.append(connector)

    logger.debug('Built %d connector(s) for %d member(s)', len(connectors), len(index))
    return connectors
