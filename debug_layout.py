#!/usr/bin/env python3
"""
Layout debug script - prints the computed tree row by row.
Usage: python debug_layout.py [base_url] [strategy]
"""
import sys

import requests

DEFAULT_URL = 'http://localhost:8991'


def format_rows(layout):
    """
    Text lines of a /api/tree/layout response: one line per row (same y),
    members ordered by x, followed by the bounds.
    """
    names = {m['id']: m['name'] for m in layout.get('members', [])}
    rows = {}
    for member_id, pos in layout.get('positions', {}).items():
        rows.setdefault(pos['y'], []).append((pos['x'], int(member_id)))

    lines = []
    for y in sorted(rows):
        cells = [f"{names.get(mid, '?')}#{mid}@{x:g}" for x, mid in sorted(rows[y])]
        lines.append(f'y={y:g}: ' + '  '.join(cells))

    bounds = layout.get('bounds')
    if bounds:
        lines.append('bounds: x {minX:g}..{maxX:g}, y {minY:g}..{maxY:g}'.format(**bounds))
    else:
        lines.append('bounds: (empty tree)')
    return lines


def main(argv):
    base_url = argv[1] if len(argv) > 1 else DEFAULT_URL
    params = {'strategy': argv[2]} if len(argv) > 2 else {}

    resp = requests.get(f'{base_url}/api/tree/layout', params=params, timeout=10)
    resp.raise_for_status()
    layout = resp.json()

    print(f"=== LAYOUT ({layout['strategy']}) ===")
    for line in format_rows(layout):
        print(line)

    print()
    print('=== CONNECTORS ===')
    for connector in layout.get('connectors', []):
        print(f"{connector['kind']}: {connector['member_ids']} {connector['points']}")
    return 0


if __name__ == '__main__':
    sys.exit(main(sys.argv))
