"""
Relationship index: O(1) lookups over the flat member list.

Dangling references (an id that is not in the list) behave as if the field
were empty. Duplicate ids never raise: the first occurrence wins.
"""

import logging

from familytree.errors import MemberReferenceError
from familytree.records import REFERENCE_FIELDS, coerce_members

logger = logging.getLogger(__name__)


def child_sort_key(member):
    """Sibling order: child_order (missing = 0), then id"""
    return (member.child_order or 0, member.id)


def spouse_sort_key(member):
    return (member.spouse_order or 0, member.id)


class RelationshipIndex:
    """Lookup tables built once from a member list"""

    def __init__(self, members):
        self.by_id = {}
        self.duplicates = []
        self.dangling = []
        self._reported = set()

        for member in coerce_members(members):
            if member.id in self.by_id:
                self.duplicates.append(member)
                logger.warning('Duplicate member id %s ignored', member.id)
                continue
            self.by_id[member.id] = member

        self._children = {}
        for member in self.members:
            for field in REFERENCE_FIELDS:
                target_id = self.resolve(member.id, field)
                # Spouse references are only validated here, pairing is decided lazily
                if target_id is None or field == 'spouse_id':
                    continue
                siblings = self._children.setdefault(target_id, [])
                if member not in siblings:
                    siblings.append(member)

        for siblings in self._children.values():
            siblings.sort(key=child_sort_key)

        if self.dangling:
            logger.warning('%d dangling reference(s) treated as absent', len(self.dangling))

    @property
    def members(self):
        """Members in id order"""
        return sorted(self.by_id.values(), key=lambda m: m.id)

    def __len__(self):
        return len(self.by_id)

    def __contains__(self, member_id):
        return member_id in self.by_id

    def get(self, member_id):
        if member_id is None:
            return None
        return self.by_id.get(member_id)

    def lookup(self, member_id, field):
        """
        Strict lookup of a relationship field.

        Raises:
            MemberReferenceError: the field holds an id that is not in the index
        """
        member = self.by_id.get(member_id)
        if member is None:
            raise KeyError(member_id)
        target_id = getattr(member, field)
        if target_id is None:
            return None
        if target_id not in self.by_id or target_id == member_id:
            raise MemberReferenceError(member_id, field, target_id)
        return self.by_id[target_id]

    def resolve(self, member_id, field):
        """Tolerant lookup: the referenced id, or None when it does not resolve"""
        try:
            target = self.lookup(member_id, field)
        except MemberReferenceError as exc:
            if (exc.member_id, exc.field) not in self._reported:
                self._reported.add((exc.member_id, exc.field))
                self.dangling.append(exc)
                logger.debug('%s', exc)
            return None
        return target.id if target is not None else None

    def father_of(self, member_id):
        return self.resolve(member_id, 'father_id')

    def mother_of(self, member_id):
        return self.resolve(member_id, 'mother_id')

    def parents_of(self, member_id):
        return [pid for pid in (self.father_of(member_id), self.mother_of(member_id)) if pid is not None]

    def is_root(self, member_id):
        """A member without any resolvable parent"""
        return not self.parents_of(member_id)

    def children_of(self, member_id):
        """Children as father or mother, in sibling order"""
        return list(self._children.get(member_id, []))

    def spouse_of(self, member_id):
        """Spouse id as recorded on this member (the referencing side only)"""
        return self.resolve(member_id, 'spouse_id')

    def are_spouses(self, first_id, second_id):
        """Both members point at each other"""
        if first_id is None or second_id is None:
            return False
        return self.spouse_of(first_id) == second_id and self.spouse_of(second_id) == first_id

    def paired_spouse(self, member_id):
        """
        Spouse drawn side by side with the member, or None.

        The spouse must share the member's generation, and its own spouse_id
        must be empty (or dangling) or point back. A spouse that is married
        to somebody else on record is not pulled away from that partner.
        """
        spouse_id = self.spouse_of(member_id)
        if spouse_id is None:
            return None
        member = self.by_id[member_id]
        spouse = self.by_id[spouse_id]
        if spouse.generation != member.generation:
            return None
        back = self.spouse_of(spouse_id)
        if back is not None and back != member_id:
            return None
        return spouse_id

    def spouses_in(self, member_id, candidate_ids):
        """
        Members of candidate_ids linked to member_id as spouse, in either
        direction: the mutual spouse first, then by spouse_order and id.
        """
        own = self.spouse_of(member_id)
        found = []
        for candidate_id in candidate_ids:
            if candidate_id == member_id:
                continue
            if candidate_id == own or self.spouse_of(candidate_id) == member_id:
                found.append(self.by_id[candidate_id])
        found.sort(key=lambda m: (not self.are_spouses(member_id, m.id),) + spouse_sort_key(m))
        return [m.id for m in found]


def build_index(members):
    if isinstance(members, RelationshipIndex):
        return members
    return RelationshipIndex(members)
