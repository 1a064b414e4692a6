"""
Member records - the plain input of the layout engine.

A MemberRecord is built either from a JSON dict (API payload, fixtures) or from
a Member ORM row. Parsing is tolerant: bad ids become None, a bad generation
becomes 1, so a broken record still gets laid out.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

GENDERS = ('male', 'female', 'other')

YEAR_PATTERN = re.compile(r'\d{4}')

# Fields that point at another member
REFERENCE_FIELDS = ('father_id', 'mother_id', 'spouse_id')


def extract_year(date_text):
    """First 4-digit run of a free-text date ('12/03/1921' -> '1921')"""
    if not date_text:
        return None
    match = YEAR_PATTERN.search(str(date_text))
    return match.group(0) if match else None


def _blank_to_none(value):
    if isinstance(value, str) and value.strip() == '':
        return None
    return value


def _parse_int(value, field, member_id=None):
    value = _blank_to_none(value)
    if value is None:
        return None
    if isinstance(value, bool):
        logger.warning('Member %s: boolean %s=%r ignored', member_id, field, value)
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning('Member %s: non-integer %s=%r ignored', member_id, field, value)
        return None


@dataclass(frozen=True)
class MemberRecord:
    id: int
    name: str = ''
    gender: str = 'other'
    generation: int = 1
    birth_date: Optional[str] = None
    death_date: Optional[str] = None
    father_id: Optional[int] = None
    mother_id: Optional[int] = None
    spouse_id: Optional[int] = None
    child_order: Optional[int] = None
    spouse_order: Optional[int] = None
    biography: Optional[str] = None
    photo_url: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    burial_place: Optional[str] = None
    branch_name: Optional[str] = None

    @classmethod
    def from_dict(cls, data):
        """
        Build a record from a JSON-like dict.

        Returns None when the dict has no usable id - such a row cannot be
        referenced by anyone and is skipped by the index.
        """
        member_id = _parse_int(data.get('id'), 'id')
        if member_id is None:
            logger.warning('Member without usable id skipped: %r', data.get('name'))
            return None

        gender = _blank_to_none(data.get('gender')) or 'other'
        if gender not in GENDERS:
            gender = 'other'

        generation = _parse_int(data.get('generation'), 'generation', member_id)
        if generation is None or generation < 1:
            generation = 1

        text = {}
        for field in ('birth_date', 'death_date', 'biography', 'photo_url',
                      'address', 'phone', 'burial_place', 'branch_name'):
            value = _blank_to_none(data.get(field))
            text[field] = str(value) if value is not None else None

        return cls(
            id=member_id,
            name=str(data.get('name') or ''),
            gender=gender,
            generation=generation,
            father_id=_parse_int(data.get('father_id'), 'father_id', member_id),
            mother_id=_parse_int(data.get('mother_id'), 'mother_id', member_id),
            spouse_id=_parse_int(data.get('spouse_id'), 'spouse_id', member_id),
            child_order=_parse_int(data.get('child_order'), 'child_order', member_id),
            spouse_order=_parse_int(data.get('spouse_order'), 'spouse_order', member_id),
            **text
        )

    @classmethod
    def coerce(cls, item):
        """Accept a MemberRecord, a dict, or anything with a to_dict() (ORM rows)"""
        if isinstance(item, cls):
            return item
        if isinstance(item, dict):
            return cls.from_dict(item)
        if hasattr(item, 'to_dict'):
            return cls.from_dict(item.to_dict())
        raise TypeError(f'Cannot build a member record from {type(item).__name__}')

    @property
    def birth_year(self):
        return extract_year(self.birth_date)

    @property
    def death_year(self):
        return extract_year(self.death_date)

    @property
    def is_deceased(self):
        return bool(self.death_date)

    @property
    def years_label(self):
        """Label shown under the name: '1920 - 1990', '1920' or '?'"""
        birth = self.birth_year or '?'
        death = self.death_year
        return f'{birth} - {death}' if death else birth

    @property
    def location_label(self):
        # Burial place for the deceased, home address for the living
        if self.is_deceased:
            return self.burial_place or ''
        return self.address or ''

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'gender': self.gender,
            'generation': self.generation,
            'birth_date': self.birth_date,
            'death_date': self.death_date,
            'father_id': self.father_id,
            'mother_id': self.mother_id,
            'spouse_id': self.spouse_id,
            'child_order': self.child_order,
            'spouse_order': self.spouse_order,
            'biography': self.biography,
            'photo_url': self.photo_url,
            'address': self.address,
            'phone': self.phone,
            'burial_place': self.burial_place,
            'branch_name': self.branch_name,
        }


def coerce_members(members):
    """Convert an iterable of dicts / ORM rows / records, dropping unusable rows"""
    records = []
    for item in members or []:
        record = MemberRecord.coerce(item)
        if record is not None:
            records.append(record)
    return records
