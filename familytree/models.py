from familytree import db
from familytree.records import GENDERS
from familytree.view_config import CONFIG_KEYS, DEFAULT_CONFIG, DEFAULT_FONT_FAMILY, DEFAULT_FONT_SIZE, DEFAULT_TITLE

# Fields a client may write on a member
MEMBER_FIELDS = (
    'name', 'gender', 'birth_date', 'death_date', 'biography', 'photo_url',
    'address', 'phone', 'burial_place', 'father_id', 'mother_id', 'spouse_id',
    'generation', 'branch_name', 'child_order', 'spouse_order',
)


class Member(db.Model):
    """Family member - one row per person in the tree"""
    __tablename__ = 'members'

    id = db.Column(db.Integer, primary_key=True)

    # Basic data
    name = db.Column(db.String(200), nullable=False)
    gender = db.Column(db.String(10), nullable=False, default='other')  # male, female, other
    generation = db.Column(db.Integer, default=1)
    branch_name = db.Column(db.String(200))

    # Dates are free text ('1921', '12/03/1921', ...)
    birth_date = db.Column(db.String(50))
    death_date = db.Column(db.String(50))

    biography = db.Column(db.Text)
    photo_url = db.Column(db.String(500))
    address = db.Column(db.String(300))
    phone = db.Column(db.String(50))
    burial_place = db.Column(db.String(200))

    # Relationships: plain ids, a dangling id is tolerated by the layout
    father_id = db.Column(db.Integer)
    mother_id = db.Column(db.Integer)
    spouse_id = db.Column(db.Integer)

    # Sibling / spouse ordering hints
    child_order = db.Column(db.Integer)
    spouse_order = db.Column(db.Integer)

    def apply(self, data):
        """Copy the writable fields present in data onto the row"""
        for field in MEMBER_FIELDS:
            if field in data:
                setattr(self, field, data[field])
        if self.gender not in GENDERS:
            self.gender = 'other'
        if not self.generation:
            self.generation = 1

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'gender': self.gender,
            'birth_date': self.birth_date,
            'death_date': self.death_date,
            'biography': self.biography,
            'photo_url': self.photo_url,
            'address': self.address,
            'phone': self.phone,
            'burial_place': self.burial_place,
            'father_id': self.father_id,
            'mother_id': self.mother_id,
            'spouse_id': self.spouse_id,
            'generation': self.generation,
            'branch_name': self.branch_name,
            'child_order': self.child_order,
            'spouse_order': self.spouse_order,
        }


class TreeConfig(db.Model):
    """View configuration of the tree - a single row with id 1"""
    __tablename__ = 'config'

    id = db.Column(db.Integer, primary_key=True)

    # Title
    title = db.Column(db.String(300), default=DEFAULT_TITLE)
    title_lines = db.Column(db.Text)  # JSON string of [{text, fontSize}]
    title_x = db.Column(db.Float, default=DEFAULT_CONFIG['title_x'])
    title_y = db.Column(db.Float, default=DEFAULT_CONFIG['title_y'])
    title_font_size = db.Column(db.Float, default=DEFAULT_FONT_SIZE)
    title_font_family = db.Column(db.String(100), default=DEFAULT_FONT_FAMILY)

    # Images
    background_url = db.Column(db.String(500))
    overlay_url = db.Column(db.String(500))
    overlay_x = db.Column(db.Float, default=0)
    overlay_y = db.Column(db.Float, default=0)
    overlay_scale = db.Column(db.Float, default=1.0)

    # Tree transform; null after a reset
    tree_x = db.Column(db.Float, default=0)
    tree_y = db.Column(db.Float, default=0)
    tree_scale = db.Column(db.Float, default=1.0)

    @staticmethod
    def get_or_create():
        """The single config row, created with defaults on first use"""
        config = db.session.get(TreeConfig, 1)
        if config is None:
            config = TreeConfig(id=1, **DEFAULT_CONFIG)
            db.session.add(config)
            db.session.flush()
        return config

    def apply_patch(self, patch):
        """Write an already filtered patch; returns the keys written"""
        for key, value in patch.items():
            setattr(self, key, value)
        return sorted(patch)

    def to_dict(self):
        data = {'id': self.id}
        data.update({key: getattr(self, key) for key in CONFIG_KEYS})
        return data
