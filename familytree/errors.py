"""
Error types of the family tree layout.

Every error below is recovered inside the layout core: callers log it and
continue with a best-effort result.
"""


class LayoutError(Exception):
    """Base class for recoverable layout problems"""


class MemberReferenceError(LayoutError):
    """A relationship field points to an id that is not in the member list"""

    def __init__(self, member_id, field, target_id):
        self.member_id = member_id
        self.field = field
        self.target_id = target_id
        super().__init__(f'Member {member_id}: {field}={target_id} does not resolve')


class DegenerateBoundsError(LayoutError):
    """No placed member, so there is nothing to measure"""


class MalformedConfigError(LayoutError):
    """Stored view configuration (title lines, transforms) cannot be parsed"""

    def __init__(self, key, value, reason=None):
        self.key = key
        self.value = value
        message = f'Malformed config value for {key!r}: {value!r}'
        if reason:
            message += f' ({reason})'
        super().__init__(message)
