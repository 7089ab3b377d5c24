"""Random name generation for stored objects."""

from cuid2 import cuid_wrapper

_cuid = cuid_wrapper()


def generate_cuid() -> str:
    """Collision-resistant lowercase id (CUID2); the stem of generated object names."""
    return str(_cuid())
