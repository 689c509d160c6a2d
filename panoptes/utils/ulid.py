"""ULID generation for Panoptes request identifiers.

Used by the HTTP context middleware when an incoming request carries no
``X-Request-ID`` header. ULIDs sort by creation time, which keeps audit rows
for one request adjacent when ordered by ``request_id``.

Uses the ``python-ulid`` library; do not hand-roll ULID generation.
"""

from __future__ import annotations

from ulid import ULID


def generate_ulid() -> str:
    """Generate a new ULID as a 26-character uppercase string.

    Example::

        request_id = generate_ulid()
        # "01KJ0JRVHYA7KX32VPN5ZSCTMV"
        assert len(request_id) == 26
    """
    return str(ULID())
