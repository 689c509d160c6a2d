"""Root test configuration for Panoptes.

The configuration store, the table provisioner and the user context are
process-wide state. Every test starts from a pristine, uninitialized store and
an empty context so tests never observe each other's setup.

Production code initializes once per process — see panoptes/config.py.
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from panoptes.audit.database_transport import provisioner
from panoptes.config import reset_config
from panoptes.context import clear_user_context


@pytest.fixture(autouse=True)
def reset_panoptes_state(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Reset config, provisioning state and user context around every test.

    PANOPTES_* variables from the developer's shell must not leak into
    config-file tests.
    """
    for var in ("PANOPTES_CONFIG", "PANOPTES_APP_NAME", "PANOPTES_ENVIRONMENT"):
        monkeypatch.delenv(var, raising=False)
    reset_config()
    provisioner.reset()
    clear_user_context()
    yield
    reset_config()
    provisioner.reset()
    clear_user_context()
