"""Settings used by the django-stubs mypy plugin.

Provider credentials get placeholder values so `config.settings` imports
without a configured environment.
"""

from __future__ import annotations

import os

for _name, _placeholder in (
    ("DJANGO_SECRET_KEY", "mypy-only-not-for-prod"),
    ("COPERNICUS_CLIENT_ID", "mypy-client"),
    ("COPERNICUS_CLIENT_SECRET", "mypy-secret"),
    ("AGROMONITORING_API_KEY", "mypy-key"),
):
    os.environ.setdefault(_name, _placeholder)

from .settings import *  # noqa: F401,F403,E402

DEBUG = False
USE_TZ = True
CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.dummy.DummyCache",
    }
}
