from __future__ import annotations

from django.apps import AppConfig


class VegetationConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "vegetation"
    verbose_name = "Field vegetation"
