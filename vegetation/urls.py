from __future__ import annotations

from django.urls import path

from .views import (
    NdviHistoryView,
    NdviPreviewView,
    NdviTileView,
    PaletteListView,
)

urlpatterns = [
    path(
        "fields/<str:field_id>/ndvi/history/",
        NdviHistoryView.as_view(),
        name="ndvi-history",
    ),
    path(
        "fields/<str:field_id>/ndvi/preview.png",
        NdviPreviewView.as_view(),
        name="ndvi-preview",
    ),
    path(
        "fields/<str:field_id>/ndvi/tiles/<int:z>/<int:x>/<int:y>.png",
        NdviTileView.as_view(),
        name="ndvi-tile",
    ),
    path(
        "ndvi/palettes/",
        PaletteListView.as_view(),
        name="ndvi-palettes",
    ),
]
