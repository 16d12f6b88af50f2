from django.urls import path
from rest_framework.routers import DefaultRouter

from .views import (
    AlbumViewSet,
    PhotoViewSet,
    get_asset,
    presigned_url,
    search_photos,
    signed_asset,
)

router = DefaultRouter()
router.register("albums", AlbumViewSet, basename="album")
router.register("photos", PhotoViewSet, basename="photo")

urlpatterns = router.urls + [
    path("assets/signed/<str:token>/", signed_asset, name="signed-asset"),
    path("assets/<str:variant>/<str:blob_id>/", get_asset, name="asset"),
    path("assets/<str:variant>/<str:blob_id>/url/", presigned_url, name="asset-url"),
    path("search/", search_photos, name="search"),
]
