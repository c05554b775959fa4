from django.urls import path
from . import api_views

urlpatterns = [
    path("delivery/<int:pk>/pick/", api_views.api_pick_delivery, name="api-pick-delivery"),
    path("delivery/<int:pk>/pack/", api_views.api_pack_delivery, name="api-pack-delivery"),
    path("transfer/<int:pk>/in-transit/", api_views.api_transfer_in_transit, name="api-transfer-in-transit"),
    path("<str:kind>/", api_views.api_create_document, name="api-create-document"),
    path("<str:kind>/<int:pk>/", api_views.api_document, name="api-document"),
    path("<str:kind>/<int:pk>/validate/", api_views.api_validate_document, name="api-validate-document"),
    path("<str:kind>/<int:pk>/cancel/", api_views.api_cancel_document, name="api-cancel-document"),
]
