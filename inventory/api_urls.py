from django.urls import path
from . import api_views

urlpatterns = [
    path("stock/low/", api_views.api_low_stock, name="api-low-stock"),
    path("stock/<int:product_id>/", api_views.api_stock_level, name="api-stock-level"),
    path("ledger/", api_views.api_ledger_history, name="api-ledger-history"),
]
