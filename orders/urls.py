from django.urls import path

from . import views

app_name = "orders"
urlpatterns = [
    path("orders", views.orders_view, name="orders"),
    path("orders/track", views.order_track_view, name="order_track"),
    path("orders/<str:ref>/status", views.order_status_view, name="order_status"),
    path("orders/<str:ref>", views.order_detail_view, name="order_detail"),
]
