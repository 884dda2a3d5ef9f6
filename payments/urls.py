from django.urls import path

from . import views

app_name = "payments"
urlpatterns = [
    path("create", views.create_payment_view, name="create"),
    path("callback", views.callback_view, name="callback"),
    path("status", views.payment_status_view, name="status"),
]
