from django.urls import path

from . import views

app_name = "catalog"
urlpatterns = [
    path("categories", views.categories_view, name="categories"),
    path("categories/reorder", views.categories_reorder_view, name="categories_reorder"),
    path("categories/<int:pk>", views.category_detail_view, name="category_detail"),
    path("products", views.products_view, name="products"),
    path("products/bulk", views.products_bulk_view, name="products_bulk"),
    path("products/<int:pk>", views.product_detail_view, name="product_detail"),
]
