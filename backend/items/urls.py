from django.urls import path
from . import views

urlpatterns = [
    # Items
    path('items/', views.item_list_create, name='item-list-create'),
    path('items/<int:pk>/', views.item_detail, name='item-detail'),
    path('items/move/', views.item_move, name='item-move'),
    path('items/bulk-move/', views.item_bulk_move, name='item-bulk-move'),
    path('items/uncategorized/', views.uncategorized_items, name='item-uncategorized'),
    path('items/suggestions/', views.item_suggestions, name='item-suggestions'),

    # Images
    path('items/<int:pk>/images/', views.item_images, name='item-images'),
    path('upload/', views.image_upload, name='image-upload'),
    path('images/order/', views.image_order, name='image-order'),
    path('images/<int:pk>/', views.image_detail, name='image-detail'),
]
