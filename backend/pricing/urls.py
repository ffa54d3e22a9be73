from django.urls import path
from .views import price_history_list_create, price_history_detail

urlpatterns = [
    path('items/<int:item_pk>/price-history/', price_history_list_create, name='price-history-list-create'),
    path('items/<int:item_pk>/price-history/<int:pk>/', price_history_detail, name='price-history-detail'),
]
