from django.urls import path
from . import views

urlpatterns = [
    path('folders/', views.folder_list_create, name='folder-list-create'),
    path('folders/tree/', views.folder_tree, name='folder-tree'),
    path('folders/move/', views.folder_move, name='folder-move'),
    path('folders/<int:pk>/', views.folder_detail, name='folder-detail'),
    path('folders/<int:pk>/items/', views.folder_items, name='folder-items'),
]
