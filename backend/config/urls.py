"""
URL configuration for backend project.

Every app mounts its routes under /api/v1/.
"""
from django.contrib import admin
from django.urls import path, include, re_path
from django.conf import settings
from django.views.static import serve

admin.site.site_header = "Belongings Inventory Admin"
admin.site.site_title = "Belongings Inventory Admin Portal"
admin.site.index_title = "Folders, items and price history"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include('backend.core.urls')),
    path('api/v1/', include('backend.folders.urls')),
    path('api/v1/', include('backend.items.urls')),
    path('api/v1/', include('backend.pricing.urls')),
    path('api/v1/', include('backend.ai.urls')),
    path('api/v1/', include('backend.reports.urls')),
    re_path(r'^media/(?P<path>.*)$', serve, {'document_root': settings.MEDIA_ROOT}),
    re_path(r'^static/(?P<path>.*)$', serve, {'document_root': settings.STATIC_ROOT}),
]
