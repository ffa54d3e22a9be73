from django.urls import path
from .views import dashboard_stats, value_summary, price_trends, profile_stats

urlpatterns = [
    path('reports/dashboard-stats/', dashboard_stats, name='report-dashboard-stats'),
    path('reports/value-summary/', value_summary, name='report-value-summary'),
    path('reports/price-trends/', price_trends, name='report-price-trends'),
    path('reports/profile-stats/', profile_stats, name='report-profile-stats'),
]
