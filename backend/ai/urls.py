from django.urls import path
from .views import ai_recognize, ai_search_prices, ai_usage

urlpatterns = [
    path('ai/recognize/', ai_recognize, name='ai-recognize'),
    path('ai/search-prices/', ai_search_prices, name='ai-search-prices'),
    path('ai/usage/', ai_usage, name='ai-usage'),
]
