from django.urls import path
from . import views

app_name = 'analytics'

urlpatterns = [
    # Balances
    path('balances/', views.balances, name='balances'),

    # Netting
    path('suggestions/', views.settlement_suggestions, name='suggestions'),

    # Integrity
    path('health/', views.data_health, name='health'),

    # Dashboard
    path('dashboard/', views.dashboard, name='dashboard'),
]
