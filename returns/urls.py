"""
Returns Module URL Configuration
All URLs are prefixed with /api/v1/returns/
"""

from django.urls import path
from . import views

urlpatterns = [
    path('', views.create_return, name='create-return'),
    path('list/', views.list_returns, name='list-returns'),
    path('check-eligibility/', views.check_eligibility, name='check-eligibility'),
    path('swaps/<int:swap_id>/', views.get_swap_return, name='swap-return'),
    path('<int:return_id>/', views.return_detail, name='return-detail'),
    path('<int:return_id>/status/', views.get_status_history, name='return-status'),
    path('<int:return_id>/cancel/', views.cancel_return, name='cancel-return'),
    path('<int:return_id>/fulfill/', views.fulfill_return, name='fulfill-return'),
    path('<int:return_id>/receive/', views.receive_return, name='receive-return'),
]
