# staff/urls.py

from django.urls import path
from . import views

app_name = 'staff'

urlpatterns = [
    path('doctors/', views.doctor_list_view, name='doctor_list'),
    path('doctors/available/', views.available_doctors_view, name='available_doctors'),
    path('doctors/<int:pk>/', views.doctor_detail_view, name='doctor_detail'),
]
