# audit_log/urls.py

from django.urls import path
from . import views

app_name = 'audit_log'

urlpatterns = [
    path('appointments/<int:appointment_id>/', views.appointment_history_view, name='appointment_history'),
]
