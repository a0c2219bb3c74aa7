# appointments/urls.py

from django.urls import path
from . import views

app_name = 'appointments'

urlpatterns = [
    path('', views.appointment_list_view, name='appointment_list'),
    path('book/', views.book_appointment_view, name='book_appointment'),
    path('manual/', views.manual_appointment_view, name='manual_appointment'),
    path('pending/', views.pending_appointments_view, name='pending_appointments'),
    path('stats/', views.appointment_stats_view, name='appointment_stats'),

    path('<int:pk>/', views.appointment_detail_view, name='appointment_detail'),
    path('<int:pk>/cancel/', views.cancel_appointment_view, name='cancel_appointment'),
    path('<int:pk>/confirm/', views.confirm_appointment_view, name='confirm_appointment'),
    path('<int:pk>/reject/', views.reject_appointment_view, name='reject_appointment'),
    path('<int:pk>/reschedule/', views.reschedule_appointment_view, name='reschedule_appointment'),
    path('<int:pk>/payment/', views.record_payment_view, name='record_payment'),
    # start / complete / no-show
    path('<int:pk>/<slug:action>/', views.appointment_action_view, name='appointment_action'),

    # Slots are materialised on first read for a date
    path('doctors/<int:doctor_id>/slots/', views.doctor_slots_view, name='doctor_slots'),
    path('doctors/<int:doctor_id>/availability/', views.doctor_availability_view, name='doctor_availability'),
    path('slots/<int:pk>/block/', views.block_slot_view, name='block_slot'),
    path('slots/<int:pk>/unblock/', views.unblock_slot_view, name='unblock_slot'),
]
