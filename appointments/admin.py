# appointments/admin.py

from django.contrib import admin
from .models import Appointment, Slot


class AppointmentAdmin(admin.ModelAdmin):
    list_display = ('patient', 'doctor', 'appointment_date', 'appointment_time', 'duration', 'status', 'payment_status')
    list_filter = ('status', 'appointment_type', 'payment_status', 'doctor', 'appointment_date')
    search_fields = ('patient__name', 'patient__contact_number', 'doctor__user__first_name', 'doctor__user__last_name', 'reason')
    raw_id_fields = ('patient', 'slot', 'cancelled_by', 'created_by', 'last_modified_by')
    date_hierarchy = 'appointment_date'
    list_per_page = 20

    def get_queryset(self, request):
        return super().get_queryset(request).select_related('patient', 'doctor__user')


class SlotAdmin(admin.ModelAdmin):
    list_display = ('doctor', 'date', 'start_time', 'end_time', 'booked_patients', 'max_patients', 'is_available', 'is_blocked')
    list_filter = ('is_blocked', 'is_available', 'slot_type', 'doctor', 'date')
    raw_id_fields = ('created_by', 'last_modified_by')
    # Bookings move through reserve/release only.
    readonly_fields = ('booked_patients', 'appointment')
    date_hierarchy = 'date'
    list_per_page = 50


admin.site.register(Appointment, AppointmentAdmin)
admin.site.register(Slot, SlotAdmin)
