# patients/admin.py

from django.contrib import admin
from .models import Patient

class PatientAdmin(admin.ModelAdmin):
    list_display = ('name', 'contact_number', 'email', 'age', 'blood_group', 'updated_at')
    search_fields = ('name', 'contact_number', 'email')
    raw_id_fields = ('user',)

admin.site.register(Patient, PatientAdmin)
