# staff/admin.py

from django.contrib import admin
from .models import ScheduleEntry, StaffMember


class ScheduleEntryInline(admin.TabularInline):
    model = ScheduleEntry
    extra = 0


@admin.register(StaffMember)
class StaffMemberAdmin(admin.ModelAdmin):
    """
    Admin configuration for the StaffMember model.
    """

    def user_email(self, obj):
        return obj.user.email
    user_email.short_description = 'Email'

    def get_user_groups(self, obj):
        if obj.user:
            return ", ".join([group.name for group in obj.user.groups.all()])
        return "N/A"
    get_user_groups.short_description = 'Roles (Groups)'

    list_display = (
        'name',
        'specialization',
        'consultation_fee',
        'get_user_groups',
        'is_verified',
        'is_active',
    )

    list_filter = (
        'is_active',
        'is_verified',
        'specialization',
        'user__groups',
    )

    # Verification is the manager's switch for opening a doctor to self-booking
    list_editable = ('is_verified', 'is_active')

    search_fields = (
        'user__first_name',
        'user__last_name',
        'user__email',
        'registration_number',
        'user__username',
    )

    raw_id_fields = ('user',)
    inlines = [ScheduleEntryInline]

    ordering = ('-user__date_joined',)
