# staff/signals.py

import structlog
from django.db.models.signals import post_migrate
from django.contrib.auth.models import Group, Permission

logger = structlog.get_logger(__name__)

ROLE_PERMISSIONS = {
    # Managers run the clinic: staff, patients, the appointment book and the slot calendar.
    "Managers": [
        'staff.view_staffmember', 'staff.add_staffmember', 'staff.change_staffmember', 'staff.delete_staffmember',
        'staff.view_scheduleentry', 'staff.add_scheduleentry', 'staff.change_scheduleentry', 'staff.delete_scheduleentry',
        'patients.view_patient', 'patients.add_patient', 'patients.change_patient', 'patients.delete_patient',
        'appointments.view_appointment', 'appointments.add_appointment', 'appointments.change_appointment',
        'appointments.view_slot', 'appointments.add_slot', 'appointments.change_slot',
        'audit_log.view_appointmentstatuslog',
    ],
    # Doctors see their patients and the book, and run their own visits.
    "Doctors": [
        'patients.view_patient',
        'appointments.view_appointment',
        'appointments.view_slot',
        'staff.view_scheduleentry',
    ],
    # Receptionists confirm, reject and create bookings, and manage the slot calendar.
    "Receptionists": [
        'patients.view_patient', 'patients.add_patient', 'patients.change_patient',
        'appointments.view_appointment', 'appointments.add_appointment', 'appointments.change_appointment',
        'appointments.view_slot', 'appointments.change_slot',
    ],
    # Patients book through the self-service endpoints and hold no model permissions.
    "Patients": [],
}

def assign_permissions(group, permissions):
    """
    Assigns a list of permissions to a group, clearing previous ones.
    """
    group.permissions.clear()
    for perm_codename in permissions:
        try:
            app_label, codename = perm_codename.split('.')
            perm = Permission.objects.get(content_type__app_label=app_label, codename=codename)
            group.permissions.add(perm)
        except Permission.DoesNotExist:
            # Apps migrated later in the run add their permissions on a later pass.
            logger.debug('permission_missing', permission=perm_codename, group=group.name)

def create_user_groups(sender, **kwargs):
    """
    Creates the user groups (roles) and assigns their default permissions
    after migrations have run.
    """
    for role_name, perms in ROLE_PERMISSIONS.items():
        group, created = Group.objects.get_or_create(name=role_name)
        assign_permissions(group, perms)
        logger.debug('role_group_configured', group=group.name, created=created, permissions=len(perms))

# Fires after every app is migrated, so permissions of later apps get picked up.
post_migrate.connect(create_user_groups, dispatch_uid='staff.create_user_groups')
