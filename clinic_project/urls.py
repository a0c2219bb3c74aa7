# clinic_project/urls.py

from django.contrib import admin
from django.urls import path, include
from django.contrib.auth import views as auth_views

urlpatterns = [
    path('admin/', admin.site.urls),

    # App-specific URLs
    path('appointments/', include('appointments.urls')),
    path('staff/', include('staff.urls')),
    path('audit/', include('audit_log.urls')),

    # Session authentication for the JSON endpoints
    path('accounts/login/', auth_views.LoginView.as_view(template_name='admin/login.html'), name='login'),
    path('accounts/logout/', auth_views.LogoutView.as_view(), name='logout'),
]

# Permission failures answer with the same JSON envelope as engine errors
handler403 = 'appointments.api.permission_denied'
