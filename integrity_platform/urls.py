from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),

    # --- Authentication & Profile ---
    path('api/', include('users.urls')),

    # --- Exam sessions, proctoring & grading (before the exam router) ---
    path('api/', include('assessments.urls')),

    # --- Exam catalogue ---
    path('api/', include('exams.urls')),

    # --- Platform settings & audit trail ---
    path('api/admin/', include('cores.urls')),
]
