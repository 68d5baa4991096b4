# users/models.py
from django.contrib.auth.models import AbstractUser
from django.db import models

class User(AbstractUser):
    class Role(models.TextChoices):
        CANDIDATE = "candidate", "Candidate"
        EXAMINER = "examiner", "Examiner"
        ADMIN = "admin", "Admin"
        GRADER = "grader", "Grader"

    # Enforce unique email for authentication
    email = models.EmailField(unique=True)

    role = models.CharField(max_length=20, choices=Role.choices, default=Role.CANDIDATE)
    phone_number = models.CharField(max_length=15, blank=True)

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['username', 'first_name', 'last_name']

    @property
    def is_staff_grader(self):
        """Staff, examiners and graders may review sessions and grade results."""
        return self.is_staff or self.role in (self.Role.EXAMINER, self.Role.GRADER, self.Role.ADMIN)

    def __str__(self):
        return self.email
