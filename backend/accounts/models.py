from django.contrib.auth.models import AbstractUser
from django.db import models
from django.utils import timezone


class User(AbstractUser):
    display_name = models.CharField(max_length=120, blank=True)


class PropertyMembership(models.Model):
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    VIEWER = "VIEWER"
    ROLES = [
        (OWNER, "Owner"),
        (ADMIN, "Admin"),
        (VIEWER, "Viewer"),
    ]

    user = models.ForeignKey("User", on_delete=models.CASCADE, related_name="memberships")
    property = models.ForeignKey(
        "properties.Property",
        on_delete=models.CASCADE,
        related_name="memberships",
    )
    role = models.CharField(max_length=20, choices=ROLES)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ("user", "property", "role")

    def __str__(self):
        return f"{self.user} ({self.get_role_display()}) @ {self.property}"

    def mark_inactive(self):
        if self.is_active:
            self.is_active = False
            self.save(update_fields=["is_active", "updated_at"])
