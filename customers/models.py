import uuid

from django.db import models

from core.models import Studio


class Customer(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    studio = models.ForeignKey(Studio, on_delete=models.PROTECT, related_name="customers")
    name = models.CharField(max_length=255)
    phone = models.CharField(max_length=64)
    email = models.EmailField(null=True, blank=True)
    metadata = models.JSONField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["studio", "created_at"], name="customer_studio_created_idx"),
            models.Index(fields=["studio", "email"], name="customer_studio_email_idx"),
        ]
        constraints = [
            models.UniqueConstraint(fields=["studio", "phone"], name="uniq_customer_studio_phone"),
        ]

    def __str__(self):
        return self.name
