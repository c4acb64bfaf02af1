from django.contrib import admin

from .models import Property


@admin.register(Property)
class PropertyAdmin(admin.ModelAdmin):
    list_display = ("name", "slug", "contact_email")
    search_fields = ("name", "slug", "contact_email")
