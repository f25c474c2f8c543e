from django.contrib import admin
from .models import User


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('username', 'email', 'phone_number', 'role', 'is_superuser', 'is_verified')
    list_filter = ('role', 'is_superuser', 'is_verified')
    search_fields = ('username', 'email', 'phone_number')
