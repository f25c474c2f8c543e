from django.db import models
from django.contrib.auth.models import AbstractUser
from core.constants import UserRole


class User(AbstractUser):
    email = models.EmailField(blank=True, null=True, unique=True)
    phone_number = models.CharField(max_length=15, blank=True, null=True, unique=True)
    role = models.CharField(max_length=20, choices=UserRole.choices, default=UserRole.CLIENT)
    is_verified = models.BooleanField(default=False)

    @property
    def is_client(self):
        return self.role == UserRole.CLIENT

    @property
    def is_worker(self):
        return self.role == UserRole.WORKER

    @property
    def is_hr_admin(self):
        return self.role in (UserRole.HR_ADMIN, UserRole.SUPER_ADMIN) or self.is_superuser

    @property
    def is_finance_admin(self):
        return self.role in (UserRole.FINANCE_ADMIN, UserRole.SUPER_ADMIN) or self.is_superuser

    @property
    def is_platform_admin(self):
        return self.is_hr_admin or self.is_finance_admin

    @classmethod
    def admins_for(cls, *roles):
        """Active users holding any of ``roles`` (super admins always included)."""
        return cls.objects.filter(
            models.Q(role__in=roles + (UserRole.SUPER_ADMIN,)) | models.Q(is_superuser=True),
            is_active=True,
        )

    def get_rating_stats(self):
        """Rating statistics from the reviews this user has received."""
        stats = {
            'average_rating': 0.0,
            'total_ratings': 0,
            'rating_breakdown': {f'{i}_star': 0 for i in range(5, 0, -1)},
        }
        all_ratings = list(self.reviews_received.values_list('rating', flat=True))
        if all_ratings:
            stats['total_ratings'] = len(all_ratings)
            stats['average_rating'] = round(sum(all_ratings) / len(all_ratings), 1)
            for rating in all_ratings:
                stats['rating_breakdown'][f'{rating}_star'] += 1
            # Convert to percentages
            for key in stats['rating_breakdown']:
                stats['rating_breakdown'][key] = round(
                    (stats['rating_breakdown'][key] / stats['total_ratings']) * 100, 1
                )
        return stats

    def __str__(self):
        return f"{self.username} ({self.role})"
