from django.db import models
from django.contrib.auth.models import AbstractUser


class User(AbstractUser):
    """Extended user model; drivers and clients are both users with a role."""
    ROLE_CLIENT = 'client'
    ROLE_DRIVER = 'driver'
    ROLE_CHOICES = [
        (ROLE_CLIENT, 'Client'),
        (ROLE_DRIVER, 'Driver'),
    ]
    
    # Role & basic info
    role = models.CharField(max_length=10, choices=ROLE_CHOICES)
    phone_number = models.CharField(max_length=15, blank=True)
    
    class Meta:
        db_table = 'users'
        
    def __str__(self):
        return f"{self.username} ({self.get_role_display()})"
