from rest_framework import serializers
from .models import User


class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ['id', 'username', 'first_name', 'last_name', 'email', 'phone_number', 'role']
        read_only_fields = fields


class PublicUserSerializer(serializers.ModelSerializer):
    rating_stats = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ['id', 'first_name', 'last_name', 'role', 'rating_stats']

    def get_rating_stats(self, obj):
        return obj.get_rating_stats()
