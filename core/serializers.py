from django.contrib.auth import password_validation
from django.utils.text import slugify
from rest_framework import serializers

from core.models import Studio, User


class LoginSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, min_length=8, trim_whitespace=False)

    def validate_email(self, value):
        return value.strip().lower()


class RefreshTokenSerializer(serializers.Serializer):
    refreshToken = serializers.CharField()


class StudioRegistrationSerializer(serializers.Serializer):
    email = serializers.EmailField()
    name = serializers.CharField(max_length=255)
    password = serializers.CharField(write_only=True, min_length=8, trim_whitespace=False)
    studio_name = serializers.CharField(max_length=255)
    studio_slug = serializers.SlugField(max_length=100, required=False)
    studio_phone = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")

    def validate_email(self, value):
        return value.strip().lower()

    def validate_password(self, value):
        password_validation.validate_password(value)
        return value

    def validate(self, attrs):
        if not attrs.get("studio_slug"):
            attrs["studio_slug"] = slugify(attrs["studio_name"])[:100]
        if not attrs["studio_slug"]:
            raise serializers.ValidationError({"studio_slug": "A studio slug could not be derived from the studio name."})
        return attrs


class AdminCreateSerializer(serializers.Serializer):
    email = serializers.EmailField()
    name = serializers.CharField(max_length=255)
    password = serializers.CharField(write_only=True, min_length=8, trim_whitespace=False)

    def validate_email(self, value):
        return value.strip().lower()


class StudioSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = Studio
        fields = ["id", "name", "slug", "status"]
        read_only_fields = fields


class UserSerializer(serializers.ModelSerializer):
    studio = StudioSummarySerializer(read_only=True)

    class Meta:
        model = User
        fields = ["id", "email", "name", "role", "studio_id", "studio", "is_active"]
        read_only_fields = fields
