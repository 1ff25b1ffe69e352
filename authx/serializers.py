from django.contrib.auth import authenticate, get_user_model
from rest_framework import serializers

User = get_user_model()


class AdminLoginSerializer(serializers.Serializer):
    """Dashboard sign-in by email. Only staff accounts get through."""
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True)

    def validate(self, attrs):
        email = attrs["email"].strip().lower()

        user = User.objects.filter(email__iexact=email).first()
        if user is None:
            raise serializers.ValidationError("Invalid credentials")

        # Django still authenticates by username
        user = authenticate(username=user.get_username(), password=attrs["password"])
        if not user:
            raise serializers.ValidationError("Invalid credentials")
        if not user.is_staff:
            raise serializers.ValidationError("Admin access required")

        attrs["user"] = user
        return attrs
