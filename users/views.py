from rest_framework import generics, permissions
from rest_framework_simplejwt.views import TokenObtainPairView

from assessments.permissions import IsEnrolledUser

from .serializers import RegisterSerializer, CustomTokenObtainPairSerializer, UserSerializer

# --- Authentication Views ---
class RegisterView(generics.CreateAPIView):
    serializer_class = RegisterSerializer
    permission_classes = [permissions.AllowAny]
    authentication_classes = []

class CustomLoginView(TokenObtainPairView):
    serializer_class = CustomTokenObtainPairSerializer

class UserProfileView(generics.RetrieveUpdateAPIView):
    serializer_class = UserSerializer
    permission_classes = [IsEnrolledUser]

    def get_object(self):
        return self.request.user
