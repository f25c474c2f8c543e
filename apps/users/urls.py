from django.urls import path
from rest_framework.authtoken.views import obtain_auth_token
from .views import MeView, PublicProfileView

urlpatterns = [
    path('token/', obtain_auth_token, name='api_token'),
    path('me/', MeView.as_view(), name='user_me'),
    path('<int:pk>/', PublicProfileView.as_view(), name='user_profile'),
]
