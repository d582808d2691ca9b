from django.urls import path

from . import views

app_name = "accounts"

urlpatterns = [
    path("register/", views.UserRegistrationView.as_view(), name="register"),
    path("login/", views.CustomAuthToken.as_view(), name="api_token_auth"),
    path("me/", views.CurrentUserView.as_view(), name="me"),
]
