from django.urls import path

from . import views

urlpatterns = [
    path('auth/session-login', views.firebase_session_login, name="firebase-session-login"),
    path('auth/logout', views.firebase_logout, name="firebase-logout"),
    path('presence', views.presence_update, name="presence-update"),
    path('users/', views.user_search, name="user-search"),
    path('users/me', views.profile_me, name="profile-me"),
    path('users/<str:user_id>', views.user_detail, name="user-detail"),
]
