"""
URL configuration for a_core project.

Pages are bare shells for the browser client; everything it does goes
through the JSON API under /api/ and the websocket at /ws/chat/.
"""
from django.urls import include, path

from . import views

urlpatterns = [
    path('', views.home, name="home"),
    path('login/', views.login_page, name="login"),
    path('dashboard/', views.dashboard, name="dashboard"),
    path('api/', include('a_users.urls')),
    path('api/', include('a_rtchat.urls')),
]
