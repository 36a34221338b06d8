# a_rtchat/urls.py
from django.urls import path

from . import views

urlpatterns = [
    path('dashboard/last-chat', views.last_chat, name="last-chat"),
    path('chats/', views.chat_list, name="chat-list"),
    path('chats/direct', views.direct_chat_start, name="chat-direct"),
    path('chats/<str:chat_id>', views.chat_detail, name="chat-detail"),
    path('chats/<str:chat_id>/open', views.chat_open, name="chat-open"),
    path('chats/<str:chat_id>/pin', views.chat_pin, name="chat-pin"),
    path('chats/<str:chat_id>/read', views.chat_read, name="chat-read"),
    path('chats/<str:chat_id>/participants', views.group_participant_add, name="group-participant-add"),
    path('chats/<str:chat_id>/participants/<str:user_id>', views.group_participant_remove, name="group-participant-remove"),
    path('chats/<str:chat_id>/admins/<str:user_id>', views.group_admin, name="group-admin"),
    path('chats/<str:chat_id>/messages', views.message_list, name="message-list"),
    path('chats/<str:chat_id>/messages/<str:message_id>', views.message_detail, name="message-detail"),
    path('chats/<str:chat_id>/messages/<str:message_id>/read', views.message_read, name="message-read"),
    path('chats/<str:chat_id>/messages/<str:message_id>/reactions', views.message_react, name="message-react"),
]
