# a_core/views.py
from django.shortcuts import redirect, render


def login_page(request):
    return render(request, "login.html")


def dashboard(request):
    return render(request, "dashboard.html")


def home(request):
    return redirect("dashboard")
