from django.urls import path

from user import views

urlpatterns = [
    path("", views.users_collection, name="users"),
    path("<int:user_id>/", views.user_detail, name="user_detail"),
]
