from django.urls import include, path

urlpatterns = [
    path("api/", include("records_app.urls")),
]
