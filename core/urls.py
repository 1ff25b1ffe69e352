from django.urls import path
from .views import (
    FileDetailView,
    FileStatsView,
    FileUploadView,
)


urlpatterns = [
    path("upload/", FileUploadView.as_view(), name="file-upload"),
    path("files/stats/", FileStatsView.as_view(), name="file-stats"),
    path("files/<int:file_id>/", FileDetailView.as_view(), name="file-detail"),
]
