from django.urls import path
from .views import (
    EventListView,
    EventDetailView,
    FestivalInfoView,
    DefaultWhatsappView,
    RegisterEventView,
    WorkshopRegisterView,
    RegistrationDetailsView,
    AdminRegistrationsView,
    AdminRegistrationFlushView,
    AdminRegistrationExportView,
    RegistrationAnalyticsView,
)

urlpatterns = [
    path("", EventListView.as_view(), name="event-list"),

    # Fixed paths first so they are not taken for event slugs
    path("workshop/register/", WorkshopRegisterView.as_view(), name="workshop-register"),
    path("festival-info/", FestivalInfoView.as_view(), name="festival-info"),
    path("default-whatsapp/", DefaultWhatsappView.as_view(), name="default-whatsapp"),
    path("registration-details/", RegistrationDetailsView.as_view(), name="registration-details"),

    # Admin
    path("admin/registrations/", AdminRegistrationsView.as_view(), name="admin-registrations"),
    path("admin/registrations/flush/", AdminRegistrationFlushView.as_view(), name="admin-registrations-flush"),
    path("admin/registrations/export/", AdminRegistrationExportView.as_view(), name="admin-registrations-export"),
    path("admin/analytics/", RegistrationAnalyticsView.as_view(), name="admin-analytics"),

    path("<slug:event_id>/", EventDetailView.as_view(), name="event-detail"),
    path("<slug:event_id>/register/", RegisterEventView.as_view(), name="event-register"),
]
